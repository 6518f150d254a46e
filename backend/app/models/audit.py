from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


@dataclass(frozen=True)
class AuditInfo:
    """Who touched a record and when; shared by every aggregate."""

    is_active: bool
    created_by: Optional[str]
    updated_by: Optional[str]
    deleted_by: Optional[str]
    restored_by: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    deleted_at: Optional[datetime]
    restored_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "deleted_by": self.deleted_by,
            "restored_by": self.restored_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "restored_at": to_utc_z(self.restored_at),
        }


class AuditMixin:
    """
    Soft-delete and actor audit columns.

    Rows using this mixin are never physically deleted: deactivate() flips
    is_active and records the actor; restore() reverses it.
    """

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Actor ids come from the upstream auth layer; stored as opaque strings
    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)
    restored_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    restored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def audit(self) -> AuditInfo:
        return AuditInfo(
            is_active=bool(self.is_active),
            created_by=self.created_by,
            updated_by=self.updated_by,
            deleted_by=self.deleted_by,
            restored_by=self.restored_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            restored_at=self.restored_at,
        )

    def stamp_created(self, actor_id: Optional[str], now: datetime) -> None:
        self.created_by = actor_id
        self.updated_by = actor_id
        self.created_at = now
        self.updated_at = now

    def touch(self, actor_id: Optional[str], now: datetime) -> None:
        self.updated_by = actor_id
        self.updated_at = now

    def deactivate(self, actor_id: Optional[str], now: datetime) -> None:
        self.is_active = False
        self.deleted_by = actor_id
        self.deleted_at = now
        self.touch(actor_id, now)

    def restore(self, actor_id: Optional[str], now: datetime) -> None:
        self.is_active = True
        self.restored_by = actor_id
        self.restored_at = now
        self.touch(actor_id, now)
