from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z
from .audit import AuditMixin


class Photographer(AuditMixin, db.Model):
    """
    Photographer whose time is booked.

    Weekly working hours live in photographer_day_settings (does the day take
    bookings at all) and photographer_schedule_windows (the hours). Per-date
    exceptions live in photographer_date_overrides.
    """
    __tablename__ = "photographers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    # Minimum notice before a slot may start
    booking_lead_time_hours = db.Column(db.Integer, nullable=False, default=0)

    day_settings = db.relationship(
        "PhotographerDaySetting", backref="photographer", cascade="all, delete-orphan", lazy="selectin"
    )
    schedule_windows = db.relationship(
        "PhotographerScheduleWindow",
        backref="photographer",
        order_by="[PhotographerScheduleWindow.day_of_week, PhotographerScheduleWindow.start_time]",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    date_overrides = db.relationship(
        "PhotographerDateOverride",
        backref="photographer",
        order_by="PhotographerDateOverride.override_date",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "booking_lead_time_hours": self.booking_lead_time_hours,
            "weekly_schedule": [s.to_dict() for s in self.day_settings],
            "schedule_windows": [w.to_dict() for w in self.schedule_windows],
            "date_overrides": [o.to_dict() for o in self.date_overrides],
            "audit": self.audit.to_dict(),
        }


class PhotographerDaySetting(db.Model):
    __tablename__ = "photographer_day_settings"
    __table_args__ = (
        db.UniqueConstraint("photographer_id", "day_of_week", name="uq_photographer_day_settings_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    photographer_id = db.Column(db.Integer, db.ForeignKey("photographers.id"), nullable=False, index=True)
    # 0 = Monday ... 6 = Sunday (date.weekday())
    day_of_week = db.Column(db.Integer, nullable=False)
    accepts_bookings = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.String(200), nullable=True)

    def to_dict(self) -> dict:
        return {
            "day_of_week": self.day_of_week,
            "accepts_bookings": self.accepts_bookings,
            "notes": self.notes,
        }


class PhotographerScheduleWindow(db.Model):
    __tablename__ = "photographer_schedule_windows"
    __table_args__ = (
        db.Index("ix_photographer_schedule_windows_day", "photographer_id", "day_of_week"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    photographer_id = db.Column(db.Integer, db.ForeignKey("photographers.id"), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM
    end_time = db.Column(db.String(5), nullable=False)  # HH:MM, "24:00" allowed

    def to_dict(self) -> dict:
        return {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


class PhotographerDateOverride(db.Model):
    __tablename__ = "photographer_date_overrides"
    __table_args__ = (
        db.UniqueConstraint("photographer_id", "override_date", name="uq_photographer_overrides_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    photographer_id = db.Column(db.Integer, db.ForeignKey("photographers.id"), nullable=False, index=True)
    override_date = db.Column(db.Date, nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    windows = db.relationship(
        "PhotographerOverrideWindow",
        backref="override",
        order_by="PhotographerOverrideWindow.start_time",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "date": self.override_date.isoformat(),
            "is_available": self.is_available,
            "custom_hours": [w.to_dict() for w in self.windows],
            "reason": self.reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class PhotographerOverrideWindow(db.Model):
    __tablename__ = "photographer_override_windows"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    override_id = db.Column(db.Integer, db.ForeignKey("photographer_date_overrides.id"), nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    def to_dict(self) -> dict:
        return {"start_time": self.start_time, "end_time": self.end_time}
