# Overview: Flask-SQLAlchemy implementation of the store interfaces.

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import (
    Booking,
    BookingChangeRequest,
    BookingEvent,
    Customer,
    Package,
    Photographer,
    PhotographerDayLock,
    Promotion,
    RefundRequest,
    Service,
    Transaction,
)
from app.services.availability import (
    DateOverride,
    DaySchedule,
    PhotographerSchedule,
    TimeWindow,
    WeeklySchedule,
)
from app.services.booking_state import NON_BLOCKING_STATUSES
from app.services.concurrency import lock_for_update
from app.time_utils import utcnow
from .interfaces import (
    BookingStore,
    CatalogStore,
    ChangeRequestStore,
    PhotographerStore,
    PromotionStore,
    RefundRequestStore,
    StaleWriteError,
    Stores,
    TransactionStore,
)


class SqlAlchemyBookingStore(BookingStore):
    def get(self, booking_id: int, *, for_update: bool = False):
        query = db.session.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def lock(self, booking_id: int) -> bool:
        # No-op UPDATE: holds the row lock (SQLite: the write lock) without
        # bumping version_id, so loaded copies stay valid.
        table = Booking.__table__
        result = db.session.execute(
            update(table).where(table.c.id == booking_id).values(version_id=table.c.version_id)
        )
        return bool(result.rowcount)

    def get_by_reference(self, reference: str):
        return db.session.query(Booking).filter(Booking.booking_reference == reference).first()

    def reference_exists(self, reference: str) -> bool:
        return db.session.query(Booking.id).filter(Booking.booking_reference == reference).first() is not None

    def add(self, booking) -> None:
        db.session.add(booking)

    def list_blocking(self, photographer_id: int, booking_date: date, *, exclude_booking_id: Optional[int] = None) -> list:
        query = db.session.query(Booking).filter(
            Booking.photographer_id == photographer_id,
            Booking.booking_date == booking_date,
            Booking.is_active.is_(True),
            Booking.status.notin_(NON_BLOCKING_STATUSES),
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time).populate_existing().all()

    def list_for_customer(self, customer_id: int, *, include_inactive: bool = False) -> list:
        query = db.session.query(Booking).filter(Booking.customer_id == customer_id)
        if not include_inactive:
            query = query.filter(Booking.is_active.is_(True))
        return query.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).all()

    def append_event(
        self,
        booking,
        event_type: str,
        *,
        actor_id: Optional[str],
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        transaction_id: Optional[int] = None,
        note: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ):
        ev = BookingEvent(
            booking_id=booking.id,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            transaction_id=transaction_id,
            note=(note[:255] if note else None),
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(ev)
        return ev

    def list_events(self, booking_id: int) -> list:
        return (
            db.session.query(BookingEvent)
            .filter(BookingEvent.booking_id == booking_id)
            .order_by(BookingEvent.occurred_at.asc(), BookingEvent.id.asc())
            .all()
        )


class SqlAlchemyTransactionStore(TransactionStore):
    def get(self, transaction_id: int, *, for_update: bool = False):
        query = db.session.query(Transaction).filter(Transaction.id == transaction_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def reference_exists(self, reference: str) -> bool:
        return (
            db.session.query(Transaction.id).filter(Transaction.transaction_reference == reference).first()
            is not None
        )

    def add(self, transaction) -> None:
        db.session.add(transaction)

    def list_for_booking(self, booking_id: int) -> list:
        return (
            db.session.query(Transaction)
            .filter(Transaction.booking_id == booking_id, Transaction.is_active.is_(True))
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
            .populate_existing()
            .all()
        )

    def list_refunds_for(self, original_transaction_id: int) -> list:
        return (
            db.session.query(Transaction)
            .filter(Transaction.original_transaction_id == original_transaction_id)
            .order_by(Transaction.id.asc())
            .all()
        )


def _newest_first(query, model):
    return query.order_by(model.created_at.desc(), model.id.desc()).all()


class SqlAlchemyChangeRequestStore(ChangeRequestStore):
    def get(self, request_id: int, *, for_update: bool = False):
        query = db.session.query(BookingChangeRequest).filter(BookingChangeRequest.id == request_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def reference_exists(self, reference: str) -> bool:
        return (
            db.session.query(BookingChangeRequest.id)
            .filter(BookingChangeRequest.request_reference == reference)
            .first()
            is not None
        )

    def add(self, request) -> None:
        db.session.add(request)

    def find_pending(self, booking_id: int, request_type: str):
        return (
            db.session.query(BookingChangeRequest)
            .filter(
                BookingChangeRequest.booking_id == booking_id,
                BookingChangeRequest.request_type == request_type,
                BookingChangeRequest.status == "PENDING",
                BookingChangeRequest.is_active.is_(True),
            )
            .first()
        )

    def list(self, *, status=None, request_type=None, booking_id=None, customer_id=None, created_by=None) -> list:
        query = db.session.query(BookingChangeRequest).filter(BookingChangeRequest.is_active.is_(True))
        if status is not None:
            query = query.filter(BookingChangeRequest.status == status)
        if request_type is not None:
            query = query.filter(BookingChangeRequest.request_type == request_type)
        if booking_id is not None:
            query = query.filter(BookingChangeRequest.booking_id == booking_id)
        if customer_id is not None:
            query = query.filter(BookingChangeRequest.customer_id == customer_id)
        if created_by is not None:
            query = query.filter(BookingChangeRequest.created_by == created_by)
        return _newest_first(query, BookingChangeRequest)


class SqlAlchemyRefundRequestStore(RefundRequestStore):
    def get(self, request_id: int, *, for_update: bool = False):
        query = db.session.query(RefundRequest).filter(RefundRequest.id == request_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def reference_exists(self, reference: str) -> bool:
        return (
            db.session.query(RefundRequest.id).filter(RefundRequest.request_reference == reference).first()
            is not None
        )

    def add(self, request) -> None:
        db.session.add(request)

    def find_pending(self, transaction_id: int):
        return (
            db.session.query(RefundRequest)
            .filter(
                RefundRequest.transaction_id == transaction_id,
                RefundRequest.status == "PENDING",
                RefundRequest.is_active.is_(True),
            )
            .first()
        )

    def list(self, *, status=None, transaction_id=None, customer_id=None, created_by=None) -> list:
        query = db.session.query(RefundRequest).filter(RefundRequest.is_active.is_(True))
        if status is not None:
            query = query.filter(RefundRequest.status == status)
        if transaction_id is not None:
            query = query.filter(RefundRequest.transaction_id == transaction_id)
        if customer_id is not None:
            query = query.filter(RefundRequest.customer_id == customer_id)
        if created_by is not None:
            query = query.filter(RefundRequest.created_by == created_by)
        return _newest_first(query, RefundRequest)


class SqlAlchemyPromotionStore(PromotionStore):
    def get(self, promo_id: int):
        return db.session.get(Promotion, promo_id)

    def get_by_code(self, code: str):
        return db.session.query(Promotion).filter(Promotion.promo_code == code).first()

    def add(self, fields: dict, actor_id: Optional[str]):
        promo = Promotion(**fields)
        promo.stamp_created(actor_id, utcnow())
        db.session.add(promo)
        return promo

    def list(self, *, active_only: bool = False) -> list:
        query = db.session.query(Promotion)
        if active_only:
            query = query.filter(Promotion.is_active.is_(True))
        return query.order_by(Promotion.promo_code).all()

    def try_increment_usage(self, promo_id: int) -> bool:
        stmt = (
            update(Promotion)
            .where(
                Promotion.id == promo_id,
                Promotion.is_active.is_(True),
                or_(Promotion.usage_limit.is_(None), Promotion.usage_count < Promotion.usage_limit),
            )
            .values(usage_count=Promotion.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        loaded = db.session.identity_map.get(db.session.identity_key(Promotion, promo_id))
        if loaded is not None:
            db.session.expire(loaded, ["usage_count"])
        return result.rowcount == 1


class SqlAlchemyPhotographerStore(PhotographerStore):
    def get(self, photographer_id: int):
        return db.session.get(Photographer, photographer_id)

    def load_schedule(self, photographer_id: int):
        photographer = self.get(photographer_id)
        if photographer is None:
            return None

        windows_by_day: dict[int, list[TimeWindow]] = {}
        for w in photographer.schedule_windows:
            windows_by_day.setdefault(w.day_of_week, []).append(TimeWindow.from_hhmm(w.start_time, w.end_time))

        days = {}
        for setting in photographer.day_settings:
            days[setting.day_of_week] = DaySchedule(
                accepts_bookings=bool(setting.accepts_bookings),
                windows=tuple(windows_by_day.get(setting.day_of_week, ())),
            )

        overrides = tuple(
            DateOverride(
                date=o.override_date,
                is_available=bool(o.is_available),
                windows=tuple(TimeWindow.from_hhmm(w.start_time, w.end_time) for w in o.windows),
                reason=o.reason,
            )
            for o in photographer.date_overrides
        )

        return PhotographerSchedule(
            weekly=WeeklySchedule(days=days),
            overrides=overrides,
            booking_lead_time_hours=photographer.booking_lead_time_hours or 0,
        )

    def lock_day(self, photographer_id: int, day: date) -> None:
        """
        Bump the (photographer, day) lock row, creating it on first use.

        The UPDATE takes the row lock (or SQLite's write lock) and holds it
        until the surrounding transaction ends. On an insert race the loser
        rolls back and bumps the row the winner created, which is why this
        has to be the first write of the transaction.
        """
        stmt = (
            update(PhotographerDayLock)
            .where(
                PhotographerDayLock.photographer_id == photographer_id,
                PhotographerDayLock.lock_date == day,
            )
            .values(version=PhotographerDayLock.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount:
            return

        db.session.add(PhotographerDayLock(photographer_id=photographer_id, lock_date=day, version=1))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise


class SqlAlchemyCatalogStore(CatalogStore):
    def get_customer(self, customer_id: int):
        return db.session.get(Customer, customer_id)

    def get_service(self, service_id: int):
        return db.session.get(Service, service_id)

    def get_package(self, package_id: int):
        return db.session.get(Package, package_id)


class SqlAlchemyStores(Stores):
    def __init__(self):
        self.bookings = SqlAlchemyBookingStore()
        self.transactions = SqlAlchemyTransactionStore()
        self.promotions = SqlAlchemyPromotionStore()
        self.photographers = SqlAlchemyPhotographerStore()
        self.catalog = SqlAlchemyCatalogStore()
        self.change_requests = SqlAlchemyChangeRequestStore()
        self.refund_requests = SqlAlchemyRefundRequestStore()

    def commit(self) -> None:
        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise StaleWriteError(str(exc)) from exc

    def rollback(self) -> None:
        db.session.rollback()

    def flush(self) -> None:
        try:
            db.session.flush()
        except StaleDataError as exc:
            db.session.rollback()
            raise StaleWriteError(str(exc)) from exc
