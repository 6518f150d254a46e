"""Store interfaces (repository pattern).

Services receive a Stores bundle instead of reaching for the ORM session, so
the booking core can be exercised against any implementation that honours
these contracts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional


class StaleWriteError(Exception):
    """A versioned row changed between read and commit."""


class BookingStore(ABC):
    """Booking persistence and the booking event trail."""

    @abstractmethod
    def get(self, booking_id: int, *, for_update: bool = False):
        """Return a booking by id (active or not), or None."""
        ...

    @abstractmethod
    def lock(self, booking_id: int) -> bool:
        """Take the booking row's write lock for the rest of the transaction. False if no such row."""
        ...

    @abstractmethod
    def get_by_reference(self, reference: str):
        """Return a booking by its BK- reference, or None."""
        ...

    @abstractmethod
    def reference_exists(self, reference: str) -> bool:
        """Check if a booking reference is taken."""
        ...

    @abstractmethod
    def add(self, booking) -> None:
        """Stage a new booking (with its lines) for insert."""
        ...

    @abstractmethod
    def list_blocking(self, photographer_id: int, booking_date: date, *, exclude_booking_id: Optional[int] = None) -> list:
        """Active bookings occupying the photographer on that date (not cancelled or completed)."""
        ...

    @abstractmethod
    def list_for_customer(self, customer_id: int, *, include_inactive: bool = False) -> list:
        """Bookings of a customer, newest booking date first."""
        ...

    @abstractmethod
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
        """Append one audit event in the current transaction."""
        ...

    @abstractmethod
    def list_events(self, booking_id: int) -> list:
        """Events for a booking in occurrence order."""
        ...


class TransactionStore(ABC):
    """Financial transaction persistence."""

    @abstractmethod
    def get(self, transaction_id: int, *, for_update: bool = False):
        """Return a transaction by id, or None."""
        ...

    @abstractmethod
    def reference_exists(self, reference: str) -> bool:
        """Check if a transaction reference is taken."""
        ...

    @abstractmethod
    def add(self, transaction) -> None:
        """Stage a new transaction for insert."""
        ...

    @abstractmethod
    def list_for_booking(self, booking_id: int) -> list:
        """All active transactions of a booking, oldest first, in one read."""
        ...

    @abstractmethod
    def list_refunds_for(self, original_transaction_id: int) -> list:
        """Refund transactions pointing at an original."""
        ...


class ChangeRequestStore(ABC):
    """Customer cancel / reschedule requests."""

    @abstractmethod
    def get(self, request_id: int, *, for_update: bool = False):
        """Return a change request by id (active or not), or None."""
        ...

    @abstractmethod
    def reference_exists(self, reference: str) -> bool:
        """Check if a REQ- reference is taken."""
        ...

    @abstractmethod
    def add(self, request) -> None:
        """Stage a new change request for insert."""
        ...

    @abstractmethod
    def find_pending(self, booking_id: int, request_type: str):
        """The active PENDING request of that type for a booking, or None."""
        ...

    @abstractmethod
    def list(
        self,
        *,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        booking_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> list:
        """Active requests matching every given filter, newest first."""
        ...


class RefundRequestStore(ABC):
    """Customer refund requests against completed payments."""

    @abstractmethod
    def get(self, request_id: int, *, for_update: bool = False):
        """Return a refund request by id (active or not), or None."""
        ...

    @abstractmethod
    def reference_exists(self, reference: str) -> bool:
        """Check if a TRQ- reference is taken."""
        ...

    @abstractmethod
    def add(self, request) -> None:
        """Stage a new refund request for insert."""
        ...

    @abstractmethod
    def find_pending(self, transaction_id: int):
        """The active PENDING request for a transaction, or None."""
        ...

    @abstractmethod
    def list(
        self,
        *,
        status: Optional[str] = None,
        transaction_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> list:
        """Active requests matching every given filter, newest first."""
        ...


class PromotionStore(ABC):
    """Promotion persistence and the atomic usage counter."""

    @abstractmethod
    def get(self, promo_id: int):
        """Return a promotion by id, or None."""
        ...

    @abstractmethod
    def get_by_code(self, code: str):
        """Return a promotion by upper-case code, or None."""
        ...

    @abstractmethod
    def add(self, fields: dict, actor_id: Optional[str]):
        """Stage a new promotion built from validated fields."""
        ...

    @abstractmethod
    def list(self, *, active_only: bool = False) -> list:
        """Promotions ordered by code."""
        ...

    @abstractmethod
    def try_increment_usage(self, promo_id: int) -> bool:
        """Increment usage_count if active and below the limit, in one statement. True if incremented."""
        ...


class PhotographerStore(ABC):
    """Photographer lookups, schedules and per-day write serialization."""

    @abstractmethod
    def get(self, photographer_id: int):
        """Return a photographer by id, or None."""
        ...

    @abstractmethod
    def load_schedule(self, photographer_id: int):
        """Return the photographer's PhotographerSchedule, or None if unknown."""
        ...

    @abstractmethod
    def lock_day(self, photographer_id: int, day: date) -> None:
        """Serialize writers for (photographer, day); must be the first write of the transaction."""
        ...


class CatalogStore(ABC):
    """Read-only access to customers, services and packages."""

    @abstractmethod
    def get_customer(self, customer_id: int):
        """Return a customer by id, or None."""
        ...

    @abstractmethod
    def get_service(self, service_id: int):
        """Return a service by id, or None."""
        ...

    @abstractmethod
    def get_package(self, package_id: int):
        """Return a package (with items) by id, or None."""
        ...


class Stores(ABC):
    """Bundle of stores sharing one unit of work."""

    bookings: BookingStore
    transactions: TransactionStore
    promotions: PromotionStore
    photographers: PhotographerStore
    catalog: CatalogStore
    change_requests: ChangeRequestStore
    refund_requests: RefundRequestStore

    @abstractmethod
    def commit(self) -> None:
        """Commit the unit of work; raises StaleWriteError on a lost optimistic lock."""
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard the unit of work."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """Push staged changes so generated ids are available."""
        ...
