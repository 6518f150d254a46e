from .audit import AuditInfo, AuditMixin
from .catalog import Customer, Service, Package, PackageItem
from .photographers import (
    Photographer,
    PhotographerDaySetting,
    PhotographerScheduleWindow,
    PhotographerDateOverride,
    PhotographerOverrideWindow,
)
from .promotions import Promotion
from .bookings import Booking, BookingLine, BookingEvent, PhotographerDayLock
from .transactions import Transaction
from .requests import BookingChangeRequest, RefundRequest

__all__ = [
    'AuditInfo', 'AuditMixin',
    'Customer', 'Service', 'Package', 'PackageItem',
    'Photographer', 'PhotographerDaySetting', 'PhotographerScheduleWindow',
    'PhotographerDateOverride', 'PhotographerOverrideWindow',
    'Promotion',
    'Booking', 'BookingLine', 'BookingEvent', 'PhotographerDayLock',
    'Transaction',
    'BookingChangeRequest', 'RefundRequest',
]
