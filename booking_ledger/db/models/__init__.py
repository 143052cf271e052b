from booking_ledger.db.models.availability_rule import AvailabilityRule
from booking_ledger.db.models.availability_slot import AvailabilitySlot, SlotSource
from booking_ledger.db.models.booking import BLOCKING_STATUSES, Booking, BookingStatus
from booking_ledger.db.models.member_pack import MemberPack, PackStatus
from booking_ledger.db.models.payment import Payment, PaymentMethod, PaymentStatus
from booking_ledger.db.models.provider_profile import ProviderProfile
from booking_ledger.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "ProviderProfile",
    "AvailabilityRule",
    "AvailabilitySlot",
    "SlotSource",
    "MemberPack",
    "PackStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Booking",
    "BookingStatus",
    "BLOCKING_STATUSES",
]
