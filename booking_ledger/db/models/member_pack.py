from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_ledger.db.base import Base


class PackStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    PAUSED = "paused"


class MemberPack(Base):
    """Prepaid credit allotment; ``total_credits`` of None means unlimited.

    Only ``booking_ledger.services.credit_ledger`` writes the credit columns.
    """

    __tablename__ = "member_packs"
    __table_args__ = (
        CheckConstraint("credits_remaining IS NULL OR credits_remaining >= 0", name="ck_member_packs_non_negative"),
        CheckConstraint(
            "total_credits IS NULL OR credits_remaining <= total_credits",
            name="ck_member_packs_within_total",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"), unique=True, nullable=True
    )
    label: Mapped[str | None] = mapped_column(String(120), nullable=True)
    total_credits: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits_remaining: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PackStatus.ACTIVE.value)
    activated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    client = relationship("User", back_populates="packs")
    bookings = relationship("Booking", back_populates="pack")

    @property
    def is_unlimited(self) -> bool:
        return self.total_credits is None
