from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, SmallInteger, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_ledger.db.base import Base


class AvailabilityRule(Base):
    __tablename__ = "availability_rules"
    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_availability_rules_weekday"),
        CheckConstraint("start_minutes >= 0 AND end_minutes <= 1439", name="ck_availability_rules_bounds"),
        CheckConstraint("start_minutes < end_minutes", name="ck_availability_rules_window"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    provider_id: Mapped[int] = mapped_column(
        ForeignKey("provider_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 0 = Monday, matching date.weekday()
    weekday: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_minutes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    end_minutes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    provider = relationship("ProviderProfile", back_populates="rules")
