from typing import List, Optional
from datetime import datetime
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    ForeignKey,
    Enum,
    Index,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


# Enums
class SearchClass(enum.Enum):
    PIN = "PIN"
    DISTRICT = "DISTRICT"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now
    )


# Models
class Subscriber(Base, AuditMixin):
    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    line_user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    subscriptions: Mapped[List["Subscription"]] = relationship(
        back_populates="subscriber", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_subscribers_is_active", "is_active"),)


class Subscription(Base, AuditMixin):
    """One watched area per row, with the subscriber's criteria for it.

    age_criteria is NULL until the subscriber picks one; 0 means any age band.
    dose_criteria 0 means any dose.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False
    )
    search_class: Mapped[SearchClass] = mapped_column(
        Enum(SearchClass), nullable=False
    )
    search_value: Mapped[str] = mapped_column(String(20), nullable=False)
    age_criteria: Mapped[Optional[int]] = mapped_column(Integer)
    vaccine_criteria: Mapped[str] = mapped_column(
        String(50), default="ANY", nullable=False
    )
    dose_criteria: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reminders_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    subscriber: Mapped["Subscriber"] = relationship(back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint(
            "subscriber_id",
            "search_class",
            "search_value",
            name="uq_subscriptions_subscriber_area",
        ),
        CheckConstraint(
            "age_criteria IS NULL OR age_criteria IN (0, 18, 45)",
            name="ck_subscriptions_age_criteria",
        ),
        CheckConstraint(
            "dose_criteria IN (0, 1, 2)", name="ck_subscriptions_dose_criteria"
        ),
        Index("idx_subscriptions_area", "search_class", "search_value"),
    )


class AreaQueryStatus(Base, AuditMixin):
    __tablename__ = "area_query_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    search_class: Mapped[SearchClass] = mapped_column(
        Enum(SearchClass), nullable=False
    )
    search_value: Mapped[str] = mapped_column(String(20), nullable=False)
    last_queried_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_queried_status: Mapped[Optional[bool]] = mapped_column(Boolean)
    query_fail_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "search_class", "search_value", name="uq_area_query_statuses_area"
        ),
        Index("idx_area_query_statuses_fail_count", "query_fail_count"),
    )
