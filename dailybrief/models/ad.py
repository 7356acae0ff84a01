import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from dailybrief.models.base import Base, str_enum


class AdTargeting(str, enum.Enum):
    """Who a paid ad is booked for."""

    GLOBAL = "global"
    GLOBAL_TAKEOVER = "global_takeover"
    NEIGHBORHOOD = "neighborhood"


class AdStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class HouseAdType(str, enum.Enum):
    """Internal promotional slots used when nothing is booked."""

    NEWSLETTER = "newsletter"  # Signup pitch, only shown to non-subscribers
    APP_DOWNLOAD = "app_download"  # "Check out a new neighborhood"
    SUNDAY_EDITION = "sunday_edition"
    SUGGEST_NEIGHBORHOOD = "suggest_neighborhood"
    ADVERTISE = "advertise"


class Ad(Base):
    """Paid sponsorship booked for a date range."""

    __tablename__ = "ads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    image_url: Mapped[str | None] = mapped_column(String(2048), default=None)
    headline: Mapped[str] = mapped_column(String(255))
    click_url: Mapped[str] = mapped_column(String(2048))
    sponsor_label: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[AdStatus] = mapped_column(
        str_enum(AdStatus, "adstatus"), default=AdStatus.ACTIVE, index=True
    )
    targeting: Mapped[AdTargeting] = mapped_column(
        str_enum(AdTargeting, "adtargeting"), default=AdTargeting.NEIGHBORHOOD
    )
    neighborhood_id: Mapped[str | None] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="SET NULL"), index=True, default=None
    )
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(default=func.now())

    def __repr__(self) -> str:
        return f"<Ad {self.id} {self.targeting.value}>"


class HouseAd(Base):
    """Fallback promotion from the internal pool."""

    __tablename__ = "house_ads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[HouseAdType] = mapped_column(str_enum(HouseAdType, "houseadtype"))
    image_url: Mapped[str | None] = mapped_column(String(2048), default=None)
    headline: Mapped[str | None] = mapped_column(String(255), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    click_url: Mapped[str | None] = mapped_column(String(2048), default=None)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<HouseAd {self.type.value}>"
