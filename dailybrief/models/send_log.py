"""Send tracking: per-day idempotency records and the instant-resend log."""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from dailybrief.core.datetime_utils import utc_now
from dailybrief.models.base import Base, str_enum
from dailybrief.models.recipient import RecipientSource


class DigestType(str, enum.Enum):
    """Content digests that count toward the daily email cap."""

    DAILY_BRIEF = "daily_brief"
    SUNDAY_EDITION = "sunday_edition"


class SendTrigger(str, enum.Enum):
    """What caused a digest to go out."""

    SCHEDULED = "scheduled"
    TEST = "test"
    CITY_CHANGE = "city_change"
    NEIGHBORHOOD_CHANGE = "neighborhood_change"
    TOPIC_CHANGE = "topic_change"


class ResendTrigger(str, enum.Enum):
    """Preference changes that trigger an instant re-send."""

    CITY_CHANGE = "city_change"
    NEIGHBORHOOD_CHANGE = "neighborhood_change"
    TOPIC_CHANGE = "topic_change"

    def as_send_trigger(self) -> SendTrigger:
        match self:
            case ResendTrigger.CITY_CHANGE:
                return SendTrigger.CITY_CHANGE
            case ResendTrigger.NEIGHBORHOOD_CHANGE:
                return SendTrigger.NEIGHBORHOOD_CHANGE
            case ResendTrigger.TOPIC_CHANGE:
                return SendTrigger.TOPIC_CHANGE


class DigestSend(Base):
    """Proves a digest reached a recipient on a given (UTC) date.

    One row per (recipient, send_date, digest_type). Re-sends upsert the
    same row and bump ``version`` instead of inserting a second one.
    """

    __tablename__ = "digest_sends"
    __table_args__ = (
        UniqueConstraint(
            "recipient_id", "send_date", "digest_type", name="uq_recipient_date_digest"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id: Mapped[str] = mapped_column(String(64), index=True)
    recipient_source: Mapped[RecipientSource] = mapped_column(
        str_enum(RecipientSource, "recipientsource")
    )
    email: Mapped[str] = mapped_column(String(255))
    timezone: Mapped[str | None] = mapped_column(String(50), default=None)
    digest_type: Mapped[DigestType] = mapped_column(
        str_enum(DigestType, "digesttype"), default=DigestType.DAILY_BRIEF
    )
    primary_neighborhood_id: Mapped[str | None] = mapped_column(String(100), default=None)
    neighborhood_count: Mapped[int] = mapped_column(Integer, default=0)
    story_count: Mapped[int] = mapped_column(Integer, default=0)
    had_header_ad: Mapped[bool] = mapped_column(Boolean, default=False)
    had_native_ad: Mapped[bool] = mapped_column(Boolean, default=False)
    trigger: Mapped[SendTrigger] = mapped_column(
        str_enum(SendTrigger, "sendtrigger"), default=SendTrigger.SCHEDULED
    )
    version: Mapped[int] = mapped_column(Integer, default=1)
    send_date: Mapped[date] = mapped_column(Date, index=True)
    sent_at: Mapped[datetime] = mapped_column(default=utc_now)

    def __repr__(self) -> str:
        return f"<DigestSend {self.recipient_id} {self.digest_type.value} {self.send_date}>"


class InstantResendLog(Base):
    """Append-only log of instant re-sends, used only for counting."""

    __tablename__ = "instant_resend_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id: Mapped[str] = mapped_column(String(64), index=True)
    recipient_source: Mapped[RecipientSource] = mapped_column(
        str_enum(RecipientSource, "recipientsource")
    )
    trigger: Mapped[ResendTrigger] = mapped_column(str_enum(ResendTrigger, "resendtrigger"))
    send_date: Mapped[date] = mapped_column(Date, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

    def __repr__(self) -> str:
        return f"<InstantResendLog {self.recipient_id} {self.trigger.value} {self.send_date}>"
