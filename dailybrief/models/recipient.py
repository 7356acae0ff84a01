"""Digest audiences: account holders (profiles) and anonymous subscribers."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dailybrief.core.security import generate_unsubscribe_token
from dailybrief.models.base import Base, TimestampMixin


class RecipientSource(str, enum.Enum):
    """Which population a digest recipient comes from."""

    PROFILE = "profile"
    NEWSLETTER = "newsletter"


class Profile(Base, TimestampMixin):
    """Account holder with neighborhood preferences."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    primary_city: Mapped[str | None] = mapped_column(String(255), default=None)
    primary_neighborhood_id: Mapped[str | None] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="SET NULL"), default=None
    )
    primary_timezone: Mapped[str | None] = mapped_column(String(50), default=None)
    email_unsubscribe_token: Mapped[str] = mapped_column(
        String(64), default=generate_unsubscribe_token, index=True
    )
    daily_email_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    paused_topics: Mapped[list[str]] = mapped_column(JSON, default=list)
    referral_code: Mapped[str | None] = mapped_column(String(20), unique=True, default=None)

    # Relationships
    neighborhood_preferences: Mapped[list[UserNeighborhoodPreference]] = relationship(
        back_populates="profile",
        order_by="UserNeighborhoodPreference.position",
        lazy="selectin",
    )

    @property
    def neighborhood_ids(self) -> list[str]:
        return [p.neighborhood_id for p in self.neighborhood_preferences]

    def __repr__(self) -> str:
        return f"<Profile {self.email}>"


class UserNeighborhoodPreference(Base, TimestampMixin):
    """One subscribed neighborhood for a profile, in the order the user chose."""

    __tablename__ = "user_neighborhood_preferences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), index=True
    )
    neighborhood_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="CASCADE")
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    profile: Mapped[Profile] = relationship(back_populates="neighborhood_preferences")

    def __repr__(self) -> str:
        return f"<UserNeighborhoodPreference {self.user_id} -> {self.neighborhood_id}>"


class NewsletterSubscriber(Base, TimestampMixin):
    """Anonymous, email-verified newsletter subscription."""

    __tablename__ = "newsletter_subscribers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    neighborhood_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    timezone: Mapped[str | None] = mapped_column(String(50), default=None)
    unsubscribe_token: Mapped[str] = mapped_column(
        String(64), default=generate_unsubscribe_token, index=True
    )
    daily_email_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    paused_topics: Mapped[list[str]] = mapped_column(JSON, default=list)
    referral_code: Mapped[str | None] = mapped_column(String(20), unique=True, default=None)

    def __repr__(self) -> str:
        return f"<NewsletterSubscriber {self.email}>"
