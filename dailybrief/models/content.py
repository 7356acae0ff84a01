import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from dailybrief.models.base import Base, str_enum


class ArticleStatus(str, enum.Enum):
    """Publication state of an article."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Article(Base):
    """Published neighborhood content. Written by the generation jobs, read here."""

    __tablename__ = "articles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    neighborhood_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="CASCADE"), index=True
    )
    headline: Mapped[str] = mapped_column(String(500))
    preview_text: Mapped[str | None] = mapped_column(Text, default=None)
    body_text: Mapped[str | None] = mapped_column(Text, default=None)
    image_url: Mapped[str | None] = mapped_column(String(2048), default=None)
    category_label: Mapped[str | None] = mapped_column(String(255), default=None)
    # Short "information gap" subject line written by the brief generator
    subject_teaser: Mapped[str | None] = mapped_column(String(120), default=None)
    slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    status: Mapped[ArticleStatus] = mapped_column(
        str_enum(ArticleStatus, "articlestatus"), default=ArticleStatus.PUBLISHED, index=True
    )
    published_at: Mapped[datetime] = mapped_column(index=True)
    created_at: Mapped[datetime] = mapped_column(default=func.now())

    def __repr__(self) -> str:
        return f"<Article {self.slug}>"


class NeighborhoodBrief(Base):
    """Rolling neighborhood brief kept outside the articles table."""

    __tablename__ = "neighborhood_briefs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    neighborhood_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="CASCADE"), index=True
    )
    headline: Mapped[str] = mapped_column(String(500))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=func.now(), index=True)
    expires_at: Mapped[datetime] = mapped_column()

    def __repr__(self) -> str:
        return f"<NeighborhoodBrief {self.neighborhood_id} @ {self.created_at}>"
