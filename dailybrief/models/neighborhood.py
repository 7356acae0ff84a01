from sqlalchemy import Boolean, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from dailybrief.models.base import Base, TimestampMixin


class Neighborhood(Base, TimestampMixin):
    """A covered neighborhood, e.g. ``nyc-west-village``."""

    __tablename__ = "neighborhoods"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(255), index=True)
    country: Mapped[str] = mapped_column(String(100), default="USA")
    latitude: Mapped[float | None] = mapped_column(Float, default=None)
    longitude: Mapped[float | None] = mapped_column(Float, default=None)
    timezone: Mapped[str] = mapped_column(String(50), default="America/New_York")
    is_combo: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Neighborhood {self.id}>"


class ComboNeighborhood(Base):
    """Links a combo neighborhood to one of its component neighborhoods."""

    __tablename__ = "combo_neighborhoods"

    combo_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="CASCADE"), primary_key=True
    )
    component_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("neighborhoods.id", ondelete="CASCADE"), primary_key=True
    )
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<ComboNeighborhood {self.combo_id} -> {self.component_id}>"
