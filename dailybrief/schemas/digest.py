"""In-memory payload for one recipient's Daily Brief."""

from pydantic import BaseModel, Field

from dailybrief.models.recipient import RecipientSource
from dailybrief.schemas.weather import WeatherSnapshot, WeatherStory


class Recipient(BaseModel):
    """A resolved digest recipient, built fresh from current preferences."""

    id: str
    email: str
    source: RecipientSource
    timezone: str
    primary_neighborhood_id: str | None = None
    subscribed_neighborhood_ids: list[str] = Field(default_factory=list)
    unsubscribe_token: str
    paused_topics: list[str] = Field(default_factory=list)
    referral_code: str | None = None


class Story(BaseModel):
    """Read-only projection of an article for the email."""

    headline: str
    preview_text: str = ""
    image_url: str | None = None
    category_label: str | None = None
    article_url: str
    location: str


class EmailAd(BaseModel):
    """Ad slot payload handed to the renderer."""

    id: str
    image_url: str = ""
    headline: str
    body: str | None = None
    click_url: str
    sponsor_label: str = "Sponsored"
    impression_url: str = ""

    @property
    def is_house_ad(self) -> bool:
        return self.id.startswith("house-")


class AdSlots(BaseModel):
    header_ad: EmailAd | None = None
    native_ad: EmailAd | None = None


class PrimarySection(BaseModel):
    neighborhood_id: str
    neighborhood_name: str
    city_name: str
    weather: WeatherSnapshot | None = None
    weather_story: WeatherStory | None = None
    stories: list[Story] = Field(default_factory=list)


class SatelliteSection(BaseModel):
    neighborhood_id: str
    neighborhood_name: str
    city_name: str
    stories: list[Story] = Field(default_factory=list)


class DigestContent(BaseModel):
    """Everything the renderer needs for one Daily Brief."""

    recipient: Recipient
    date: str
    primary_section: PrimarySection | None = None
    satellite_sections: list[SatelliteSection] = Field(default_factory=list)
    header_ad: EmailAd | None = None
    native_ad: EmailAd | None = None
    # Short "information gap" line written upstream by the brief generator
    subject_teaser: str | None = None

    @property
    def neighborhood_count(self) -> int:
        return (1 if self.primary_section else 0) + len(self.satellite_sections)

    @property
    def story_count(self) -> int:
        primary = len(self.primary_section.stories) if self.primary_section else 0
        return primary + sum(len(s.stories) for s in self.satellite_sections)
