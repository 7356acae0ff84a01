"""Tests for Daily Brief content assembly."""

from datetime import date, datetime

import httpx
import pytest
from sqlalchemy import func, select

from dailybrief.models.content import Article, ArticleStatus
from dailybrief.models.recipient import RecipientSource
from dailybrief.schemas.digest import Recipient
from dailybrief.schemas.weather import WeatherPriority
from dailybrief.services.assembler import (
    ContentAssembler,
    brief_preview,
    brief_slug,
    clean_category_label,
    clean_headline,
    filter_paused_topics,
)
from dailybrief.weather.story import WeatherStoryEngine
from tests.conftest import NOW, forecast_payload


def make_recipient(
    neighborhood_ids: list[str],
    primary: str | None = None,
    paused_topics: list[str] | None = None,
) -> Recipient:
    return Recipient(
        id="recipient-1",
        email="reader@example.com",
        source=RecipientSource.PROFILE,
        timezone="America/New_York",
        primary_neighborhood_id=primary or (neighborhood_ids[0] if neighborhood_ids else None),
        subscribed_neighborhood_ids=neighborhood_ids,
        unsubscribe_token="tok",
        paused_topics=paused_topics or [],
    )


class TestCleaning:
    def test_clean_headline_full_name(self):
        headline = "Beverly Hills DAILY BRIEF: Bev Hills Buzz: Rodeo reopens"
        assert clean_headline(headline, "Beverly Hills") == "Bev Hills Buzz: Rodeo reopens"

    def test_clean_headline_abbreviated_name(self):
        assert clean_headline("Bev Hills Daily Brief: Rodeo", "Beverly Hills") == "Rodeo"

    def test_clean_headline_leaves_plain_headlines(self):
        assert clean_headline("Rents rise again", "SoHo") == "Rents rise again"

    def test_clean_category_label(self):
        assert clean_category_label("Beverly Hills Daily Brief", "Beverly Hills") == "Daily Brief"
        assert clean_category_label("Dining", "Beverly Hills") == "Dining"
        assert clean_category_label(None, "Beverly Hills") is None

    def test_brief_preview_strips_citations(self):
        preview = brief_preview("Bakery reopened [[1]](https://x.test/a).\n\nLines are long.")
        assert preview == "Bakery reopened . Lines are long."

    def test_brief_preview_truncates(self):
        preview = brief_preview("word " * 100)
        assert len(preview) == 203
        assert preview.endswith("...")

    def test_brief_slug_is_per_date(self):
        first = brief_slug("nyc-soho", datetime(2026, 1, 13, 9), "SoHo DAILY BRIEF: Buzz")
        second = brief_slug("nyc-soho", datetime(2026, 1, 14, 9), "SoHo DAILY BRIEF: Buzz")

        assert first == "nyc-soho-brief-20260113-soho-daily-brief-buzz"
        assert first != second
        assert brief_slug("nyc-soho", datetime(2026, 1, 13), "!!!") == "nyc-soho-brief-20260113"

    def test_brief_slug_is_per_headline(self):
        day = datetime(2026, 1, 13, 9)
        first = brief_slug("nyc-soho", day, "SoHo DAILY BRIEF: Gallery night")
        second = brief_slug("nyc-soho", day, "SoHo DAILY BRIEF: Market day")

        assert first != second
        assert brief_slug("nyc-soho", day, "SoHo DAILY BRIEF: Gallery night") == first


class TestFilterPausedTopics:
    def test_drops_matching_categories_but_keeps_briefs(self):
        articles = [
            Article(headline="a", category_label="Dining"),
            Article(headline="b", category_label="SoHo Daily Brief"),
            Article(headline="c", category_label="Real Estate"),
            Article(headline="d", category_label=None),
        ]

        kept = filter_paused_topics(articles, ["dining", "Daily Brief", " "])

        assert [a.headline for a in kept] == ["b", "c", "d"]

    def test_no_paused_topics(self):
        articles = [Article(headline="a", category_label="Dining")]
        assert filter_paused_topics(articles, []) == articles


@pytest.mark.asyncio
class TestAssemble:
    async def test_primary_section(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory(id="nyc-west-village")
        await article_factory(hood.id, headline="Older news", hours_ago=3, slug="older")
        await article_factory(hood.id, headline="Fresh news", hours_ago=1, slug="fresh")
        await article_factory(
            hood.id,
            headline="West Village DAILY BRIEF: Bleecker Buzz",
            category_label="West Village Daily Brief",
            subject_teaser="Why the bakery closed",
            hours_ago=5,
            slug="brief",
        )

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        section = content.primary_section
        assert section.neighborhood_name == "West Village"
        assert [s.headline for s in section.stories] == [
            "Bleecker Buzz",
            "Fresh news",
            "Older news",
        ]
        assert section.stories[0].category_label == "Daily Brief"
        assert section.stories[1].article_url == (
            "http://localhost:8000/new-york/west-village/fresh?ref=email"
        )
        assert section.stories[1].location == "West Village, New York"
        assert content.subject_teaser == "Why the bakery closed"
        assert content.date == "Tuesday, January 13, 2026"
        assert content.satellite_sections == []

    async def test_widens_lookback(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory()
        await article_factory(hood.id, headline="Quiet week", hours_ago=100)
        await article_factory(hood.id, headline="Too old", hours_ago=200)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert [s.headline for s in content.primary_section.stories] == ["Quiet week"]

    async def test_week_lookback_returns_all_older_stories(
        self, pipeline, neighborhood_factory, article_factory
    ):
        hood = await neighborhood_factory()
        for hours in (60, 90, 120):
            await article_factory(hood.id, headline=f"{hours}h ago", hours_ago=hours)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert [s.headline for s in content.primary_section.stories] == [
            "60h ago",
            "90h ago",
            "120h ago",
        ]

    async def test_ignores_unpublished(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory()
        await article_factory(hood.id, status=ArticleStatus.DRAFT)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert content.primary_section.stories == []

    async def test_story_limit(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory()
        for i in range(8):
            await article_factory(hood.id, headline=f"Story {i}", hours_ago=i + 1)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert len(content.primary_section.stories) == 5

    async def test_paused_topics(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory()
        await article_factory(hood.id, headline="New bistro", category_label="Dining")
        await article_factory(hood.id, headline="Council vote", category_label="News")
        await article_factory(hood.id, headline="Brief", category_label="Daily Brief")

        recipient = make_recipient([hood.id], paused_topics=["Dining", "Daily Brief"])
        content = await pipeline.assembler.assemble(recipient, now=NOW)

        headlines = [s.headline for s in content.primary_section.stories]
        assert "New bistro" not in headlines
        assert headlines[0] == "Brief"

    async def test_satellites(self, pipeline, neighborhood_factory, article_factory):
        primary = await neighborhood_factory(id="nyc-west-village")
        tribeca = await neighborhood_factory(id="nyc-tribeca", name="Tribeca")
        quiet = await neighborhood_factory(id="nyc-quiet", name="Quiet")
        await article_factory(primary.id)
        for i in range(4):
            await article_factory(tribeca.id, headline=f"Tribeca {i}", hours_ago=i + 1)

        recipient = make_recipient([quiet.id, primary.id, tribeca.id], primary=primary.id)
        content = await pipeline.assembler.assemble(recipient, now=NOW)

        assert [s.neighborhood_id for s in content.satellite_sections] == ["nyc-tribeca"]
        assert [s.headline for s in content.satellite_sections[0].stories] == [
            "Tribeca 0",
            "Tribeca 1",
        ]
        assert content.neighborhood_count == 2
        assert content.story_count == 3

    async def test_combo_neighborhood(self, pipeline, neighborhood_factory, article_factory):
        north = await neighborhood_factory(id="nyc-north", name="North")
        south = await neighborhood_factory(id="nyc-south", name="South")
        combo = await neighborhood_factory(
            id="nyc-combo", name="North and South", is_combo=True, components=[north, south]
        )
        await article_factory(south.id, headline="From the south")

        content = await pipeline.assembler.assemble(make_recipient([combo.id]), now=NOW)

        story = content.primary_section.stories[0]
        assert story.headline == "From the south"
        assert story.location == "North and South, New York"

    async def test_drops_svg_images(self, pipeline, neighborhood_factory, article_factory):
        hood = await neighborhood_factory()
        await article_factory(hood.id, image_url="https://cdn.test/logo.SVG", hours_ago=1)
        await article_factory(hood.id, image_url="https://cdn.test/photo.jpg", hours_ago=2)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert [s.image_url for s in content.primary_section.stories] == [
            None,
            "https://cdn.test/photo.jpg",
        ]

    async def test_unknown_primary_has_no_section(self, pipeline):
        content = await pipeline.assembler.assemble(make_recipient(["gone"]), now=NOW)

        assert content.primary_section is None
        assert content.story_count == 0


@pytest.mark.asyncio
class TestBriefSynthesis:
    async def test_synthesizes_from_neighborhood_brief(
        self, pipeline, neighborhood_factory, article_factory, neighborhood_brief_factory
    ):
        hood = await neighborhood_factory(id="nyc-west-village")
        await article_factory(hood.id, headline="Council vote")
        await neighborhood_brief_factory(hood.id)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        stories = content.primary_section.stories
        assert [s.headline for s in stories] == ["Bleecker Buzz", "Council vote"]
        assert stories[0].category_label == "Daily Brief"
        assert "[[1]]" not in stories[0].preview_text

    async def test_reuses_row_on_second_run(
        self, pipeline, db_session, neighborhood_factory, neighborhood_brief_factory
    ):
        hood = await neighborhood_factory(id="nyc-west-village")
        await neighborhood_brief_factory(hood.id)
        recipient = make_recipient([hood.id])

        first = await pipeline.assembler.assemble(recipient, now=NOW)
        second = await pipeline.assembler.assemble(recipient, now=NOW)

        count = await db_session.execute(select(func.count()).select_from(Article))
        assert count.scalar_one() == 1
        assert first.primary_section.stories[0].article_url == (
            second.primary_section.stories[0].article_url
        )
        assert "-brief-20260113-" in first.primary_section.stories[0].article_url

    async def test_expired_brief_is_ignored(
        self, pipeline, neighborhood_factory, neighborhood_brief_factory
    ):
        hood = await neighborhood_factory()
        await neighborhood_brief_factory(hood.id, expires_in_hours=-1)

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert content.primary_section.stories == []

    async def test_existing_brief_article_preferred(
        self, pipeline, neighborhood_factory, article_factory, neighborhood_brief_factory
    ):
        hood = await neighborhood_factory()
        for i in range(8):
            await article_factory(hood.id, headline=f"Story {i}", hours_ago=i + 1)
        await article_factory(
            hood.id, headline="Last week's brief", category_label="Daily Brief", hours_ago=100
        )
        await neighborhood_brief_factory(hood.id, headline="Unused")

        content = await pipeline.assembler.assemble(make_recipient([hood.id]), now=NOW)

        headlines = [s.headline for s in content.primary_section.stories]
        assert headlines[0] == "Last week's brief"
        assert len(headlines) == 5


@pytest.mark.asyncio
class TestWeather:
    async def test_weather_for_primary(
        self, db_session, neighborhood_factory, article_factory, make_forecast_client
    ):
        payload = forecast_payload(date(2026, 1, 13), [5, 12, 5])
        engine = WeatherStoryEngine(
            make_forecast_client(lambda request: httpx.Response(200, json=payload)), {"USA"}
        )
        assembler = ContentAssembler(db_session, "http://localhost:8000", weather_engine=engine)
        hood = await neighborhood_factory()
        await article_factory(hood.id)

        content = await assembler.assemble(make_recipient([hood.id]), now=NOW)

        section = content.primary_section
        assert section.weather.temperature_f == 41
        assert section.weather_story.priority == WeatherPriority.ANOMALY
        assert section.weather_story.headline == (
            "Unseasonably Warm Tomorrow (Wed): 54°F, 14°F above average."
        )

    async def test_forecast_failure_still_assembles(
        self, db_session, neighborhood_factory, article_factory, make_forecast_client
    ):
        engine = WeatherStoryEngine(make_forecast_client(lambda request: httpx.Response(404)))
        assembler = ContentAssembler(db_session, "http://localhost:8000", weather_engine=engine)
        hood = await neighborhood_factory()
        await article_factory(hood.id)

        content = await assembler.assemble(make_recipient([hood.id]), now=NOW)

        assert content.primary_section.weather is None
        assert content.primary_section.weather_story is None
        assert len(content.primary_section.stories) == 1
