"""Tests for email rendering and the Resend transport."""

import pytest
import resend

from dailybrief.models.recipient import RecipientSource
from dailybrief.schemas.digest import (
    DigestContent,
    EmailAd,
    PrimarySection,
    Recipient,
    SatelliteSection,
    Story,
)
from dailybrief.schemas.weather import WeatherPriority, WeatherSnapshot, WeatherStory
from dailybrief.services.email_service import (
    RATE_LIMIT_NOTICE_SUBJECT,
    JinjaDigestRenderer,
    ResendTransport,
    default_from_address,
    send_rate_limit_notice,
)
from tests.conftest import FakeRenderer, FakeTransport

BASE_URL = "http://localhost:8000"


def story(headline: str, **kwargs) -> Story:
    return Story(
        headline=headline,
        article_url=f"{BASE_URL}/new-york/west-village/{headline.lower().replace(' ', '-')}",
        location="West Village, New York",
        **kwargs,
    )


@pytest.fixture
def recipient():
    return Recipient(
        id="recipient-1",
        email="reader@example.com",
        source=RecipientSource.PROFILE,
        timezone="America/New_York",
        primary_neighborhood_id="nyc-west-village",
        subscribed_neighborhood_ids=["nyc-west-village", "nyc-tribeca"],
        unsubscribe_token="tok123",
        referral_code="ABCD2345",
    )


@pytest.fixture
def content(recipient):
    return DigestContent(
        recipient=recipient,
        date="Tuesday, January 13, 2026",
        primary_section=PrimarySection(
            neighborhood_id="nyc-west-village",
            neighborhood_name="West Village",
            city_name="New York",
            stories=[
                story("Bleecker Buzz", category_label="Daily Brief", preview_text="Lines."),
                story("Council vote"),
                story("Pier reopens"),
            ],
        ),
        satellite_sections=[
            SatelliteSection(
                neighborhood_id="nyc-tribeca",
                neighborhood_name="Tribeca",
                city_name="New York",
                stories=[story("Film festival")],
            )
        ],
        native_ad=EmailAd(
            id="house-1",
            headline="Suggest a neighborhood",
            click_url="https://readflaneur.com/suggest",
            sponsor_label="Flaneur",
        ),
    )


class TestDefaultFromAddress:
    def test_uses_email_domain(self, settings):
        assert default_from_address(settings) == "Flaneur News <hello@example.com>"

    def test_bare_configured_address(self, settings):
        settings = settings.model_copy(update={"email_from": "brief@flaneur.test"})
        assert default_from_address(settings) == "Flaneur News <brief@flaneur.test>"

    def test_full_configured_address(self, settings):
        settings = settings.model_copy(update={"email_from": "Morning <brief@flaneur.test>"})
        assert default_from_address(settings) == "Morning <brief@flaneur.test>"


class TestJinjaDigestRenderer:
    def test_renders_sections_and_footer(self, content):
        subject = "Daily Brief: West Village. Bleecker Buzz"
        html = JinjaDigestRenderer(BASE_URL).render(content, subject)

        assert "<title>Daily Brief: West Village. Bleecker Buzz</title>" in html
        assert "Tuesday, January 13, 2026" in html
        assert "Bleecker Buzz" in html
        assert "Tribeca" in html
        assert "Film festival" in html
        assert f"{BASE_URL}/api/email/unsubscribe?token=tok123" in html
        assert f"{BASE_URL}/email/preferences?token=tok123" in html
        assert f"{BASE_URL}/invite?ref=ABCD2345" in html

    def test_native_ad_after_second_story(self, content):
        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert html.index("Council vote") < html.index("Suggest a neighborhood")
        assert html.index("Suggest a neighborhood") < html.index("Pier reopens")
        assert html.count("Suggest a neighborhood") == 1

    def test_header_ad_and_impression_pixel(self, content):
        content.header_ad = EmailAd(
            id="5b1c",
            headline="Acme coffee",
            click_url="https://acme.test",
            sponsor_label="Acme",
            impression_url=f"{BASE_URL}/api/ads/5b1c/impression?source=email",
        )

        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert html.index("Acme coffee") < html.index("West Village")
        assert f"{BASE_URL}/api/ads/5b1c/impression?source=email" in html

    def test_weather_story_wins_over_snapshot(self, content):
        content.primary_section.weather = WeatherSnapshot(
            temperature_c=5, temperature_f=41, high_c=6, low_c=-2, use_fahrenheit=True
        )
        content.primary_section.weather_story = WeatherStory(
            priority=WeatherPriority.ANOMALY,
            headline="Unseasonably Warm Tomorrow (Wed): 54°F, 14°F above average.",
            icon="thermometer-up",
            temperature_c=5,
            temperature_f=41,
            forecast_day="Tomorrow (Wed)",
            use_fahrenheit=True,
        )

        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert "Unseasonably Warm Tomorrow (Wed)" in html
        assert "41°F" in html
        assert "H 6°" not in html

    def test_snapshot_when_no_story(self, content):
        content.primary_section.weather = WeatherSnapshot(
            temperature_c=5, temperature_f=41, high_c=6, low_c=-2, use_fahrenheit=False
        )

        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert "5°C" in html
        assert "H 6° / L -2°C" in html

    def test_escapes_headlines(self, content):
        content.primary_section.stories[0].headline = "<script>alert(1)</script>"

        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_no_referral_link_without_code(self, content):
        content.recipient.referral_code = None

        html = JinjaDigestRenderer(BASE_URL).render(content, "subject")

        assert "/invite?ref=" not in html

    def test_rate_limit_notice(self, recipient):
        html = JinjaDigestRenderer(BASE_URL).render_rate_limit_notice(recipient)

        assert "tomorrow morning" in html
        assert f"{BASE_URL}/api/email/unsubscribe?token=tok123" in html


@pytest.mark.asyncio
class TestResendTransport:
    async def test_no_api_key_sends_nothing(self, monkeypatch):
        def fail(params):
            raise AssertionError("should not be called")

        monkeypatch.setattr(resend.Emails, "send", fail)

        assert await ResendTransport("").send("a@x.test", "s", "<p/>", "f@x.test") is False

    async def test_sends_through_resend(self, monkeypatch):
        calls = []

        def fake_send(params):
            calls.append(params)
            return {"id": "msg_123"}

        monkeypatch.setattr(resend.Emails, "send", fake_send)

        sent = await ResendTransport("re_test").send(
            "a@x.test", "Subject", "<p>hi</p>", "Flaneur News <hello@x.test>"
        )

        assert sent is True
        assert calls == [
            {
                "from": "Flaneur News <hello@x.test>",
                "to": ["a@x.test"],
                "subject": "Subject",
                "html": "<p>hi</p>",
            }
        ]

    async def test_missing_message_id_is_failure(self, monkeypatch):
        monkeypatch.setattr(resend.Emails, "send", lambda params: {})
        assert await ResendTransport("re_test").send("a@x.test", "s", "<p/>", "f@x.test") is False

    async def test_rate_limit_notice_helper(self, recipient):
        renderer = FakeRenderer()
        transport = FakeTransport()

        sent = await send_rate_limit_notice(recipient, renderer, transport, "f@x.test")

        assert sent is True
        assert renderer.notices == [recipient]
        assert transport.sent[0]["subject"] == RATE_LIMIT_NOTICE_SUBJECT
