"""Initial Daily Brief schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _enum(name: str, *values: str) -> sa.Enum:
    # Stored as VARCHAR so SQLite and Postgres agree
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "neighborhoods",
        sa.Column("id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(255), nullable=False),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("timezone", sa.String(50), nullable=False),
        sa.Column("is_combo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_neighborhoods_city", "neighborhoods", ["city"])

    op.create_table(
        "combo_neighborhoods",
        sa.Column("combo_id", sa.String(100), nullable=False),
        sa.Column("component_id", sa.String(100), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["combo_id"], ["neighborhoods.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["component_id"], ["neighborhoods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("combo_id", "component_id"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("primary_city", sa.String(255), nullable=True),
        sa.Column("primary_neighborhood_id", sa.String(100), nullable=True),
        sa.Column("primary_timezone", sa.String(50), nullable=True),
        sa.Column("email_unsubscribe_token", sa.String(64), nullable=False),
        sa.Column("daily_email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("paused_topics", sa.JSON(), nullable=False),
        sa.Column("referral_code", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["primary_neighborhood_id"], ["neighborhoods.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referral_code"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])
    op.create_index(
        "ix_profiles_email_unsubscribe_token", "profiles", ["email_unsubscribe_token"]
    )

    op.create_table(
        "user_neighborhood_preferences",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("neighborhood_id", sa.String(100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["neighborhood_id"], ["neighborhoods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_user_neighborhood_preferences_user_id", "user_neighborhood_preferences", ["user_id"]
    )

    op.create_table(
        "newsletter_subscribers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("neighborhood_ids", sa.JSON(), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column("unsubscribe_token", sa.String(64), nullable=False),
        sa.Column("daily_email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paused_topics", sa.JSON(), nullable=False),
        sa.Column("referral_code", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referral_code"),
    )
    op.create_index("ix_newsletter_subscribers_email", "newsletter_subscribers", ["email"])
    op.create_index(
        "ix_newsletter_subscribers_unsubscribe_token",
        "newsletter_subscribers",
        ["unsubscribe_token"],
    )

    op.create_table(
        "articles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("neighborhood_id", sa.String(100), nullable=False),
        sa.Column("headline", sa.String(500), nullable=False),
        sa.Column("preview_text", sa.Text(), nullable=True),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.Column("category_label", sa.String(255), nullable=True),
        sa.Column("subject_teaser", sa.String(120), nullable=True),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column(
            "status",
            _enum("articlestatus", "draft", "published", "archived"),
            nullable=False,
        ),
        sa.Column("published_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["neighborhood_id"], ["neighborhoods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_articles_neighborhood_id", "articles", ["neighborhood_id"])
    op.create_index("ix_articles_slug", "articles", ["slug"], unique=True)
    op.create_index("ix_articles_status", "articles", ["status"])
    op.create_index("ix_articles_published_at", "articles", ["published_at"])

    op.create_table(
        "neighborhood_briefs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("neighborhood_id", sa.String(100), nullable=False),
        sa.Column("headline", sa.String(500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["neighborhood_id"], ["neighborhoods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_neighborhood_briefs_neighborhood_id", "neighborhood_briefs", ["neighborhood_id"]
    )
    op.create_index("ix_neighborhood_briefs_created_at", "neighborhood_briefs", ["created_at"])

    op.create_table(
        "ads",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.Column("headline", sa.String(255), nullable=False),
        sa.Column("click_url", sa.String(2048), nullable=False),
        sa.Column("sponsor_label", sa.String(100), nullable=True),
        sa.Column(
            "status",
            _enum("adstatus", "pending_review", "active", "paused", "expired"),
            nullable=False,
        ),
        sa.Column(
            "targeting",
            _enum("adtargeting", "global", "global_takeover", "neighborhood"),
            nullable=False,
        ),
        sa.Column("neighborhood_id", sa.String(100), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("impressions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["neighborhood_id"], ["neighborhoods.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ads_status", "ads", ["status"])
    op.create_index("ix_ads_neighborhood_id", "ads", ["neighborhood_id"])
    op.create_index("ix_ads_start_date", "ads", ["start_date"])
    op.create_index("ix_ads_end_date", "ads", ["end_date"])

    op.create_table(
        "house_ads",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "type",
            _enum(
                "houseadtype",
                "newsletter",
                "app_download",
                "sunday_edition",
                "suggest_neighborhood",
                "advertise",
            ),
            nullable=False,
        ),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.Column("headline", sa.String(255), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("click_url", sa.String(2048), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )

    recipient_source = _enum("recipientsource", "profile", "newsletter")
    triggers = ("city_change", "neighborhood_change", "topic_change")

    op.create_table(
        "digest_sends",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipient_id", sa.String(64), nullable=False),
        sa.Column("recipient_source", recipient_source, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column(
            "digest_type",
            _enum("digesttype", "daily_brief", "sunday_edition"),
            nullable=False,
        ),
        sa.Column("primary_neighborhood_id", sa.String(100), nullable=True),
        sa.Column("neighborhood_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("story_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("had_header_ad", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("had_native_ad", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "trigger",
            _enum("sendtrigger", "scheduled", "test", *triggers),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("send_date", sa.Date(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "recipient_id", "send_date", "digest_type", name="uq_recipient_date_digest"
        ),
    )
    op.create_index("ix_digest_sends_recipient_id", "digest_sends", ["recipient_id"])
    op.create_index("ix_digest_sends_send_date", "digest_sends", ["send_date"])

    op.create_table(
        "instant_resend_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipient_id", sa.String(64), nullable=False),
        sa.Column("recipient_source", recipient_source, nullable=False),
        sa.Column("trigger", _enum("resendtrigger", *triggers), nullable=False),
        sa.Column("send_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_instant_resend_log_recipient_id", "instant_resend_log", ["recipient_id"])
    op.create_index("ix_instant_resend_log_send_date", "instant_resend_log", ["send_date"])

    op.create_table(
        "job_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("job_id", sa.String(100), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("summary_json", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_runs_job_id", "job_runs", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_job_runs_job_id", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_instant_resend_log_send_date", table_name="instant_resend_log")
    op.drop_index("ix_instant_resend_log_recipient_id", table_name="instant_resend_log")
    op.drop_table("instant_resend_log")
    op.drop_index("ix_digest_sends_send_date", table_name="digest_sends")
    op.drop_index("ix_digest_sends_recipient_id", table_name="digest_sends")
    op.drop_table("digest_sends")
    op.drop_table("house_ads")
    op.drop_index("ix_ads_end_date", table_name="ads")
    op.drop_index("ix_ads_start_date", table_name="ads")
    op.drop_index("ix_ads_neighborhood_id", table_name="ads")
    op.drop_index("ix_ads_status", table_name="ads")
    op.drop_table("ads")
    op.drop_index("ix_neighborhood_briefs_created_at", table_name="neighborhood_briefs")
    op.drop_index("ix_neighborhood_briefs_neighborhood_id", table_name="neighborhood_briefs")
    op.drop_table("neighborhood_briefs")
    op.drop_index("ix_articles_published_at", table_name="articles")
    op.drop_index("ix_articles_status", table_name="articles")
    op.drop_index("ix_articles_slug", table_name="articles")
    op.drop_index("ix_articles_neighborhood_id", table_name="articles")
    op.drop_table("articles")
    op.drop_index("ix_newsletter_subscribers_unsubscribe_token", table_name="newsletter_subscribers")
    op.drop_index("ix_newsletter_subscribers_email", table_name="newsletter_subscribers")
    op.drop_table("newsletter_subscribers")
    op.drop_index(
        "ix_user_neighborhood_preferences_user_id", table_name="user_neighborhood_preferences"
    )
    op.drop_table("user_neighborhood_preferences")
    op.drop_index("ix_profiles_email_unsubscribe_token", table_name="profiles")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
    op.drop_table("combo_neighborhoods")
    op.drop_index("ix_neighborhoods_city", table_name="neighborhoods")
    op.drop_table("neighborhoods")
