"""Initial schema: datasets, industries, discovery runs, businesses, crawl/extraction jobs, contacts.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Datasets
    op.create_table(
        "datasets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location_key", sa.Text),
        sa.Column("industry_key", sa.Text),
        *_timestamps(),
    )
    op.create_index("idx_dataset_reuse", "datasets", ["user_id", "location_key", "industry_key"])

    # Industry groups and their industries (registry activity codes + search keywords)
    op.create_table(
        "industry_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "industries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("industry_groups.id", ondelete="SET NULL"), index=True),
        sa.Column("activity_id", sa.Integer, unique=True),
        sa.Column("discovery_keywords", postgresql.JSONB),
        *_timestamps(),
    )

    # Discovery runs
    op.create_table(
        "discovery_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("dataset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("datasets.id"), nullable=False, index=True),
        sa.Column("user_id", sa.String(64), index=True),
        sa.Column("industry_group_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("industry_groups.id", ondelete="SET NULL")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text),
        sa.Column("cost_estimates", postgresql.JSONB),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'running', 'completed', 'failed')", name="ck_discovery_run_status"),
    )

    # Businesses
    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="registry"),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("address", sa.Text),
        sa.Column("postal_code", sa.String(20)),
        sa.Column("municipality_id", sa.Integer, index=True),
        sa.Column("prefecture_id", sa.Integer, index=True),
        sa.Column("city_id", sa.String(64), index=True),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("website_url", sa.String(500)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(320)),
        sa.Column("activity_id", sa.Integer, index=True),
        sa.Column("place_id", sa.String(255), index=True),
        sa.Column("discovery_run_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("discovery_runs.id"), index=True),
        *_timestamps(),
    )
    op.create_index("idx_business_municipality_activity", "businesses", ["municipality_id", "activity_id"])

    op.create_table(
        "dataset_businesses",
        sa.Column("dataset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("datasets.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
    )

    # Crawl jobs and pages
    op.create_table(
        "crawl_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False, index=True),
        sa.Column("website_url", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("pages_crawled", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("pages_limit", sa.Integer, nullable=False, server_default=sa.text("25")),
        sa.Column("error_message", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("pages_crawled <= pages_limit", name="ck_crawl_pages_within_limit"),
        sa.CheckConstraint("status IN ('queued', 'running', 'success', 'failed')", name="ck_crawl_job_status"),
    )
    op.create_index("idx_crawl_status_created", "crawl_jobs", ["status", "created_at"])
    op.create_index("idx_crawl_business_url", "crawl_jobs", ["business_id", "website_url"])

    op.create_table(
        "crawl_pages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("crawl_job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("crawl_jobs.id"), nullable=False, index=True),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("final_url", sa.Text),
        sa.Column("status_code", sa.Integer),
        sa.Column("content_type", sa.String(100)),
        sa.Column("page_type", sa.String(20), nullable=False, server_default="homepage"),
        sa.Column("html", sa.Text, nullable=False),
        sa.Column("hash", sa.String(64), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("crawl_job_id", "url", name="uq_crawl_page_job_url"),
    )

    # Extraction jobs
    op.create_table(
        "extraction_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), unique=True, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'running', 'success', 'failed')", name="ck_extraction_job_status"),
    )
    op.create_index("idx_extraction_status_created", "extraction_jobs", ["status", "created_at"])

    # Contacts and provenance
    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("contact_type", sa.String(10), nullable=False),
        sa.Column("value", sa.String(320), nullable=False),
        sa.Column("is_generic", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("contact_type", "value", name="uq_contact_type_value"),
    )

    op.create_table(
        "contact_sources",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id"), nullable=False, index=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False, index=True),
        sa.Column("source_url", sa.Text, nullable=False),
        sa.Column("page_type", sa.String(20), nullable=False),
        sa.Column("html_hash", sa.String(64), nullable=False, server_default=""),
        sa.Column("found_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("contact_id", "business_id", "source_url", name="uq_contact_source"),
    )

    op.create_table(
        "social_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False, index=True),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("business_id", "platform", name="uq_social_business_platform"),
    )


def downgrade() -> None:
    op.drop_table("social_profiles")
    op.drop_table("contact_sources")
    op.drop_table("contacts")
    op.drop_table("extraction_jobs")
    op.drop_table("crawl_pages")
    op.drop_table("crawl_jobs")
    op.drop_table("dataset_businesses")
    op.drop_table("businesses")
    op.drop_table("discovery_runs")
    op.drop_table("datasets")
    op.drop_table("industries")
    op.drop_table("industry_groups")
