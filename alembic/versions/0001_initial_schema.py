"""Initial schema: profiles, embedding cache, companies, applications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "candidate_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("resume_text", sa.Text(), nullable=False),
        sa.Column("persona_text", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_candidate_profiles_owner_id", "candidate_profiles", ["owner_id"], unique=True)

    op.create_table(
        "embedding_cache",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("model", sa.String(length=255), nullable=False),
        sa.Column("text_hash", sa.String(length=64), nullable=False),
        sa.Column("normalized_text", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("model", "text_hash", name="uq_embedding_cache_model_hash"),
    )

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=800), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("visited_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("owner_id", "url", name="uq_company_owner_url"),
    )
    op.create_index("ix_companies_owner_id", "companies", ["owner_id"])

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("job_title", sa.String(length=500), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("job_url", sa.String(length=800), nullable=False),
        sa.Column("cover_letter", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("match_score", sa.Integer(), nullable=True),
        sa.Column("skip_reason", sa.String(length=80), nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("owner_id", "job_url", name="uq_application_owner_job_url"),
    )
    op.create_index("ix_applications_owner_id", "applications", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_applications_owner_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_companies_owner_id", table_name="companies")
    op.drop_table("companies")
    op.drop_table("embedding_cache")
    op.drop_index("ix_candidate_profiles_owner_id", table_name="candidate_profiles")
    op.drop_table("candidate_profiles")
