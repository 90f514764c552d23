"""initial_crm_schema

- Tenancy: orgs, org_members (one membership per user)
- Pipelines (one default per org), deal stages, companies, people, deals, tasks, interactions
- RLS enabled on every table (default deny, no policies); the API connects
  as the table owner and scopes every query by org_id itself

Revision ID: 3f1c9a2b7e55
Revises:
Create Date: 2026-10-12 10:40:12.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c9a2b7e55'
down_revision = None
branch_labels = None
depends_on = None

TABLES = (
    "orgs",
    "org_members",
    "pipelines",
    "deal_stages",
    "companies",
    "people",
    "deals",
    "tasks",
    "interactions",
)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    # ====================================================================
    # Tenancy
    # ====================================================================
    op.create_table(
        "orgs",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("slug", sa.TEXT(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_orgs_slug"),
    )

    op.create_table(
        "org_members",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("user_id", sa.TEXT(), nullable=False),
        sa.Column("role", sa.TEXT(), nullable=False, server_default="member"),
        *_timestamps(updated=False),
        sa.UniqueConstraint("user_id", name="uq_org_members_user_id"),
    )
    op.create_index("idx_org_members_org", "org_members", ["org_id"])

    # ====================================================================
    # Pipelines
    # ====================================================================
    op.create_table(
        "pipelines",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("is_default", sa.BOOLEAN(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("idx_pipelines_org", "pipelines", ["org_id"])
    op.create_index(
        "uq_pipelines_org_default",
        "pipelines",
        ["org_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default = 1"),
    )

    op.create_table(
        "deal_stages",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("pipeline_id", sa.TEXT(), nullable=False),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("position", sa.INTEGER(), nullable=False, server_default="0"),
        *_timestamps(updated=False),
    )
    op.create_index("idx_deal_stages_pipeline", "deal_stages", ["pipeline_id", "position"])

    # ====================================================================
    # Contacts
    # ====================================================================
    op.create_table(
        "companies",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("website", sa.TEXT(), nullable=True),
        sa.Column("phone", sa.TEXT(), nullable=True),
        sa.Column("address_line1", sa.TEXT(), nullable=True),
        sa.Column("address_line2", sa.TEXT(), nullable=True),
        sa.Column("city", sa.TEXT(), nullable=True),
        sa.Column("state", sa.TEXT(), nullable=True),
        sa.Column("postal_code", sa.TEXT(), nullable=True),
        sa.Column("country", sa.TEXT(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("owner_id", sa.TEXT(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_companies_org_name", "companies", ["org_id", "name"])

    op.create_table(
        "people",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("company_id", sa.TEXT(), nullable=True),
        sa.Column("first_name", sa.TEXT(), nullable=False),
        sa.Column("last_name", sa.TEXT(), nullable=True),
        sa.Column("email", sa.TEXT(), nullable=True),
        sa.Column("phone", sa.TEXT(), nullable=True),
        sa.Column("title", sa.TEXT(), nullable=True),
        sa.Column("linkedin_url", sa.TEXT(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("owner_id", sa.TEXT(), nullable=True),
        sa.Column("last_contacted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_people_org_created", "people", ["org_id", "created_at"])
    op.create_index("idx_people_company", "people", ["company_id"])

    # ====================================================================
    # Deals, tasks, interactions
    # ====================================================================
    op.create_table(
        "deals",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("pipeline_id", sa.TEXT(), nullable=False),
        sa.Column("stage_id", sa.TEXT(), nullable=False),
        sa.Column("company_id", sa.TEXT(), nullable=True),
        sa.Column("person_id", sa.TEXT(), nullable=True),
        sa.Column("name", sa.TEXT(), nullable=False),
        sa.Column("value_cents", sa.BIGINT(), nullable=True),
        sa.Column("currency", sa.TEXT(), nullable=False, server_default="USD"),
        sa.Column("owner_id", sa.TEXT(), nullable=True),
        sa.Column("expected_close_date", sa.DATE(), nullable=True),
        sa.Column("status", sa.TEXT(), nullable=False, server_default="open"),
        *_timestamps(),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_deals_org_pipeline", "deals", ["org_id", "pipeline_id"])
    op.create_index("idx_deals_stage", "deals", ["stage_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("title", sa.TEXT(), nullable=False),
        sa.Column("due_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("status", sa.TEXT(), nullable=False, server_default="pending"),
        sa.Column("priority", sa.TEXT(), nullable=False, server_default="medium"),
        sa.Column("owner_id", sa.TEXT(), nullable=True),
        sa.Column("company_id", sa.TEXT(), nullable=True),
        sa.Column("person_id", sa.TEXT(), nullable=True),
        sa.Column("deal_id", sa.TEXT(), nullable=True),
        *_timestamps(updated=False),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_tasks_org_status", "tasks", ["org_id", "status"])

    op.create_table(
        "interactions",
        sa.Column("id", sa.TEXT(), primary_key=True),
        sa.Column("org_id", sa.TEXT(), nullable=False),
        sa.Column("type", sa.TEXT(), nullable=False),
        sa.Column("occurred_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("summary", sa.TEXT(), nullable=True),
        sa.Column("company_id", sa.TEXT(), nullable=True),
        sa.Column("person_id", sa.TEXT(), nullable=True),
        sa.Column("deal_id", sa.TEXT(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default="{}"),
        *_timestamps(updated=False),
    )
    op.create_index("idx_interactions_org_occurred", "interactions", ["org_id", "occurred_at"])

    # ====================================================================
    # RLS (Postgres only)
    # ====================================================================
    if op.get_context().dialect.name == "postgresql":
        for table in TABLES:
            op.execute(f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY;")


def downgrade() -> None:
    for table in reversed(TABLES):
        op.drop_table(table)
