"""create_capex_tables

Create `capex_projects`, `capex_sub_items` and `capex_admin_settings`.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "capex_projects" not in existing_tables:
        op.create_table(
            "capex_projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_name", sa.String(length=200), nullable=False),
            sa.Column("project_owner", sa.String(length=100), nullable=True),
            sa.Column("project_type", sa.String(length=30), nullable=False, server_default="project"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("total_budget", sa.Float(), nullable=False, server_default="0"),
            sa.Column("total_actual", sa.Float(), nullable=False, server_default="0"),
            sa.Column("yearly_budget", sa.Float(), nullable=True),
            sa.Column("yearly_actual", sa.Float(), nullable=True),
            sa.Column("ses_number", sa.String(length=50), nullable=True),
            sa.Column("upcoming_milestone", sa.String(length=200), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Impacted"),
            sa.Column("overall_completion", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("feasibility_completion", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("planning_completion", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("execution_completion", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("close_completion", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_capex_projects_type_status", "capex_projects", ["project_type", "status"])

    if "capex_sub_items" not in existing_tables:
        op.create_table(
            "capex_sub_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase", sa.String(length=20), nullable=False),
            sa.Column("item_key", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("is_na", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["project_id"], ["capex_projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "item_key", name="uq_capex_sub_items_project_item"),
        )
        op.create_index("ix_capex_sub_items_project_id", "capex_sub_items", ["project_id"])

    if "capex_admin_settings" not in existing_tables:
        op.create_table(
            "capex_admin_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("on_track_threshold", sa.Float(), nullable=False, server_default="90"),
            sa.Column("at_risk_threshold", sa.Float(), nullable=False, server_default="80"),
            sa.Column("impacted_threshold", sa.Float(), nullable=False, server_default="0"),
            sa.Column("show_financials", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("phase_weights_json", sa.Text(), nullable=False),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "capex_admin_settings" in existing_tables:
        op.drop_table("capex_admin_settings")
    if "capex_sub_items" in existing_tables:
        op.drop_index("ix_capex_sub_items_project_id", table_name="capex_sub_items")
        op.drop_table("capex_sub_items")
    if "capex_projects" in existing_tables:
        op.drop_index("ix_capex_projects_type_status", table_name="capex_projects")
        op.drop_table("capex_projects")
