"""initial_progress_engine_schema

Create templates, projects, units, the activity tree, unit activities and
measurements.

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None


def _ts():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "activity_templates" not in existing_tables:
        op.create_table(
            "activity_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=True),
            *_ts(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "activity_template_items" not in existing_tables:
        op.create_table(
            "activity_template_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("level", sa.String(length=10), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("item_key", sa.String(length=200), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("weight", sa.Float(), nullable=False),
            sa.Column("percentage_of_total", sa.Float(), nullable=True),
            sa.Column("duration_days", sa.Integer(), nullable=True),
            sa.Column("dependencies", sa.JSON(), nullable=True),
            sa.Column("scope", sa.String(length=20), nullable=True),
            sa.Column("color", sa.String(length=20), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["activity_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["activity_template_items.id"], ondelete="CASCADE"),
            sa.CheckConstraint("level IN ('PHASE','STAGE','ACTIVITY')", name="ck_template_item_level"),
            sa.CheckConstraint("weight >= 0", name="ck_template_item_weight"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activity_template_items_template_id", "activity_template_items", ["template_id"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=True),
            sa.Column("scheduling_mode", sa.String(length=20), nullable=False, server_default="BUSINESS_DAYS"),
            sa.Column("holidays", sa.JSON(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("template_id", sa.Integer(), nullable=True),
            *_ts(),
            sa.ForeignKeyConstraint(["template_id"], ["activity_templates.id"], ondelete="SET NULL"),
            sa.CheckConstraint(
                "scheduling_mode IN ('BUSINESS_DAYS','CALENDAR_DAYS')", name="ck_project_scheduling_mode",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "units" not in existing_tables:
        op.create_table(
            "units",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("unit_type", sa.String(length=20), nullable=True),
            sa.Column("floor", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "code", name="uq_unit_project_code"),
        )
        op.create_index("ix_units_project_id", "units", ["project_id"])

    if "project_activities" not in existing_tables:
        op.create_table(
            "project_activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("level", sa.String(length=10), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("weight", sa.Float(), nullable=False),
            sa.Column("scope", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("color", sa.String(length=20), nullable=True),
            sa.Column("planned_start_date", sa.Date(), nullable=True),
            sa.Column("planned_end_date", sa.Date(), nullable=True),
            sa.Column("dependencies", sa.JSON(), nullable=True),
            *_ts(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["project_activities.id"], ondelete="CASCADE"),
            sa.CheckConstraint("level IN ('PHASE','STAGE','ACTIVITY')", name="ck_activity_level"),
            sa.CheckConstraint("scope IN ('ALL_UNITS','SPECIFIC_UNITS','GENERAL')", name="ck_activity_scope"),
            sa.CheckConstraint("weight >= 0", name="ck_activity_weight"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_activities_project_id", "project_activities", ["project_id"])
        op.create_index(
            "ix_project_activities_project_parent", "project_activities", ["project_id", "parent_id"],
        )

    if "unit_activities" not in existing_tables:
        op.create_table(
            "unit_activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("unit_id", sa.Integer(), nullable=True),
            sa.Column("progress", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["project_activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["unit_id"], ["units.id"], ondelete="CASCADE"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_unit_activity_progress"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id", "unit_id", name="uq_unit_activity_activity_unit"),
        )
        op.create_index("ix_unit_activities_activity_id", "unit_activities", ["activity_id"])

    if "measurements" not in existing_tables:
        op.create_table(
            "measurements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("unit_activity_id", sa.Integer(), nullable=True),
            sa.Column("previous_progress", sa.Float(), nullable=False),
            sa.Column("progress", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("contractor_id", sa.Integer(), nullable=True),
            sa.Column("reported_by", sa.String(length=150), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("photos", sa.JSON(), nullable=True),
            sa.Column("batch_id", sa.String(length=36), nullable=True),
            sa.Column("review_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=150), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["project_activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["unit_activity_id"], ["unit_activities.id"], ondelete="CASCADE"),
            sa.CheckConstraint("status IN ('PENDING','APPROVED','REJECTED')", name="ck_measurement_status"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_measurement_progress"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_measurements_activity_id", "measurements", ["activity_id"])
        op.create_index("ix_measurements_unit_activity_id", "measurements", ["unit_activity_id"])
        op.create_index("ix_measurements_contractor_id", "measurements", ["contractor_id"])
        op.create_index("ix_measurements_batch_id", "measurements", ["batch_id"])
        op.create_index("ix_measurements_activity_status", "measurements", ["activity_id", "status"])


def downgrade():
    for table in (
        "measurements",
        "unit_activities",
        "project_activities",
        "units",
        "projects",
        "activity_template_items",
        "activity_templates",
    ):
        op.drop_table(table)
