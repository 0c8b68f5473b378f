"""
Construction Progress Engine
Project & Unit models.

Models:
    - Project: a construction site with its scheduling calendar
    - Unit:    a physical apartment / house / lot inside a project
"""

from datetime import datetime, timezone

from buildtrack.models import db

SCHEDULING_MODES = {"BUSINESS_DAYS", "CALENDAR_DAYS"}
UNIT_TYPES = {"APARTMENT", "HOUSE", "LOT", "COMMERCIAL", "OTHER"}


class Project(db.Model):
    """
    Construction project.

    Holds the calendar the schedule was generated with, so later edits can
    reuse the same working-day rules.
    """

    __tablename__ = "projects"
    __table_args__ = (
        db.CheckConstraint(
            "scheduling_mode IN ('BUSINESS_DAYS','CALENDAR_DAYS')",
            name="ck_project_scheduling_mode",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), nullable=True, unique=True)
    scheduling_mode = db.Column(db.String(20), nullable=False, default="BUSINESS_DAYS",
                                comment="BUSINESS_DAYS or CALENDAR_DAYS")
    holidays = db.Column(db.JSON, default=list,
                         comment="ISO YYYY-MM-DD dates skipped in BUSINESS_DAYS mode")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("activity_templates.id", ondelete="SET NULL"),
        nullable=True, comment="Template the current schedule was applied from",
    )

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    # ── Relationships ────────────────────────────────────────────────────
    units = db.relationship(
        "Unit", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="Unit.code",
    )
    activities = db.relationship(
        "ProjectActivity", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "schedulingMode": self.scheduling_mode,
            "holidays": list(self.holidays or []),
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "templateId": self.template_id,
            "unitCount": len(self.units),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Unit(db.Model):
    """Physical unit (apartment, house, lot) that activities are measured against."""

    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("project_id", "code", name="uq_unit_project_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    code = db.Column(db.String(50), nullable=False, comment="e.g. A-101, Lot 7")
    unit_type = db.Column(db.String(20), default="APARTMENT",
                          comment="APARTMENT, HOUSE, LOT, COMMERCIAL, OTHER")
    floor = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "code": self.code,
            "unitType": self.unit_type,
            "floor": self.floor,
        }

    def __repr__(self):
        return f"<Unit {self.project_id}:{self.code}>"
