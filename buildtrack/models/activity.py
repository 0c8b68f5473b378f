"""
Construction Progress Engine
Activity tree models.

Models:
    - ProjectActivity: one Phase / Stage / Activity node of a project's work tree
    - UnitActivity:    progress of one ACTIVITY on one unit (or GENERAL, unit_id NULL)

A ProjectActivity's parent is fixed when it is created. Deleting a node
cascades to its descendants, their UnitActivities and their Measurements.
"""

from datetime import datetime, timezone

from buildtrack.models import db

# ── Constants ────────────────────────────────────────────────────────────────

LEVELS = ("PHASE", "STAGE", "ACTIVITY")
SCOPES = ("ALL_UNITS", "SPECIFIC_UNITS", "GENERAL")
STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED")


def derive_unit_status(progress):
    """PENDING at 0, COMPLETED at 100 or more, IN_PROGRESS in between."""
    progress = progress or 0
    if progress >= 100:
        return "COMPLETED"
    if progress > 0:
        return "IN_PROGRESS"
    return "PENDING"


class ProjectActivity(db.Model):
    """
    Node of the project work tree (PHASE, STAGE or ACTIVITY).

    Only ACTIVITY nodes own UnitActivities; PHASE and STAGE progress is
    always derived from their children.
    """

    __tablename__ = "project_activities"
    __table_args__ = (
        db.CheckConstraint("level IN ('PHASE','STAGE','ACTIVITY')", name="ck_activity_level"),
        db.CheckConstraint(
            "scope IN ('ALL_UNITS','SPECIFIC_UNITS','GENERAL')", name="ck_activity_scope",
        ),
        db.CheckConstraint("weight >= 0", name="ck_activity_weight"),
        db.Index("ix_project_activities_project_parent", "project_id", "parent_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("project_activities.id", ondelete="CASCADE"),
        nullable=True, comment="Set once at creation; never re-parented",
    )
    level = db.Column(db.String(10), nullable=False, default="ACTIVITY")
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    weight = db.Column(db.Float, nullable=False, default=1.0,
                       comment="Influence on the parent's weighted progress")
    scope = db.Column(db.String(20), nullable=False, default="ALL_UNITS",
                      comment="ALL_UNITS, SPECIFIC_UNITS, GENERAL")
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    color = db.Column(db.String(20), nullable=True)
    planned_start_date = db.Column(db.Date, nullable=True)
    planned_end_date = db.Column(db.Date, nullable=True)
    dependencies = db.Column(db.JSON, default=list,
                             comment="Template keys of predecessor activities")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    # ── Relationships ────────────────────────────────────────────────────
    children = db.relationship(
        "ProjectActivity",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan", order_by="ProjectActivity.order",
    )
    unit_activities = db.relationship(
        "UnitActivity", backref="activity", lazy="select",
        cascade="all, delete-orphan", order_by="UnitActivity.id",
    )
    measurements = db.relationship(
        "Measurement", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def average_progress(self):
        """Unweighted mean of this activity's UnitActivity progress."""
        uas = self.unit_activities
        if not uas:
            return 0.0
        return sum(ua.progress or 0 for ua in uas) / len(uas)

    def to_dict(self, include_units=False):
        d = {
            "id": self.id,
            "projectId": self.project_id,
            "parentId": self.parent_id,
            "level": self.level,
            "name": self.name,
            "order": self.order,
            "weight": self.weight,
            "scope": self.scope,
            "status": self.status,
            "color": self.color,
            "plannedStartDate": self.planned_start_date.isoformat() if self.planned_start_date else None,
            "plannedEndDate": self.planned_end_date.isoformat() if self.planned_end_date else None,
            "dependencies": list(self.dependencies or []),
        }
        if include_units:
            d["unitActivities"] = [ua.to_dict() for ua in self.unit_activities]
        return d

    def __repr__(self):
        return f"<ProjectActivity {self.id}: {self.level} {self.name}>"


class UnitActivity(db.Model):
    """Progress of one activity on one unit. Changed only by an approved Measurement."""

    __tablename__ = "unit_activities"
    __table_args__ = (
        db.UniqueConstraint("activity_id", "unit_id", name="uq_unit_activity_activity_unit"),
        db.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_unit_activity_progress"),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("project_activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    unit_id = db.Column(
        db.Integer, db.ForeignKey("units.id", ondelete="CASCADE"),
        nullable=True, comment="NULL for GENERAL-scope activities",
    )
    progress = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default="PENDING")

    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    unit = db.relationship("Unit", lazy="joined")

    def set_progress(self, progress):
        """Absolute set; status follows progress."""
        self.progress = float(progress)
        self.status = derive_unit_status(self.progress)

    def to_dict(self):
        return {
            "id": self.id,
            "activityId": self.activity_id,
            "unitId": self.unit_id,
            "unitCode": self.unit.code if self.unit else None,
            "progress": self.progress,
            "status": self.status,
        }

    def __repr__(self):
        return f"<UnitActivity {self.id}: activity={self.activity_id} unit={self.unit_id} {self.progress}%>"
