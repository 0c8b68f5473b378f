"""
Construction Progress Engine
Measurement model — contractor-reported progress awaiting review.

Lifecycle:
    PENDING --approve--> APPROVED   (terminal, sets UnitActivity.progress)
    PENDING --reject-->  REJECTED   (terminal, no progress change)

Rows are never edited after review: the table is the audit log of every
reported value.
"""

from datetime import datetime, timezone

from buildtrack.models import db

MEASUREMENT_STATUSES = {"PENDING", "APPROVED", "REJECTED"}

MEASUREMENT_TRANSITIONS = {
    "PENDING":  ["APPROVED", "REJECTED"],
    "APPROVED": [],
    "REJECTED": [],
}


def validate_measurement_transition(old_status, new_status):
    """Return True if Measurement status transition is valid."""
    return new_status in MEASUREMENT_TRANSITIONS.get(old_status, [])


class Measurement(db.Model):
    """Progress report for an activity, optionally targeted at one UnitActivity."""

    __tablename__ = "measurements"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING','APPROVED','REJECTED')", name="ck_measurement_status",
        ),
        db.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_measurement_progress"),
        db.Index("ix_measurements_activity_status", "activity_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("project_activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    unit_activity_id = db.Column(
        db.Integer, db.ForeignKey("unit_activities.id", ondelete="CASCADE"),
        nullable=True, index=True, comment="NULL = activity-level measurement",
    )
    previous_progress = db.Column(db.Float, nullable=False, default=0.0,
                                  comment="Target progress when the measurement was submitted")
    progress = db.Column(db.Float, nullable=False,
                         comment="Absolute progress value requested (0-100)")
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    contractor_id = db.Column(db.Integer, nullable=True, index=True)
    reported_by = db.Column(db.String(150), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    photos = db.Column(db.JSON, default=list, comment="Photo URLs supplied by the caller")
    batch_id = db.Column(db.String(36), nullable=True, index=True,
                         comment="Shared by measurements submitted in one batch")

    review_notes = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(150), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    unit_activity = db.relationship("UnitActivity", lazy="joined")

    def to_dict(self):
        ua = self.unit_activity
        return {
            "id": self.id,
            "activityId": self.activity_id,
            "activityName": self.activity.name if self.activity else None,
            "unitActivityId": self.unit_activity_id,
            "unitId": ua.unit_id if ua else None,
            "previousProgress": self.previous_progress,
            "progress": self.progress,
            "status": self.status,
            "contractorId": self.contractor_id,
            "reportedBy": self.reported_by,
            "notes": self.notes,
            "photos": list(self.photos or []),
            "batchId": self.batch_id,
            "reviewNotes": self.review_notes,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Measurement {self.id}: activity={self.activity_id} {self.progress}% [{self.status}]>"
