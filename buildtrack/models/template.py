"""
Construction Progress Engine
Activity template models.

Models:
    - ActivityTemplate:     reusable schedule blueprint
    - ActivityTemplateItem: one phase / stage / activity row of a template

Items form a tree through ``parent_id``. Activity items reference their
predecessors by key (``item_key``, defaulting to the activity name).
"""

from datetime import datetime, timezone

from buildtrack.models import db


class ActivityTemplate(db.Model):
    """Named, reusable Phase → Stage → Activity blueprint."""

    __tablename__ = "activity_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    is_default = db.Column(db.Boolean, default=False,
                           comment="Seeded standard residential template")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    items = db.relationship(
        "ActivityTemplateItem", backref="template", lazy="select",
        cascade="all, delete-orphan",
        order_by="ActivityTemplateItem.order",
    )

    def to_dict(self, include_items=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isDefault": bool(self.is_default),
            "itemCount": len(self.items),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<ActivityTemplate {self.id}: {self.name}>"


class ActivityTemplateItem(db.Model):
    """Template row; PHASE rows carry percentage_of_total, ACTIVITY rows the scheduling hints."""

    __tablename__ = "activity_template_items"
    __table_args__ = (
        db.CheckConstraint("level IN ('PHASE','STAGE','ACTIVITY')", name="ck_template_item_level"),
        db.CheckConstraint("weight >= 0", name="ck_template_item_weight"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("activity_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("activity_template_items.id", ondelete="CASCADE"),
        nullable=True,
    )
    level = db.Column(db.String(10), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    item_key = db.Column(db.String(200), nullable=True,
                         comment="Dependency key; defaults to name")
    order = db.Column(db.Integer, nullable=False, default=0)
    weight = db.Column(db.Float, nullable=False, default=1.0)
    percentage_of_total = db.Column(db.Float, nullable=True, comment="PHASE only")
    duration_days = db.Column(db.Integer, nullable=True, comment="ACTIVITY only")
    dependencies = db.Column(db.JSON, default=list)
    scope = db.Column(db.String(20), nullable=True)
    color = db.Column(db.String(20), nullable=True)

    children = db.relationship(
        "ActivityTemplateItem",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan", order_by="ActivityTemplateItem.order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "templateId": self.template_id,
            "parentId": self.parent_id,
            "level": self.level,
            "name": self.name,
            "key": self.item_key or self.name,
            "order": self.order,
            "weight": self.weight,
            "percentageOfTotal": self.percentage_of_total,
            "durationDays": self.duration_days,
            "dependencies": list(self.dependencies or []),
            "scope": self.scope,
            "color": self.color,
        }

    def __repr__(self):
        return f"<ActivityTemplateItem {self.id}: {self.level} {self.name}>"
