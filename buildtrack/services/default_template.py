"""
Standard residential build template.

Seven phases from site preparation to handover; percentages sum to 100.
Dependencies reference activity names. Seeding is idempotent: an existing
template with the same name is returned unchanged.

Usage:
    flask seed-default-template
"""

import logging

from sqlalchemy import select

from buildtrack.models import db
from buildtrack.models.template import ActivityTemplate
from buildtrack.services.template_service import create_template

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Standard Residential Construction"


def _acts(*rows):
    """(name, weight, duration_days, deps?) tuples → activity dicts."""
    result = []
    for order, row in enumerate(rows):
        name, weight, duration = row[:3]
        act = {"name": name, "order": order, "weight": weight, "durationDays": duration}
        if len(row) > 3:
            act["dependencies"] = list(row[3])
        result.append(act)
    return result


def _stage(name, order, *activities):
    return {"name": name, "order": order, "weight": 1, "activities": _acts(*activities)}


DEFAULT_PHASES = [
    {
        "name": "Site Preparation", "order": 0, "percentageOfTotal": 5, "color": "#6366F1",
        "stages": [
            _stage(
                "Groundwork", 0,
                ("Site clearing", 1, 3),
                ("Survey and setting out", 1, 2),
                ("Temporary services (water, power, hoarding)", 2, 5),
                ("Equipment mobilisation", 1, 2),
            ),
        ],
    },
    {
        "name": "Foundations", "order": 1, "percentageOfTotal": 10, "color": "#F59E0B",
        "stages": [
            _stage(
                "Substructure", 0,
                ("Excavation", 2, 5),
                ("Piles / footings", 3, 10, ["Excavation"]),
                ("Pile caps and ground beams", 3, 8, ["Piles / footings"]),
                ("Foundation waterproofing", 1, 3, ["Pile caps and ground beams"]),
                ("Backfill and compaction", 1, 3, ["Foundation waterproofing"]),
            ),
        ],
    },
    {
        "name": "Structure", "order": 2, "percentageOfTotal": 20, "color": "#EF4444",
        "stages": [
            _stage(
                "Concrete Frame", 0,
                ("Ground floor columns", 3, 8),
                ("Ground floor beams and slab", 4, 12, ["Ground floor columns"]),
                ("Upper floor columns", 3, 8, ["Ground floor beams and slab"]),
                ("Upper floor beams and slab", 4, 12, ["Upper floor columns"]),
                ("Stairs", 2, 5, ["Ground floor beams and slab"]),
                ("Roof water tank", 1, 3, ["Upper floor beams and slab"]),
            ),
        ],
    },
    {
        "name": "Masonry and Roofing", "order": 3, "percentageOfTotal": 15, "color": "#10B981",
        "stages": [
            _stage(
                "Masonry", 0,
                ("External walls", 3, 15),
                ("Internal walls", 3, 12),
                ("Lintels and sills", 1, 5),
            ),
            _stage(
                "Roofing", 1,
                ("Roof framing", 2, 8),
                ("Roof tiling", 2, 5, ["Roof framing"]),
                ("Gutters and flashings", 1, 3, ["Roof tiling"]),
            ),
        ],
    },
    {
        "name": "Services", "order": 4, "percentageOfTotal": 15, "color": "#3B82F6",
        "stages": [
            _stage(
                "Plumbing", 0,
                ("Hot and cold water pipework", 2, 10),
                ("Soil and waste pipework", 2, 8),
                ("Rainwater pipework", 1, 4),
            ),
            _stage(
                "Electrical", 1,
                ("Conduits and boxes", 2, 8),
                ("Wiring", 2, 6, ["Conduits and boxes"]),
                ("Distribution board", 1, 2, ["Wiring"]),
                ("Telephone / data / TV cabling", 1, 3),
            ),
        ],
    },
    {
        "name": "Finishes", "order": 5, "percentageOfTotal": 15, "color": "#8B5CF6",
        "stages": [
            _stage(
                "Internal Finishes", 0,
                ("Internal scratch coat", 3, 12),
                ("Internal plastering", 3, 10, ["Internal scratch coat"]),
                ("Floor screed", 2, 5),
                ("Wall tiling", 2, 8, ["Internal plastering"]),
                ("Floor tiling", 2, 8, ["Floor screed"]),
            ),
            _stage(
                "External Finishes", 1,
                ("External scratch coat", 2, 10),
                ("External render", 2, 8, ["External scratch coat"]),
                ("External texture / painting", 2, 6, ["External render"]),
            ),
        ],
    },
    {
        "name": "Fit-out and Handover", "order": 6, "percentageOfTotal": 20, "color": "#EC4899",
        "stages": [
            _stage(
                "Doors and Glazing", 0,
                ("Internal and external doors", 2, 5),
                ("Windows and glazing", 2, 5),
                ("Shower screens", 1, 2),
            ),
            _stage(
                "Sanitaryware, Fittings and Painting", 1,
                ("Sanitaryware", 1, 3),
                ("Taps and accessories", 1, 2),
                ("Worktops", 1, 3),
                ("Internal painting", 3, 10),
                ("Switches and sockets", 1, 2, ["Internal painting"]),
            ),
            _stage(
                "Completion", 2,
                ("Builders' clean", 1, 3),
                ("Landscaping and external works", 2, 5),
                ("Snagging", 2, 5, ["Builders' clean"]),
                ("Occupancy certificate and documentation", 1, 5, ["Snagging"]),
            ),
        ],
    },
]


def seed_default_template() -> tuple[ActivityTemplate, bool]:
    """Create the standard template if missing.

    Returns:
        (template, created); created is False when it already existed.
    """
    existing = db.session.execute(
        select(ActivityTemplate).where(ActivityTemplate.name == DEFAULT_TEMPLATE_NAME)
    ).scalar_one_or_none()
    if existing is not None:
        logger.info("Default template already present id=%s", existing.id)
        return existing, False

    template = create_template(
        {
            "name": DEFAULT_TEMPLATE_NAME,
            "description": (
                "Complete residential build from site preparation to handover "
                "of the keys."
            ),
            "phases": DEFAULT_PHASES,
        },
        is_default=True,
    )
    logger.info("Seeded default template id=%s", template.id)
    return template, True
