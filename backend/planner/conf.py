"""
Django settings access for the planner app.

``SCHEDULING_POLICY`` may hold any subset of the SchedulingPolicy fields:

    SCHEDULING_POLICY = {
        'max_daily_minutes': 300,
        'daily_energy_levels': {'friday': 0.6},
    }
"""

from django.conf import settings

from .scheduling import SchedulingPolicy


def get_policy() -> SchedulingPolicy:
    """Scheduling policy with any project-level overrides applied."""
    overrides = getattr(settings, 'SCHEDULING_POLICY', None) or {}
    return SchedulingPolicy.from_dict(overrides)
