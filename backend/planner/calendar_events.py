"""
Calendar event conversion for scheduled work sessions.

Sessions only carry a date and a duration. For display, sessions on the same
day are laid out back-to-back from a configurable start time, in the order
the scheduler emitted them.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

from .scheduling import ScheduledWorkSession

DEFAULT_DAY_START = time(9, 0)
DEFAULT_CLASS_NAME = 'default'
EVENT_TEXT_COLOR = '#ffffff'

CLASS_COLORS = [
    '#3b82f6',  # blue
    '#22c55e',  # green
    '#f59e0b',  # amber
    '#ef4444',  # red
    '#8b5cf6',  # purple
    '#ec4899',  # pink
    '#14b8a6',  # teal
    '#f97316',  # orange
    '#84cc16',  # lime
    '#06b6d4',  # cyan
    '#a855f7',  # fuchsia
    '#eab308',  # yellow
]


class ClassColorPalette:
    """Assigns palette colors to class names in first-seen order."""

    def __init__(self, colors: Optional[List[str]] = None):
        self.colors = colors or list(CLASS_COLORS)
        self._assigned: Dict[str, str] = {}

    def color_for(self, class_name: str) -> str:
        if class_name not in self._assigned:
            self._assigned[class_name] = self.colors[len(self._assigned) % len(self.colors)]
        return self._assigned[class_name]

    @property
    def assigned(self) -> Dict[str, str]:
        return dict(self._assigned)


@dataclass
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    background_color: str
    text_color: str
    task_id: str
    duration: int
    priority: int
    completed: bool
    description: Optional[str] = None
    class_name: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'title': self.title,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'background_color': self.background_color,
            'text_color': self.text_color,
            'extended_props': {
                'task_id': self.task_id,
                'description': self.description,
                'duration': self.duration,
                'priority': self.priority,
                'class': {
                    'name': self.class_name,
                    'color': self.background_color
                } if self.class_name is not None else None,
                'completed': self.completed
            }
        }


def build_calendar_events(
    sessions: Iterable[ScheduledWorkSession],
    day_start: time = DEFAULT_DAY_START,
    palette: Optional[ClassColorPalette] = None
) -> List[CalendarEvent]:
    """
    Convert sessions into calendar events.

    Each event ends ``duration`` minutes after it starts. Events for one day
    follow each other without gaps starting at ``day_start``.
    """
    palette = palette or ClassColorPalette()
    next_start: Dict[date, datetime] = {}
    events = []

    for session in sessions:
        start = next_start.get(session.date) or datetime.combine(session.date, day_start)
        end = start + timedelta(minutes=session.duration)
        next_start[session.date] = end

        course = session.task.course
        class_name = course.name if course else None
        color = palette.color_for(class_name if class_name else DEFAULT_CLASS_NAME)

        events.append(CalendarEvent(
            id=f"{session.task_id}-{session.date.isoformat()}",
            title=session.task.title,
            start=start,
            end=end,
            background_color=color,
            text_color=EVENT_TEXT_COLOR,
            task_id=session.task_id,
            duration=session.duration,
            priority=session.task.priority,
            completed=session.completed,
            description=session.task.description,
            class_name=class_name
        ))

    return events
