"""
Workload Distribution Engine for the Study Planner.

This module spreads each task's estimated effort across the days between
"today" and its due date, producing a flat list of quantized work sessions.
It performs no I/O: callers hand in task records and receive sessions back.

Pipeline:
--------
1. Validate     - normalize raw records, set aside the unusable ones
2. Prioritize   - earliest due date first, then highest urgency score
3. Distribute   - for each task in that order, place sessions day by day
                  against a shared DayCapacityTracker

Capacity Model:
--------------
Each day offers floor(MAX_DAILY_MINUTES * energy_level) minutes of work.
Energy depends on the weekday and is reduced again on weekends:

    Mon 1.0 | Tue 1.0 | Wed 0.9 | Thu 0.9 | Fri 0.8 | Sat 0.7*0.6 | Sun 0.6*0.6

Tasks processed first claim capacity first, so earlier-due and more urgent
work crowds out later work when a day fills up.

Every session length is a multiple of TIME_INCREMENT and at least
MIN_WORK_TIME minutes, and never exceeds what is left of its day.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from .validation import (
    SkippedTask,
    Task,
    normalize_task,
    parse_due_date,
    to_naive,
    validate_tasks,
)

logger = logging.getLogger(__name__)


# ==================== Scheduling Constants ====================

MAX_DAILY_MINUTES = 360  # 6 hours of work on a full-energy day
MIN_BREAK_DURATION = 15  # reserved, not used by the allocation math
BREAKS_PER_DAY = 1  # reserved, not used by the allocation math
TIME_INCREMENT = 15  # all session lengths are multiples of this
MIN_WORK_TIME = 15  # shortest session ever scheduled
WEEKEND_ENERGY_REDUCTION = 0.6

WEEKDAY_NAMES = [
    'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday'
]

# Energy by weekday, keyed like date.weekday() (0 = Monday, 6 = Sunday)
DAILY_ENERGY_LEVELS = {
    0: 1.0,  # Monday
    1: 1.0,  # Tuesday
    2: 0.9,  # Wednesday
    3: 0.9,  # Thursday
    4: 0.8,  # Friday
    5: 0.7,  # Saturday
    6: 0.6,  # Sunday
}

ONE_DAY = timedelta(days=1)
MINUTES_PER_DAY = 24 * 60


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


@dataclass
class SchedulingPolicy:
    """
    Tunable scheduling constants.

    Defaults mirror the module-level constants; a policy instance lets a
    deployment adjust them without touching the algorithm.
    """
    max_daily_minutes: int = MAX_DAILY_MINUTES
    min_break_duration: int = MIN_BREAK_DURATION
    breaks_per_day: int = BREAKS_PER_DAY
    time_increment: int = TIME_INCREMENT
    min_work_time: int = MIN_WORK_TIME
    weekend_energy_reduction: float = WEEKEND_ENERGY_REDUCTION
    daily_energy_levels: Dict[int, float] = field(
        default_factory=lambda: dict(DAILY_ENERGY_LEVELS)
    )

    def __post_init__(self):
        if self.time_increment <= 0:
            raise ValueError("time_increment must be positive")
        if self.min_work_time <= 0:
            raise ValueError("min_work_time must be positive")
        if self.max_daily_minutes < 0:
            raise ValueError("max_daily_minutes cannot be negative")
        missing = set(DAILY_ENERGY_LEVELS) - set(self.daily_energy_levels)
        if missing:
            raise ValueError(
                "daily_energy_levels is missing: "
                + ", ".join(WEEKDAY_NAMES[d] for d in sorted(missing))
            )
        levels = list(self.daily_energy_levels.values()) + [self.weekend_energy_reduction]
        if not all(math.isfinite(level) and level >= 0 for level in levels):
            raise ValueError("energy levels must be finite and non-negative")

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> 'SchedulingPolicy':
        """
        Build a policy from a (possibly partial) dictionary.

        Energy levels may be keyed by weekday index or lowercase weekday name;
        weekdays left out keep their default level.
        """
        values = dict(overrides)
        levels = values.pop('daily_energy_levels', None)
        if levels is not None:
            merged = dict(DAILY_ENERGY_LEVELS)
            for key, level in levels.items():
                index = WEEKDAY_NAMES.index(key.lower()) if isinstance(key, str) else int(key)
                merged[index] = float(level)
            values['daily_energy_levels'] = merged
        return cls(**values)

    def energy_level(self, day: date) -> float:
        """Energy multiplier for a day, with the weekend reduction stacked on."""
        energy = self.daily_energy_levels[day.weekday()]
        if is_weekend(day):
            energy *= self.weekend_energy_reduction
        return energy

    def daily_capacity(self, day: date) -> int:
        """Maximum work minutes for a day after energy scaling."""
        return min(
            MINUTES_PER_DAY,
            math.floor(self.max_daily_minutes * self.energy_level(day))
        )

    def to_dict(self) -> Dict:
        return {
            'max_daily_minutes': self.max_daily_minutes,
            'min_break_duration': self.min_break_duration,
            'breaks_per_day': self.breaks_per_day,
            'time_increment': self.time_increment,
            'min_work_time': self.min_work_time,
            'weekend_energy_reduction': self.weekend_energy_reduction,
            'daily_energy_levels': {
                WEEKDAY_NAMES[index]: level
                for index, level in sorted(self.daily_energy_levels.items())
            }
        }


# ==================== Sessions & Daily Schedules ====================

@dataclass
class ScheduledWorkSession:
    """One block of work for one task on one calendar date."""
    task_id: str
    date: date
    duration: int  # minutes
    task: Task
    completed: bool = False

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'date': self.date.isoformat(),
            'duration': self.duration,
            'completed': self.completed,
            'task': self.task.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduledWorkSession':
        """
        Rebuild a session from its dictionary form.

        Raises:
            ValueError: if the payload does not describe a valid session
        """
        task_record = data.get('task')
        if not isinstance(task_record, dict):
            raise ValueError("Session is missing its task record")
        task, issues = normalize_task(task_record)
        if task is None:
            raise ValueError(
                "Invalid session task: " + "; ".join(i.message for i in issues)
            )

        when = parse_due_date(data.get('date'))
        if when is None:
            raise ValueError("Invalid session date")

        duration = data.get('duration')
        if (
            isinstance(duration, bool)
            or not isinstance(duration, int)
            or not 0 < duration <= MINUTES_PER_DAY
        ):
            raise ValueError("Session duration must be between 1 and 1440 minutes")

        task_id = data.get('task_id')
        return cls(
            task_id=str(task_id) if task_id not in (None, '') else task.id,
            date=when.date(),
            duration=duration,
            task=task,
            completed=bool(data.get('completed', False))
        )


@dataclass
class DailySchedule:
    """Work already committed to one calendar date during a scheduling run."""
    date: date
    energy_level: float
    sessions: List[ScheduledWorkSession] = field(default_factory=list)
    committed_minutes: int = 0

    @property
    def total_hours(self) -> float:
        return self.committed_minutes / 60


class DayCapacityTracker:
    """
    Per-run map of calendar date to DailySchedule.

    A tracker belongs to exactly one scheduling run; concurrent runs must each
    build their own. Days are created lazily on the first commit.
    """

    def __init__(self, policy: Optional[SchedulingPolicy] = None):
        self.policy = policy or SchedulingPolicy()
        self._days: Dict[date, DailySchedule] = {}

    def __contains__(self, day: date) -> bool:
        return day in self._days

    def __len__(self) -> int:
        return len(self._days)

    def get_or_create(self, day: date) -> DailySchedule:
        schedule = self._days.get(day)
        if schedule is None:
            schedule = DailySchedule(date=day, energy_level=self.policy.energy_level(day))
            self._days[day] = schedule
        return schedule

    def capacity(self, day: date) -> int:
        return self.policy.daily_capacity(day)

    def remaining_minutes(self, day: date) -> int:
        schedule = self._days.get(day)
        committed = schedule.committed_minutes if schedule else 0
        return self.capacity(day) - committed

    def commit(self, session: ScheduledWorkSession) -> DailySchedule:
        schedule = self.get_or_create(session.date)
        schedule.sessions.append(session)
        schedule.committed_minutes += session.duration
        return schedule


# ==================== Quantization Helpers ====================

def hours_to_minutes(hours: float) -> int:
    return int(math.floor(hours * 60 + 0.5))


def round_to_increment(minutes: float, increment: int = TIME_INCREMENT) -> int:
    """Round half-up to the nearest multiple of ``increment``."""
    return int(math.floor(minutes / increment + 0.5)) * increment


def fit_to_capacity(minutes: float, available: int, policy: SchedulingPolicy) -> int:
    """Quantize a candidate allocation without overrunning the day."""
    quantized = round_to_increment(minutes, policy.time_increment)
    while quantized > available:
        quantized -= policy.time_increment
    return quantized


def calculate_task_load(task: Task, policy: Optional[SchedulingPolicy] = None) -> int:
    """
    Total minutes to schedule for a task.

    The estimate is converted to minutes and rounded to the nearest increment.
    Anything shorter than the minimum session is raised to the minimum, so a
    12 minute task still gets a 15 minute session.
    """
    policy = policy or SchedulingPolicy()
    minutes = hours_to_minutes(task.estimated_hours)
    if minutes < policy.min_work_time:
        return policy.min_work_time
    return max(round_to_increment(minutes, policy.time_increment), policy.min_work_time)


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.ceil((later - earlier) / ONE_DAY)


# ==================== Prioritizer ====================

def prioritize(tasks: Iterable[Task]) -> List[Task]:
    """
    Order tasks for capacity commitment.

    Earliest due date first; for equal due dates the higher urgency score
    wins. Remaining ties keep their input order.
    """
    return sorted(tasks, key=lambda t: (t.due_date, -t.urgency_score))


# ==================== Work Distributor ====================

def distribute_work(
    task: Task,
    tracker: DayCapacityTracker,
    today: datetime
) -> List[ScheduledWorkSession]:
    """
    Place sessions for one task between ``today`` and its due date.

    Tasks due today or tomorrow get a single session today. Later tasks are
    spread day by day, taking an even share per day but never less than the
    minimum session and never more than the day has left. Work that does not
    fit is left unscheduled.
    """
    policy = tracker.policy
    task_load = calculate_task_load(task, policy)
    start_day = today.date()
    due_day = task.due_date.date()
    sessions: List[ScheduledWorkSession] = []

    logger.debug(
        "Distributing %r (%s): load=%d min, due=%s, priority=%d",
        task.title, task.id, task_load, task.due_date.isoformat(), task.priority
    )

    # Due today or tomorrow: everything goes into one session today
    if 0 <= (due_day - start_day).days <= 1:
        available = tracker.remaining_minutes(start_day)
        minutes = fit_to_capacity(
            max(policy.min_work_time, min(task_load, available)),
            available,
            policy
        )
        placed = 0
        if minutes >= policy.min_work_time:
            placed = minutes
            session = ScheduledWorkSession(
                task_id=task.id,
                date=start_day,
                duration=minutes,
                task=task
            )
            tracker.commit(session)
            sessions.append(session)
            logger.debug("Scheduled %d min today for %r", minutes, task.title)
        else:
            logger.debug(
                "No room today for %r: %d min available", task.title, available
            )
        if task_load > placed:
            logger.warning(
                "Could not schedule all work for %r (%s): %d min unscheduled",
                task.title, task.id, task_load - placed
            )
        return sessions

    if due_day < start_day:
        logger.warning(
            "Task %r (%s) was due %s, nothing scheduled",
            task.title, task.id, due_day.isoformat()
        )
        return sessions

    total_days = _days_between(task.due_date, today)
    ideal_daily_minutes = math.ceil(task_load / total_days)
    logger.debug(
        "Spreading %r over %d day(s), ideal %d min/day",
        task.title, total_days, ideal_daily_minutes
    )

    # Walk by offset so the last day visited is never past the due date
    remaining_work = task_load
    span = task.due_date - today
    for offset in range(span // ONE_DAY + 1):
        if remaining_work <= 0:
            break
        day = start_day + timedelta(days=offset)
        available = tracker.remaining_minutes(day)
        days_until_due = max(1, math.ceil((span - offset * ONE_DAY) / ONE_DAY))
        # Low-intensity spreads still get minimum-length sessions
        candidate = max(
            policy.min_work_time,
            min(ideal_daily_minutes, math.ceil(remaining_work / days_until_due))
        )
        minutes = fit_to_capacity(min(candidate, available), available, policy)

        if minutes >= policy.min_work_time:
            session = ScheduledWorkSession(
                task_id=task.id,
                date=day,
                duration=minutes,
                task=task
            )
            tracker.commit(session)
            sessions.append(session)
            remaining_work -= minutes
            logger.debug(
                "%s: %d min for %r (%d min left today)",
                day.isoformat(), minutes, task.title, available - minutes
            )
        else:
            logger.debug(
                "%s: skipped %r (%d min available)", day.isoformat(), task.title, available
            )

    if remaining_work > 0:
        logger.warning(
            "Could not schedule all work for %r (%s): %d min unscheduled",
            task.title, task.id, remaining_work
        )

    return sessions


# ==================== Orchestration ====================

@dataclass
class ScheduleResult:
    """Sessions produced by one run plus what could not be scheduled."""
    sessions: List[ScheduledWorkSession] = field(default_factory=list)
    skipped_tasks: List[SkippedTask] = field(default_factory=list)
    unscheduled_minutes: Dict[str, int] = field(default_factory=dict)
    scheduled_task_count: int = 0

    def summary(self) -> Dict:
        return {
            'scheduled_tasks': self.scheduled_task_count,
            'skipped_tasks': len(self.skipped_tasks),
            'sessions': len(self.sessions),
            'total_minutes': sum(s.duration for s in self.sessions),
            'unscheduled_minutes': dict(self.unscheduled_minutes)
        }


def resolve_today(today: Union[datetime, date, None] = None) -> datetime:
    """Normalize the scheduling reference time; defaults to now."""
    if today is None:
        return datetime.now()
    if isinstance(today, datetime):
        return to_naive(today)
    return datetime(today.year, today.month, today.day)


def _as_date(value: Union[datetime, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def build_schedule(
    tasks: List[Dict[str, Any]],
    today: Union[datetime, date, None] = None,
    policy: Optional[SchedulingPolicy] = None
) -> ScheduleResult:
    """
    Run the full pipeline over a batch of raw task records.

    Args:
        tasks: Raw task records
        today: Reference time for the run (defaults to now)
        policy: Scheduling constants (defaults to the module constants)

    Returns:
        ScheduleResult with sessions in per-task emission order
    """
    now = resolve_today(today)
    result = ScheduleResult()

    valid_tasks, result.skipped_tasks = validate_tasks(tasks)
    if not valid_tasks:
        logger.info("No valid tasks to schedule")
        return result

    tracker = DayCapacityTracker(policy)
    for task in prioritize(valid_tasks):
        sessions = distribute_work(task, tracker, now)
        if sessions:
            result.scheduled_task_count += 1
        shortfall = calculate_task_load(task, tracker.policy) - sum(
            s.duration for s in sessions
        )
        if shortfall > 0:
            result.unscheduled_minutes[task.id] = (
                result.unscheduled_minutes.get(task.id, 0) + shortfall
            )
        result.sessions.extend(sessions)

    logger.info(
        "Scheduled %d session(s) for %d task(s), %d skipped",
        len(result.sessions), result.scheduled_task_count, len(result.skipped_tasks)
    )
    return result


def schedule_all(
    tasks: List[Dict[str, Any]],
    today: Union[datetime, date, None] = None,
    policy: Optional[SchedulingPolicy] = None
) -> List[ScheduledWorkSession]:
    """Schedule a batch of raw task records and return the sessions."""
    return build_schedule(tasks, today, policy).sessions


def sessions_on_date(
    sessions: Iterable[ScheduledWorkSession],
    day: Union[datetime, date]
) -> List[ScheduledWorkSession]:
    """Sessions placed on the given calendar date."""
    target = _as_date(day)
    return [session for session in sessions if session.date == target]


def mark_completed(
    task_id: str,
    day: Union[datetime, date],
    sessions: List[ScheduledWorkSession],
    today: Union[datetime, date, None] = None,
    policy: Optional[SchedulingPolicy] = None
) -> List[ScheduledWorkSession]:
    """
    Mark a task's session on ``day`` as completed and rebuild the schedule.

    The rebuild starts from scratch at ``today`` using only the tasks that
    still have incomplete sessions. Each of those tasks is rescheduled for
    its remaining effort (its estimate minus the minutes of its completed
    sessions), so finishing one session of a multi-day task replaces the
    whole rest of that task's plan. Completed sessions are not carried over.
    If nothing is left incomplete, the flagged sessions are returned as-is.
    """
    target = _as_date(day)
    task_id = str(task_id)

    matched = False
    updated = []
    for session in sessions:
        if session.task_id == task_id and session.date == target:
            updated.append(replace(session, completed=True))
            matched = True
        else:
            updated.append(session)
    if not matched:
        logger.warning(
            "No session for task %s on %s to mark completed", task_id, target.isoformat()
        )

    incomplete = [s for s in updated if not s.completed]
    if not incomplete:
        return updated

    completed_minutes: Dict[str, int] = {}
    for session in updated:
        if session.completed:
            completed_minutes[session.task_id] = (
                completed_minutes.get(session.task_id, 0) + session.duration
            )

    records = []
    seen = set()
    for session in incomplete:
        if session.task_id in seen:
            continue
        seen.add(session.task_id)
        remaining_hours = (
            session.task.estimated_hours - completed_minutes.get(session.task_id, 0) / 60
        )
        if remaining_hours <= 0:
            logger.debug("Task %s has no remaining effort", session.task_id)
            continue
        record = session.task.to_dict()
        record['estimated_hours'] = remaining_hours
        records.append(record)

    return schedule_all(records, today, policy)
