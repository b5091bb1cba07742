"""
Task Validation for the Study Planner.

This module turns raw task records (as supplied by the persistence layer or
posted to the API) into normalized ``Task`` objects the scheduler can work
with. Records that cannot be scheduled are never dropped silently: they are
returned in a separate skipped list together with the specific issues found.

Accepted Input Shapes:
---------------------
- due_date:        datetime, date, or ISO-8601 string ("2025-11-07",
                   "2025-11-07T17:00:00Z")
- estimated_hours: number, bare numeric string ("2.5"), or free text such as
                   "2 hours" / "90 minutes"
- priority:        integer 1-5, numeric string, or "low" / "medium" / "high";
                   any other text falls back to medium (3)
- class:           optional sub-record with name, difficulty (1-10) and
                   teacher_strictness (1-10)
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# ==================== Error Codes ====================

class ErrorCode(Enum):
    """Error codes for rejected tasks and API responses."""
    SUCCESS = "SUCCESS"
    ERR_MISSING_FIELD = "ERR_MISSING_FIELD"
    ERR_INVALID_DATE = "ERR_INVALID_DATE"
    ERR_INVALID_HOURS = "ERR_INVALID_HOURS"
    ERR_INVALID_PRIORITY = "ERR_INVALID_PRIORITY"
    ERR_MISSING_CLASS_DATA = "ERR_MISSING_CLASS_DATA"
    ERR_TASK_COMPLETED = "ERR_TASK_COMPLETED"
    ERR_INVALID_REQUEST = "ERR_INVALID_REQUEST"
    ERR_INVALID_SESSION = "ERR_INVALID_SESSION"


@dataclass
class ValidationError:
    """Structured validation error with code and details."""
    code: ErrorCode
    message: str
    field: Optional[str] = None
    task_id: Optional[str] = None

    def to_dict(self) -> Dict:
        result = {
            'error_code': self.code.value,
            'message': self.message
        }
        if self.field:
            result['field'] = self.field
        if self.task_id is not None:
            result['task_id'] = self.task_id
        return result


# ==================== Task Records ====================

class TaskStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


@dataclass
class CourseInfo:
    """The class a task belongs to, with its workload ratings."""
    name: str
    difficulty: float
    teacher_strictness: float

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'difficulty': self.difficulty,
            'teacher_strictness': self.teacher_strictness
        }


@dataclass
class Task:
    """
    A validated, normalized task ready for scheduling.

    Attributes:
        id: Task identifier (always a string once validated)
        title: Task title
        due_date: Naive wall-clock timestamp the task is due
        estimated_hours: Positive effort estimate in hours
        priority: Integer priority from 1 (low) to 5 (high)
        course: Class context, if the task belongs to one
    """
    id: str
    title: str
    due_date: datetime
    estimated_hours: float
    priority: int
    description: Optional[str] = None
    course: Optional[CourseInfo] = None
    class_id: Optional[str] = None
    status: str = TaskStatus.PENDING.value

    @property
    def urgency_score(self) -> float:
        """
        Urgency in [0, 1] used to break ties between tasks due together.

        Formula: difficulty/10 + teacher_strictness/10 + priority/10, capped at 1.
        """
        score = 0.0
        if self.course is not None:
            score += self.course.difficulty / 10
            score += self.course.teacher_strictness / 10
        score += self.priority / 10
        return min(score, 1.0)

    def to_dict(self) -> Dict:
        """Canonical form: ISO due date, plain hour count, integer priority."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'due_date': self.due_date.isoformat(),
            'estimated_hours': self.estimated_hours,
            'priority': self.priority,
            'class_id': self.class_id,
            'class': self.course.to_dict() if self.course else None,
            'status': self.status
        }


@dataclass
class SkippedTask:
    """A record that could not be scheduled and the reasons why."""
    record: Dict[str, Any]
    issues: List[ValidationError] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'task': self.record,
            'issues': [issue.to_dict() for issue in self.issues]
        }


# ==================== Field Parsers ====================

PRIORITY_LABELS = {
    'low': 1,
    'medium': 3,
    'high': 5
}
DEFAULT_PRIORITY = 3
MIN_PRIORITY = 1
MAX_PRIORITY = 5
MAX_ESTIMATED_HOURS = 1000  # larger estimates cannot be laid out as minutes

_HOURS_PATTERN = re.compile(r'(\d+(?:\.\d+)?)\s*hours?', re.IGNORECASE)
_MINUTES_PATTERN = re.compile(r'(\d+(?:\.\d+)?)\s*minutes?', re.IGNORECASE)


def to_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_due_date(value: Any) -> Optional[datetime]:
    """
    Parse a due date into a naive datetime.

    Date-only values mean midnight of that day. Returns None when the value
    is not a recognizable timestamp.
    """
    if isinstance(value, datetime):
        return to_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            return to_naive(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def parse_estimated_hours(value: Any) -> Optional[float]:
    """
    Parse an effort estimate into hours.

    Accepts numbers, "X hours", "X minutes" and bare numeric strings.
    Returns None when nothing numeric can be extracted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    hours_match = _HOURS_PATTERN.search(value)
    if hours_match:
        return float(hours_match.group(1))

    minutes_match = _MINUTES_PATTERN.search(value)
    if minutes_match:
        return float(minutes_match.group(1)) / 60

    try:
        return float(value.strip())
    except ValueError:
        return None


def parse_priority(value: Any) -> Optional[float]:
    """
    Parse a priority into a number.

    Numbers and numeric strings are returned as-is so the caller can range
    check them; known labels map to 1/3/5 and any other text falls back to
    medium. Returns None only for values of an unusable type.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in PRIORITY_LABELS:
            return PRIORITY_LABELS[text]
        try:
            return float(text)
        except ValueError:
            logger.debug("Unrecognized priority %r, defaulting to medium", value)
            return DEFAULT_PRIORITY
    return None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


# ==================== Validation ====================

def normalize_task(record: Dict[str, Any]) -> Tuple[Optional[Task], List[ValidationError]]:
    """
    Validate a single raw task record.

    Returns:
        Tuple of (normalized Task or None, list of issues). The task is None
        whenever at least one issue was found.
    """
    issues: List[ValidationError] = []
    raw_id = record.get('id')
    task_id = str(raw_id) if raw_id not in (None, '') else None

    def reject(code: ErrorCode, message: str, field_name: str) -> None:
        issues.append(ValidationError(
            code=code,
            message=message,
            field=field_name,
            task_id=task_id
        ))

    # Required fields
    if task_id is None:
        reject(ErrorCode.ERR_MISSING_FIELD, "Missing task ID", 'id')
    title = record.get('title')
    if not title or not str(title).strip():
        reject(ErrorCode.ERR_MISSING_FIELD, "Missing title", 'title')

    raw_due = record.get('due_date')
    due_date = None
    if raw_due in (None, ''):
        reject(ErrorCode.ERR_MISSING_FIELD, "Missing due date", 'due_date')
    else:
        due_date = parse_due_date(raw_due)
        if due_date is None:
            reject(ErrorCode.ERR_INVALID_DATE, "Invalid due date format", 'due_date')

    # Effort
    hours = parse_estimated_hours(record.get('estimated_hours'))
    if (
        hours is None
        or not math.isfinite(hours)
        or not 0 < hours <= MAX_ESTIMATED_HOURS
    ):
        reject(
            ErrorCode.ERR_INVALID_HOURS,
            f"Invalid estimated time (must be a positive number of hours, "
            f"at most {MAX_ESTIMATED_HOURS})",
            'estimated_hours'
        )

    # Priority
    raw_priority = record.get('priority')
    if raw_priority is None:
        priority = DEFAULT_PRIORITY
    else:
        priority = parse_priority(raw_priority)
    if (
        priority is None
        or not math.isfinite(priority)
        or priority != int(priority)
        or not MIN_PRIORITY <= priority <= MAX_PRIORITY
    ):
        reject(
            ErrorCode.ERR_INVALID_PRIORITY,
            "Invalid priority (must be a whole number between 1 and 5)",
            'priority'
        )

    # Class data
    course = None
    class_record = record.get('class')
    class_id = record.get('class_id')
    if class_record or class_id:
        if not isinstance(class_record, dict):
            reject(ErrorCode.ERR_MISSING_CLASS_DATA, "Missing class data", 'class')
        else:
            difficulty = class_record.get('difficulty')
            strictness = class_record.get('teacher_strictness')
            if not _is_number(difficulty):
                reject(
                    ErrorCode.ERR_MISSING_CLASS_DATA,
                    "Invalid class difficulty",
                    'class.difficulty'
                )
            if not _is_number(strictness):
                reject(
                    ErrorCode.ERR_MISSING_CLASS_DATA,
                    "Invalid teacher strictness",
                    'class.teacher_strictness'
                )
            if _is_number(difficulty) and _is_number(strictness):
                course = CourseInfo(
                    name=str(class_record.get('name') or ''),
                    difficulty=difficulty,
                    teacher_strictness=strictness
                )

    status = str(record.get('status') or TaskStatus.PENDING.value).upper()
    if status == TaskStatus.COMPLETED.value:
        reject(ErrorCode.ERR_TASK_COMPLETED, "Task is already completed", 'status')

    if issues:
        return None, issues

    return Task(
        id=task_id,
        title=str(title).strip(),
        description=record.get('description') or None,
        due_date=due_date,
        estimated_hours=hours,
        priority=int(priority),
        course=course,
        class_id=str(class_id) if class_id not in (None, '') else None,
        status=status
    ), issues


def validate_tasks(records: List[Dict[str, Any]]) -> Tuple[List[Task], List[SkippedTask]]:
    """
    Split raw task records into schedulable tasks and skipped records.

    Rejected records are logged with their issues; this never raises for bad
    task data, so one malformed record cannot abort a batch.
    """
    valid_tasks: List[Task] = []
    skipped_tasks: List[SkippedTask] = []

    for record in records:
        if not isinstance(record, dict):
            issue = ValidationError(
                code=ErrorCode.ERR_MISSING_FIELD,
                message="Task record must be an object"
            )
            logger.warning("Skipping task record %r: %s", record, issue.message)
            skipped_tasks.append(SkippedTask(record={'value': record}, issues=[issue]))
            continue

        task, issues = normalize_task(record)
        if task is None:
            logger.warning(
                "Skipping task %r (%s): %s",
                record.get('title'),
                record.get('id'),
                '; '.join(issue.message for issue in issues)
            )
            skipped_tasks.append(SkippedTask(record=record, issues=issues))
        else:
            valid_tasks.append(task)

    logger.info(
        "Validated %d task(s): %d valid, %d skipped",
        len(records), len(valid_tasks), len(skipped_tasks)
    )
    return valid_tasks, skipped_tasks
