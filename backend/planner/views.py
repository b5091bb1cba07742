"""
API Views for the Study Planner.

This module exposes the workload distribution engine over a stateless REST
API. Clients send the task records they already hold and receive scheduled
work sessions (or calendar-ready events) back; nothing is stored.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, throttle_classes
from rest_framework.response import Response
from rest_framework.request import Request
from rest_framework.throttling import AnonRateThrottle
from drf_spectacular.utils import extend_schema
from drf_spectacular.types import OpenApiTypes

from .calendar_events import DEFAULT_DAY_START, build_calendar_events
from .conf import get_policy
from .scheduling import (
    ScheduledWorkSession,
    build_schedule,
    mark_completed,
    sessions_on_date,
)
from .serializers import (
    CalendarRequestSerializer,
    MarkCompletedRequestSerializer,
    ScheduleRequestSerializer,
    SessionsOnDateRequestSerializer,
)
from .validation import ErrorCode

logger = logging.getLogger(__name__)


# ============================================
# RATE LIMITING CLASSES
# ============================================

class ScheduleRateThrottle(AnonRateThrottle):
    """Rate limit for schedule computations - 30 requests per minute."""
    scope = 'schedule'
    rate = '30/min'


class SessionRateThrottle(AnonRateThrottle):
    """Rate limit for session lookups and updates - 60 requests per minute."""
    scope = 'sessions'
    rate = '60/min'


# ============================================
# HELPERS
# ============================================

def _invalid_request(errors, message: str) -> Response:
    return Response(
        {
            'success': False,
            'error_code': ErrorCode.ERR_INVALID_REQUEST.value,
            'errors': errors,
            'message': message
        },
        status=status.HTTP_400_BAD_REQUEST
    )


def _load_sessions(session_dicts):
    """
    Rebuild sessions from validated request data.

    Returns:
        Tuple of (sessions, error response or None)
    """
    sessions = []
    for index, data in enumerate(session_dicts):
        try:
            sessions.append(ScheduledWorkSession.from_dict(data))
        except ValueError as exc:
            logger.info("Rejected session %d in request: %s", index, exc)
            return None, Response(
                {
                    'success': False,
                    'error_code': ErrorCode.ERR_INVALID_SESSION.value,
                    'message': f"Session {index}: {exc}"
                },
                status=status.HTTP_400_BAD_REQUEST
            )
    return sessions, None


# ============================================
# API ENDPOINTS
# ============================================

@extend_schema(
    summary="Schedule tasks",
    description="""
    Distribute each task's estimated effort over the days until it is due.

    Invalid task records do not fail the request; they are returned in
    `skipped_tasks` with the reasons they were rejected.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'today': {'type': 'string', 'format': 'date-time'},
            },
            'required': ['tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Scheduling']
)
@api_view(['POST'])
@throttle_classes([ScheduleRateThrottle])
def schedule_tasks(request: Request) -> Response:
    """
    Build a work schedule from task records.

    POST /api/schedule/

    Request Body:
    {
        "tasks": [...],
        "today": "2025-11-03T09:00:00"      // Optional, defaults to now
    }
    """
    serializer = ScheduleRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(
            serializer.errors,
            'Invalid input data. Please check your tasks format.'
        )

    validated_data = serializer.validated_data
    result = build_schedule(
        validated_data['tasks'],
        today=validated_data.get('today'),
        policy=get_policy()
    )

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(result.sessions),
        'sessions': [s.to_dict() for s in result.sessions],
        'skipped_tasks': [s.to_dict() for s in result.skipped_tasks],
        'summary': result.summary()
    })


@extend_schema(
    summary="Sessions on a date",
    description="Filter a previously computed schedule down to one calendar date.",
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'sessions': {'type': 'array', 'items': {'type': 'object'}},
                'date': {'type': 'string', 'format': 'date'},
            },
            'required': ['sessions', 'date']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Sessions']
)
@api_view(['POST'])
@throttle_classes([SessionRateThrottle])
def sessions_for_date(request: Request) -> Response:
    """
    Return the sessions scheduled on one date.

    POST /api/schedule/day/
    """
    serializer = SessionsOnDateRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer.errors, 'Invalid session data.')

    sessions, error = _load_sessions(serializer.validated_data['sessions'])
    if error is not None:
        return error

    day = serializer.validated_data['date']
    matching = sessions_on_date(sessions, day)
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'date': day.isoformat(),
        'count': len(matching),
        'total_minutes': sum(s.duration for s in matching),
        'sessions': [s.to_dict() for s in matching]
    })


@extend_schema(
    summary="Complete a session",
    description="""
    Mark a task's session on a date as completed and recompute the schedule
    for everything still outstanding, starting from `today`.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'task_id': {'type': 'string'},
                'date': {'type': 'string', 'format': 'date'},
                'sessions': {'type': 'array', 'items': {'type': 'object'}},
                'today': {'type': 'string', 'format': 'date-time'},
            },
            'required': ['task_id', 'date', 'sessions']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Sessions']
)
@api_view(['POST'])
@throttle_classes([SessionRateThrottle])
def complete_session(request: Request) -> Response:
    """
    Mark a session completed and return the recomputed schedule.

    POST /api/schedule/complete/
    """
    serializer = MarkCompletedRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(serializer.errors, 'Invalid completion request.')

    validated_data = serializer.validated_data
    sessions, error = _load_sessions(validated_data['sessions'])
    if error is not None:
        return error

    updated = mark_completed(
        validated_data['task_id'],
        validated_data['date'],
        sessions,
        today=validated_data.get('today'),
        policy=get_policy()
    )

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(updated),
        'sessions': [s.to_dict() for s in updated]
    })


@extend_schema(
    summary="Schedule tasks as calendar events",
    description="Schedule tasks and lay the sessions out as calendar events.",
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'today': {'type': 'string', 'format': 'date-time'},
                'day_start': {'type': 'string', 'format': 'time'},
            },
            'required': ['tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Scheduling']
)
@api_view(['POST'])
@throttle_classes([ScheduleRateThrottle])
def calendar_events(request: Request) -> Response:
    """
    Build calendar events for a batch of tasks.

    POST /api/schedule/calendar/
    """
    serializer = CalendarRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_request(
            serializer.errors,
            'Invalid input data. Please check your tasks format.'
        )

    validated_data = serializer.validated_data
    result = build_schedule(
        validated_data['tasks'],
        today=validated_data.get('today'),
        policy=get_policy()
    )
    events = build_calendar_events(
        result.sessions,
        day_start=validated_data.get('day_start', DEFAULT_DAY_START)
    )

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(events),
        'events': [e.to_dict() for e in events],
        'skipped_tasks': [s.to_dict() for s in result.skipped_tasks]
    })


@extend_schema(
    summary="Scheduling policy",
    description="Return the scheduling constants currently in effect.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Info']
)
@api_view(['GET'])
def scheduling_policy(request: Request) -> Response:
    """
    Return the scheduling constants currently in effect.

    GET /api/schedule/policy/
    """
    policy = get_policy()
    return Response({
        'success': True,
        'policy': policy.to_dict()
    })


@extend_schema(
    summary="API information",
    description="Get API information and available endpoints.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Info']
)
@api_view(['GET'])
def api_info(request: Request) -> Response:
    """
    Return API information and available endpoints.

    GET /api/
    """
    return Response({
        'name': 'Study Planner API',
        'version': '1.0.0',
        'documentation': '/api/docs/',
        'features': [
            'Workload distribution across days until due',
            'Weekday energy levels with weekend reduction',
            '15-minute session quantization',
            'Priority and class-based urgency ordering',
            'Recompute on session completion',
            'Calendar event export'
        ],
        'endpoints': {
            'POST /api/schedule/': 'Schedule tasks into work sessions',
            'POST /api/schedule/day/': 'Sessions scheduled on a date',
            'POST /api/schedule/complete/': 'Complete a session and recompute',
            'POST /api/schedule/calendar/': 'Schedule tasks as calendar events',
            'GET /api/schedule/policy/': 'Scheduling constants in effect',
            'GET /api/docs/': 'Interactive API documentation',
            'GET /api/schema/': 'OpenAPI schema',
            'GET /api/': 'This info endpoint'
        },
        'error_codes': {
            code.value: code.name for code in ErrorCode
        }
    })
