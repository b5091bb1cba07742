"""
Unit Tests for the Study Planner.

This module covers task validation, prioritization, the day capacity model,
work distribution, completion recompute, calendar conversion and the API.
All scheduling tests pin "today" so results do not depend on the clock.
"""

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase
from rest_framework import status
from datetime import datetime, time, timedelta
import json

from .calendar_events import CLASS_COLORS, build_calendar_events
from .conf import get_policy
from .scheduling import (
    DayCapacityTracker,
    ScheduledWorkSession,
    SchedulingPolicy,
    build_schedule,
    calculate_task_load,
    mark_completed,
    prioritize,
    round_to_increment,
    schedule_all,
    sessions_on_date,
)
from .validation import (
    MAX_ESTIMATED_HOURS,
    ErrorCode,
    normalize_task,
    validate_tasks,
)

# 2025-11-03 is a Monday
MONDAY = datetime(2025, 11, 3)
TUESDAY = MONDAY + timedelta(days=1)
WEDNESDAY = MONDAY + timedelta(days=2)
THURSDAY = MONDAY + timedelta(days=3)
FRIDAY = MONDAY + timedelta(days=4)
SATURDAY = MONDAY + timedelta(days=5)
SUNDAY = MONDAY + timedelta(days=6)


def make_record(**overrides):
    record = {
        'id': 'task-1',
        'title': 'Essay draft',
        'due_date': FRIDAY.isoformat(),
        'estimated_hours': 4,
        'priority': 3,
    }
    record.update(overrides)
    return record


def make_task(**overrides):
    task, issues = normalize_task(make_record(**overrides))
    assert task is not None, issues
    return task


def minutes_by_task(sessions):
    totals = {}
    for session in sessions:
        totals[session.task_id] = totals.get(session.task_id, 0) + session.duration
    return totals


class EnergyLevelTests(TestCase):
    """Tests for weekday energy levels and daily capacity."""

    def setUp(self):
        self.policy = SchedulingPolicy()

    def test_full_energy_early_week(self):
        """Monday and Tuesday allow the full 6 hours."""
        self.assertEqual(self.policy.energy_level(MONDAY.date()), 1.0)
        self.assertEqual(self.policy.daily_capacity(MONDAY.date()), 360)
        self.assertEqual(self.policy.daily_capacity(TUESDAY.date()), 360)

    def test_midweek_and_friday_capacity(self):
        self.assertEqual(self.policy.daily_capacity(WEDNESDAY.date()), 324)
        self.assertEqual(self.policy.daily_capacity(THURSDAY.date()), 324)
        self.assertEqual(self.policy.daily_capacity(FRIDAY.date()), 288)

    def test_weekend_reduction_stacks(self):
        """Weekend days get their base level and the weekend reduction."""
        self.assertAlmostEqual(self.policy.energy_level(SATURDAY.date()), 0.42)
        self.assertAlmostEqual(self.policy.energy_level(SUNDAY.date()), 0.36)
        self.assertEqual(self.policy.daily_capacity(SATURDAY.date()), 151)
        self.assertEqual(self.policy.daily_capacity(SUNDAY.date()), 129)

    def test_policy_overrides_by_weekday_name(self):
        policy = SchedulingPolicy.from_dict({
            'max_daily_minutes': 300,
            'daily_energy_levels': {'friday': 0.5}
        })
        self.assertEqual(policy.daily_capacity(FRIDAY.date()), 150)
        self.assertEqual(policy.daily_capacity(MONDAY.date()), 300)

    def test_invalid_increment_rejected(self):
        with self.assertRaises(ValueError):
            SchedulingPolicy(time_increment=0)

    def test_non_finite_energy_rejected(self):
        with self.assertRaises(ValueError):
            SchedulingPolicy.from_dict({'daily_energy_levels': {'monday': 'inf'}})

    @override_settings(SCHEDULING_POLICY={'max_daily_minutes': 120})
    def test_settings_override(self):
        """Project settings feed the policy used by the API."""
        self.assertEqual(get_policy().daily_capacity(MONDAY.date()), 120)


class TaskLoadTests(TestCase):
    """Tests for converting effort estimates into scheduled minutes."""

    def test_small_task_raised_to_minimum_session(self):
        """12 minutes of work still gets a 15 minute session."""
        self.assertEqual(calculate_task_load(make_task(estimated_hours=0.2)), 15)

    def test_load_rounds_to_nearest_quarter_hour(self):
        self.assertEqual(calculate_task_load(make_task(estimated_hours=4)), 240)
        self.assertEqual(calculate_task_load(make_task(estimated_hours=1.1)), 60)
        self.assertEqual(calculate_task_load(make_task(estimated_hours=1.3)), 75)

    def test_rounding_is_half_up(self):
        self.assertEqual(round_to_increment(7.5), 15)
        self.assertEqual(round_to_increment(37.5), 45)
        self.assertEqual(round_to_increment(7.4), 0)


class ValidationTests(TestCase):
    """Tests for task validation and normalization."""

    def test_valid_task_is_normalized(self):
        task, issues = normalize_task(make_record(
            id=7,
            due_date='2025-11-07',
            estimated_hours='2 hours',
            priority='HIGH'
        ))

        self.assertEqual(issues, [])
        self.assertEqual(task.id, '7')
        self.assertEqual(task.due_date, datetime(2025, 11, 7))
        self.assertEqual(task.estimated_hours, 2.0)
        self.assertEqual(task.priority, 5)
        self.assertEqual(task.to_dict()['due_date'], '2025-11-07T00:00:00')

    def test_effort_text_formats(self):
        self.assertEqual(make_task(estimated_hours='90 minutes').estimated_hours, 1.5)
        self.assertEqual(make_task(estimated_hours='1 hour').estimated_hours, 1.0)
        self.assertEqual(make_task(estimated_hours='2.5').estimated_hours, 2.5)

    def test_priority_labels_and_fallback(self):
        """Known labels map to 1/3/5; unknown text falls back to medium."""
        self.assertEqual(make_task(priority='low').priority, 1)
        self.assertEqual(make_task(priority='Medium').priority, 3)
        self.assertEqual(make_task(priority='urgent').priority, 3)
        self.assertEqual(make_task(priority='4').priority, 4)
        self.assertEqual(make_task(priority=None).priority, 3)

    def test_utc_timestamp_made_naive(self):
        task = make_task(due_date='2025-11-07T17:00:00Z')
        self.assertEqual(task.due_date, datetime(2025, 11, 7, 17, 0))

    def test_missing_due_date_rejected(self):
        _, skipped = validate_tasks([make_record(due_date=None)])
        self.assertEqual(len(skipped), 1)
        self.assertEqual(skipped[0].issues[0].code, ErrorCode.ERR_MISSING_FIELD)
        self.assertEqual(skipped[0].issues[0].field, 'due_date')

    def test_unparseable_due_date_rejected(self):
        task, issues = normalize_task(make_record(due_date='next friday'))
        self.assertIsNone(task)
        self.assertEqual(issues[0].code, ErrorCode.ERR_INVALID_DATE)

    def test_non_positive_or_unparseable_effort_rejected(self):
        """Bad effort is rejected, never defaulted to zero."""
        for value in (0, -1, 'a while', None, float('nan')):
            task, issues = normalize_task(make_record(estimated_hours=value))
            self.assertIsNone(task, value)
            self.assertEqual(issues[0].code, ErrorCode.ERR_INVALID_HOURS)

    def test_oversized_effort_rejected(self):
        """Effort too large to lay out in minutes is rejected up front."""
        for value in (1e307, '1e307', MAX_ESTIMATED_HOURS + 1):
            task, issues = normalize_task(make_record(estimated_hours=value))
            self.assertIsNone(task, value)
            self.assertEqual(issues[0].code, ErrorCode.ERR_INVALID_HOURS)
        self.assertEqual(
            make_task(estimated_hours=MAX_ESTIMATED_HOURS).estimated_hours,
            MAX_ESTIMATED_HOURS
        )

    def test_out_of_range_numeric_priority_rejected(self):
        for value in (0, 7, 2.5):
            task, issues = normalize_task(make_record(priority=value))
            self.assertIsNone(task, value)
            self.assertEqual(issues[0].code, ErrorCode.ERR_INVALID_PRIORITY)

    def test_incomplete_class_data_rejected(self):
        task, issues = normalize_task(make_record(
            **{'class': {'name': 'Physics', 'difficulty': 7}}
        ))
        self.assertIsNone(task)
        self.assertEqual(issues[0].code, ErrorCode.ERR_MISSING_CLASS_DATA)
        self.assertEqual(issues[0].field, 'class.teacher_strictness')

    def test_class_id_without_class_rejected(self):
        task, issues = normalize_task(make_record(class_id='phys-101'))
        self.assertIsNone(task)
        self.assertEqual(issues[0].code, ErrorCode.ERR_MISSING_CLASS_DATA)

    def test_completed_task_skipped(self):
        _, skipped = validate_tasks([make_record(status='completed')])
        self.assertEqual(skipped[0].issues[0].code, ErrorCode.ERR_TASK_COMPLETED)

    def test_all_issues_reported(self):
        task, issues = normalize_task({'title': '', 'estimated_hours': -2})
        self.assertIsNone(task)
        fields = {issue.field for issue in issues}
        self.assertTrue({'id', 'title', 'due_date', 'estimated_hours'} <= fields)

    def test_rejections_are_logged(self):
        with self.assertLogs('planner.validation', level='WARNING') as logs:
            validate_tasks([make_record(due_date='garbage')])
        self.assertIn('Invalid due date format', logs.output[0])

    def test_urgency_score(self):
        plain = make_task(priority=3)
        self.assertAlmostEqual(plain.urgency_score, 0.3)

        hard = make_task(
            priority=5,
            **{'class': {'name': 'Physics', 'difficulty': 8, 'teacher_strictness': 7}}
        )
        self.assertEqual(hard.urgency_score, 1.0)


class PrioritizerTests(TestCase):
    """Tests for task processing order."""

    def test_earlier_due_date_first(self):
        later = make_task(id='later', due_date=FRIDAY.isoformat(), priority=5)
        sooner = make_task(id='sooner', due_date=WEDNESDAY.isoformat(), priority=1)
        self.assertEqual([t.id for t in prioritize([later, sooner])], ['sooner', 'later'])

    def test_same_due_date_higher_urgency_first(self):
        calm = make_task(id='calm', priority=1)
        urgent = make_task(
            id='urgent',
            priority=4,
            **{'class': {'name': 'Chem', 'difficulty': 6, 'teacher_strictness': 5}}
        )
        self.assertEqual([t.id for t in prioritize([calm, urgent])], ['urgent', 'calm'])

    def test_full_ties_keep_input_order(self):
        tasks = [make_task(id=str(i)) for i in range(5)]
        self.assertEqual([t.id for t in prioritize(tasks)], ['0', '1', '2', '3', '4'])


class DayCapacityTrackerTests(TestCase):
    """Tests for the per-run capacity tracker."""

    def test_untouched_day_has_full_capacity(self):
        tracker = DayCapacityTracker()
        self.assertEqual(tracker.remaining_minutes(WEDNESDAY.date()), 324)
        self.assertNotIn(WEDNESDAY.date(), tracker)

    def test_commit_reduces_remaining(self):
        tracker = DayCapacityTracker()
        session = ScheduledWorkSession(
            task_id='task-1', date=MONDAY.date(), duration=90, task=make_task()
        )
        schedule = tracker.commit(session)

        self.assertEqual(tracker.remaining_minutes(MONDAY.date()), 270)
        self.assertEqual(schedule.total_hours, 1.5)
        self.assertEqual(schedule.energy_level, 1.0)
        self.assertEqual(schedule.sessions, [session])

    def test_get_or_create_is_lazy_and_stable(self):
        tracker = DayCapacityTracker()
        first = tracker.get_or_create(SUNDAY.date())
        self.assertIs(tracker.get_or_create(SUNDAY.date()), first)
        self.assertAlmostEqual(first.energy_level, 0.36)
        self.assertEqual(len(tracker), 1)


class WorkDistributionTests(TestCase):
    """Tests for distributing effort across days."""

    def test_even_spread_over_four_days(self):
        """4 hours due in 4 days from Monday: 60 minutes Monday to Thursday."""
        sessions = schedule_all(
            [make_record(id='A', estimated_hours=4, priority='high')],
            today=MONDAY
        )

        self.assertEqual([s.duration for s in sessions], [60, 60, 60, 60])
        self.assertEqual(
            [s.date for s in sessions],
            [MONDAY.date(), TUESDAY.date(), WEDNESDAY.date(), THURSDAY.date()]
        )
        self.assertTrue(all(s.task_id == 'A' for s in sessions))
        self.assertTrue(all(not s.completed for s in sessions))

    def test_tiny_task_due_today_gets_minimum_session(self):
        sessions = schedule_all(
            [make_record(id='B', estimated_hours=0.2, due_date='2025-11-03T17:00:00')],
            today=MONDAY
        )
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].duration, 15)
        self.assertEqual(sessions[0].date, MONDAY.date())

    def test_due_tomorrow_competition(self):
        """The more urgent task takes 300 minutes, the other gets what is left."""
        tasks = [
            make_record(id='low', estimated_hours=5, priority=1,
                        due_date=WEDNESDAY.isoformat()),
            make_record(id='high', estimated_hours=5, priority=5,
                        due_date=WEDNESDAY.isoformat(),
                        **{'class': {'name': 'Math', 'difficulty': 9,
                                     'teacher_strictness': 9}}),
        ]
        with self.assertLogs('planner.scheduling', level='WARNING') as logs:
            sessions = schedule_all(tasks, today=TUESDAY)

        self.assertEqual([(s.task_id, s.duration) for s in sessions],
                         [('high', 300), ('low', 60)])
        self.assertTrue(all(s.date == TUESDAY.date() for s in sessions))
        self.assertTrue(any('240 min unscheduled' in line for line in logs.output))

    def test_due_soon_never_spans_days(self):
        sessions = schedule_all(
            [make_record(estimated_hours=10, due_date=TUESDAY.isoformat())],
            today=MONDAY
        )
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].duration, 360)

    def test_due_soon_skipped_when_day_is_full(self):
        tasks = [
            make_record(id='first', estimated_hours=6, due_date='2025-11-03T12:00:00'),
            make_record(id='second', estimated_hours=1, due_date=TUESDAY.isoformat()),
        ]
        sessions = schedule_all(tasks, today=MONDAY)
        self.assertEqual([s.task_id for s in sessions], ['first'])

    def test_conservation_without_competition(self):
        """All effort is placed when nothing competes for capacity."""
        sessions = schedule_all(
            [make_record(estimated_hours=10,
                         due_date=(MONDAY + timedelta(days=10)).isoformat())],
            today=MONDAY
        )
        self.assertEqual(sum(s.duration for s in sessions), 600)
        self.assertEqual(len(sessions), 10)

    def test_low_intensity_spread_places_all_work(self):
        """1 hour due in 10 days still gets scheduled, in minimum-length sessions."""
        sessions = schedule_all(
            [make_record(estimated_hours=1,
                         due_date=(MONDAY + timedelta(days=10)).isoformat())],
            today=MONDAY
        )
        self.assertEqual([s.duration for s in sessions], [15, 15, 15, 15])
        self.assertEqual(
            [s.date for s in sessions],
            [MONDAY.date(), TUESDAY.date(), WEDNESDAY.date(), THURSDAY.date()]
        )

    def test_long_horizon_conservation(self):
        sessions = schedule_all(
            [make_record(estimated_hours=2,
                         due_date=(MONDAY + timedelta(days=20)).isoformat())],
            today=MONDAY
        )
        self.assertEqual(sum(s.duration for s in sessions), 120)
        self.assertTrue(all(s.duration == 15 for s in sessions))

    def test_walk_stops_at_last_representable_day(self):
        """A due date at the end of the calendar ends the walk without overflow."""
        with self.assertLogs('planner.scheduling', level='WARNING'):
            sessions = schedule_all(
                [make_record(estimated_hours=100, due_date='9999-12-31T23:00:00')],
                today=datetime(9999, 12, 20, 12, 0)
            )
        self.assertEqual(sessions[-1].date, datetime(9999, 12, 31).date())
        self.assertLess(sum(s.duration for s in sessions), 6000)

    def test_due_on_last_representable_day(self):
        sessions = schedule_all(
            [make_record(estimated_hours=1, due_date='9999-12-31T23:00:00')],
            today=datetime(9999, 12, 31)
        )
        self.assertEqual([(s.date, s.duration) for s in sessions],
                         [(datetime(9999, 12, 31).date(), 60)])

    def test_oversized_effort_skipped_not_raised(self):
        result = build_schedule(
            [make_record(id='huge', estimated_hours=1e307), make_record(id='ok')],
            today=MONDAY
        )
        self.assertEqual({s.task_id for s in result.sessions}, {'ok'})
        self.assertEqual([s.record['id'] for s in result.skipped_tasks], ['huge'])

    def test_sessions_are_quantized(self):
        tasks = [
            make_record(id=str(i), estimated_hours=hours,
                        due_date=(MONDAY + timedelta(days=days)).isoformat())
            for i, (hours, days) in enumerate([(1.3, 3), (7.7, 6), (0.4, 2), (12, 9)])
        ]
        for session in schedule_all(tasks, today=MONDAY):
            self.assertGreaterEqual(session.duration, 15)
            self.assertEqual(session.duration % 15, 0)

    def test_daily_capacity_never_exceeded(self):
        tasks = [
            make_record(id=str(i), estimated_hours=8,
                        due_date=(MONDAY + timedelta(days=6)).isoformat())
            for i in range(6)
        ]
        tasks.append(make_record(id='soon', estimated_hours=3,
                                 due_date=TUESDAY.isoformat()))
        sessions = schedule_all(tasks, today=MONDAY)
        policy = SchedulingPolicy()

        per_day = {}
        for session in sessions:
            per_day[session.date] = per_day.get(session.date, 0) + session.duration
        for day, minutes in per_day.items():
            self.assertLessEqual(minutes, policy.daily_capacity(day))

    def test_large_task_respects_capacity_and_reports_shortfall(self):
        with self.assertLogs('planner.scheduling', level='WARNING'):
            result = build_schedule(
                [make_record(id='big', estimated_hours=30, due_date=SATURDAY.isoformat())],
                today=MONDAY
            )
        policy = SchedulingPolicy()
        for session in result.sessions:
            self.assertLessEqual(session.duration, policy.daily_capacity(session.date))
        placed = sum(s.duration for s in result.sessions)
        self.assertLess(placed, 1800)
        self.assertEqual(result.unscheduled_minutes['big'], 1800 - placed)

    def test_earlier_tasks_crowd_out_later_ones(self):
        tasks = [
            make_record(id='later', estimated_hours=2, due_date=THURSDAY.isoformat()),
            make_record(id='sooner', estimated_hours=6, due_date=TUESDAY.isoformat()),
        ]
        sessions = schedule_all(tasks, today=MONDAY)

        monday = sessions_on_date(sessions, MONDAY)
        self.assertEqual([(s.task_id, s.duration) for s in monday], [('sooner', 360)])
        self.assertEqual(minutes_by_task(sessions)['later'], 120)
        self.assertEqual(
            [s.duration for s in sessions if s.task_id == 'later'], [45, 45, 30]
        )

    def test_past_due_task_gets_nothing(self):
        with self.assertLogs('planner.scheduling', level='WARNING'):
            sessions = schedule_all(
                [make_record(due_date=(MONDAY - timedelta(days=3)).isoformat())],
                today=MONDAY
            )
        self.assertEqual(sessions, [])

    def test_malformed_task_isolated(self):
        tasks = [
            make_record(id='a'),
            make_record(id='broken', due_date=None),
            make_record(id='b', due_date=THURSDAY.isoformat()),
            make_record(id='c', due_date=SATURDAY.isoformat()),
        ]
        result = build_schedule(tasks, today=MONDAY)

        self.assertEqual({s.task_id for s in result.sessions}, {'a', 'b', 'c'})
        self.assertEqual([s.record['id'] for s in result.skipped_tasks], ['broken'])
        self.assertEqual(result.summary()['scheduled_tasks'], 3)

    def test_empty_input(self):
        self.assertEqual(schedule_all([], today=MONDAY), [])

    def test_repeated_runs_identical(self):
        tasks = [
            make_record(id=str(i), estimated_hours=1 + i * 1.5,
                        due_date=(MONDAY + timedelta(days=1 + i)).isoformat(),
                        priority=(i % 5) + 1)
            for i in range(8)
        ]
        first = [s.to_dict() for s in schedule_all(tasks, today=MONDAY)]
        second = [s.to_dict() for s in schedule_all(tasks, today=MONDAY)]
        self.assertEqual(first, second)


class SessionQueryTests(TestCase):
    """Tests for filtering and completing sessions."""

    def setUp(self):
        self.sessions = schedule_all(
            [make_record(id='A', estimated_hours=4)],
            today=MONDAY
        )

    def test_sessions_on_date(self):
        wednesday = sessions_on_date(self.sessions, WEDNESDAY.date())
        self.assertEqual(len(wednesday), 1)
        self.assertEqual(wednesday[0].date, WEDNESDAY.date())
        self.assertEqual(sessions_on_date(self.sessions, SUNDAY), [])

    def test_completion_recomputes_remaining_work(self):
        """Finishing Wednesday's hour replans the remaining 3 hours from Wednesday."""
        updated = mark_completed('A', WEDNESDAY.date(), self.sessions, today=WEDNESDAY)

        self.assertEqual([(s.date, s.duration) for s in updated],
                         [(WEDNESDAY.date(), 90), (THURSDAY.date(), 90)])
        self.assertTrue(all(not s.completed for s in updated))
        self.assertFalse(any(s is o for s in updated for o in self.sessions))

    def test_completion_does_not_mutate_input(self):
        mark_completed('A', WEDNESDAY.date(), self.sessions, today=WEDNESDAY)
        self.assertTrue(all(not s.completed for s in self.sessions))

    def test_single_session_task_drops_out(self):
        sessions = schedule_all([
            make_record(id='A', estimated_hours=4),
            make_record(id='quiz', estimated_hours=0.5, due_date='2025-11-03T15:00:00'),
        ], today=MONDAY)

        updated = mark_completed('quiz', MONDAY, sessions, today=MONDAY)
        self.assertEqual({s.task_id for s in updated}, {'A'})
        self.assertEqual(minutes_by_task(updated)['A'], 240)

    def test_completing_everything_returns_flagged_sessions(self):
        sessions = schedule_all(
            [make_record(id='quiz', estimated_hours=1, due_date='2025-11-03T15:00:00')],
            today=MONDAY
        )
        updated = mark_completed('quiz', MONDAY, sessions, today=MONDAY)
        self.assertEqual(len(updated), 1)
        self.assertTrue(updated[0].completed)

    def test_unknown_session_logged(self):
        with self.assertLogs('planner.scheduling', level='WARNING'):
            updated = mark_completed('missing', MONDAY, self.sessions, today=MONDAY)
        self.assertEqual(minutes_by_task(updated), {'A': 240})

    def test_session_restored_from_dict(self):
        restored = ScheduledWorkSession.from_dict(self.sessions[0].to_dict())
        self.assertEqual(restored.date, MONDAY.date())
        self.assertEqual(restored.duration, 60)
        self.assertEqual(restored.task.due_date, FRIDAY)

    def test_session_with_bad_duration_rejected(self):
        data = self.sessions[0].to_dict()
        data['duration'] = 0
        with self.assertRaises(ValueError):
            ScheduledWorkSession.from_dict(data)
        data['duration'] = 24 * 60 + 15
        with self.assertRaises(ValueError):
            ScheduledWorkSession.from_dict(data)


class CalendarEventTests(TestCase):
    """Tests for converting sessions into calendar events."""

    def test_events_stack_within_a_day(self):
        sessions = schedule_all([
            make_record(id='quiz', estimated_hours=1, due_date=TUESDAY.isoformat()),
            make_record(id='lab', estimated_hours=0.5, due_date='2025-11-03T20:00:00'),
        ], today=MONDAY)
        events = build_calendar_events(sessions, day_start=time(8, 0))

        self.assertEqual(events[0].start, datetime(2025, 11, 3, 8, 0))
        self.assertEqual(events[0].end, datetime(2025, 11, 3, 8, 30))
        self.assertEqual(events[1].start, events[0].end)
        self.assertEqual(events[1].end, datetime(2025, 11, 3, 9, 30))

    def test_class_colors_are_deterministic(self):
        physics = {'name': 'Physics', 'difficulty': 7, 'teacher_strictness': 6}
        history = {'name': 'History', 'difficulty': 4, 'teacher_strictness': 3}
        sessions = schedule_all([
            make_record(id='p1', due_date=TUESDAY.isoformat(), **{'class': physics}),
            make_record(id='h1', due_date=WEDNESDAY.isoformat(), **{'class': history}),
            make_record(id='p2', due_date=THURSDAY.isoformat(), **{'class': physics}),
        ], today=MONDAY)
        events = build_calendar_events(sessions)
        colors = {e.task_id: e.background_color for e in events}

        self.assertEqual(colors['p1'], CLASS_COLORS[0])
        self.assertEqual(colors['h1'], CLASS_COLORS[1])
        self.assertEqual(colors['p2'], CLASS_COLORS[0])

        props = events[0].to_dict()['extended_props']
        self.assertEqual(props['class'], {'name': 'Physics', 'color': CLASS_COLORS[0]})
        self.assertFalse(props['completed'])

    def test_event_without_class(self):
        sessions = schedule_all([make_record(due_date=TUESDAY.isoformat())], today=MONDAY)
        event = build_calendar_events(sessions)[0].to_dict()

        self.assertIsNone(event['extended_props']['class'])
        self.assertEqual(event['id'], 'task-1-2025-11-03')
        self.assertEqual(event['title'], 'Essay draft')


class APIEndpointTests(APITestCase):
    """Tests for the API endpoints."""

    def setUp(self):
        cache.clear()
        self.tasks = [
            make_record(id='A', estimated_hours=4, priority='high'),
            make_record(id='broken', due_date='not a date'),
        ]

    def post(self, url, data):
        return self.client.post(
            url,
            data=json.dumps(data),
            content_type='application/json'
        )

    def schedule(self):
        response = self.post('/api/schedule/', {
            'tasks': self.tasks,
            'today': MONDAY.isoformat()
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return response

    def test_schedule_endpoint_success(self):
        """POST /api/schedule/ returns sessions and skipped tasks."""
        response = self.schedule()

        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['count'], 4)
        self.assertEqual(
            [s['date'] for s in response.data['sessions']],
            ['2025-11-03', '2025-11-04', '2025-11-05', '2025-11-06']
        )
        skipped = response.data['skipped_tasks']
        self.assertEqual(len(skipped), 1)
        self.assertEqual(skipped[0]['issues'][0]['error_code'], 'ERR_INVALID_DATE')
        self.assertEqual(response.data['summary']['total_minutes'], 240)

    def test_schedule_endpoint_empty_tasks(self):
        """An empty batch is a normal outcome, not an error."""
        response = self.post('/api/schedule/', {'tasks': []})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sessions'], [])

    def test_schedule_endpoint_invalid_envelope(self):
        response = self.post('/api/schedule/', {'tasks': 'not a list'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error_code'], 'ERR_INVALID_REQUEST')


    def test_schedule_endpoint_skips_non_object_records(self):
        """Records that are not objects are skipped, the rest still schedule."""
        response = self.post('/api/schedule/', {
            'tasks': [make_record(id='A'), 'oops', None,
                      make_record(id='huge', estimated_hours=1e307)],
            'today': MONDAY.isoformat()
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({s['task_id'] for s in response.data['sessions']}, {'A'})
        codes = [s['issues'][0]['error_code'] for s in response.data['skipped_tasks']]
        self.assertEqual(codes, ['ERR_MISSING_FIELD', 'ERR_MISSING_FIELD', 'ERR_INVALID_HOURS'])

    def test_schedule_endpoint_invalid_today(self):
        response = self.post('/api/schedule/', {'tasks': [], 'today': 'someday'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sessions_for_date_endpoint(self):
        sessions = self.schedule().data['sessions']
        response = self.post('/api/schedule/day/', {
            'sessions': sessions,
            'date': '2025-11-05'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['total_minutes'], 60)

    def test_complete_endpoint_recomputes(self):
        sessions = self.schedule().data['sessions']
        response = self.post('/api/schedule/complete/', {
            'task_id': 'A',
            'date': '2025-11-05',
            'sessions': sessions,
            'today': WEDNESDAY.isoformat()
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [(s['date'], s['duration']) for s in response.data['sessions']],
            [('2025-11-05', 90), ('2025-11-06', 90)]
        )

    def test_complete_endpoint_rejects_bad_session(self):
        sessions = self.schedule().data['sessions']
        sessions[0]['task']['estimated_hours'] = 'plenty'
        response = self.post('/api/schedule/complete/', {
            'task_id': 'A',
            'date': '2025-11-05',
            'sessions': sessions
        })

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error_code'], 'ERR_INVALID_SESSION')

    def test_calendar_endpoint(self):
        response = self.post('/api/schedule/calendar/', {
            'tasks': self.tasks,
            'today': MONDAY.isoformat(),
            'day_start': '07:30'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first = response.data['events'][0]
        self.assertEqual(first['start'], '2025-11-03T07:30:00')
        self.assertEqual(first['end'], '2025-11-03T08:30:00')
        self.assertEqual(len(response.data['skipped_tasks']), 1)

    @override_settings(SCHEDULING_POLICY={'max_daily_minutes': 240})
    def test_policy_endpoint(self):
        response = self.client.get('/api/schedule/policy/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        policy = response.data['policy']
        self.assertEqual(policy['max_daily_minutes'], 240)
        self.assertEqual(policy['time_increment'], 15)
        self.assertEqual(policy['daily_energy_levels']['sunday'], 0.6)

    def test_api_info_endpoint(self):
        """GET /api/ should return API information."""
        response = self.client.get('/api/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('name', response.data)
        self.assertIn('endpoints', response.data)
        self.assertIn('ERR_INVALID_HOURS', response.data['error_codes'])
