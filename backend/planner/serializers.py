"""
Serializers for the scheduling API.

These validate request envelopes only. Individual task records are passed
through untouched, because the scheduler's own validator decides which of
them are usable and reports the rest as skipped rather than failing the
whole request.
"""

from rest_framework import serializers

from .validation import parse_due_date


class FlexibleDateTimeField(serializers.Field):
    """
    Accepts an ISO-8601 date or datetime and returns a naive datetime.

    Date-only values mean midnight; aware values are converted to UTC.
    """

    default_error_messages = {
        'invalid': 'Enter a valid ISO-8601 date or datetime.'
    }

    def to_internal_value(self, data):
        value = parse_due_date(data)
        if value is None:
            self.fail('invalid')
        return value

    def to_representation(self, value):
        return value.isoformat()


class ScheduleRequestSerializer(serializers.Serializer):
    """Serializer for schedule requests."""

    # Records are checked one by one so a bad entry is skipped, not fatal
    tasks = serializers.ListField(
        child=serializers.JSONField(allow_null=True),
        allow_empty=True
    )
    today = FlexibleDateTimeField(required=False, allow_null=True)


class CalendarRequestSerializer(ScheduleRequestSerializer):
    day_start = serializers.TimeField(required=False)


class SessionSerializer(serializers.Serializer):
    """A previously scheduled work session sent back by the client."""

    task_id = serializers.CharField()
    date = serializers.DateField()
    duration = serializers.IntegerField(min_value=1)
    completed = serializers.BooleanField(default=False)
    task = serializers.DictField()


class SessionsOnDateRequestSerializer(serializers.Serializer):
    sessions = serializers.ListField(child=SessionSerializer(), allow_empty=True)
    date = serializers.DateField()


class MarkCompletedRequestSerializer(serializers.Serializer):
    task_id = serializers.CharField()
    date = serializers.DateField()
    sessions = serializers.ListField(
        child=SessionSerializer(),
        min_length=1,
        error_messages={
            'min_length': 'At least one session is required'
        }
    )
    today = FlexibleDateTimeField(required=False, allow_null=True)
