"""
Request and response serializers for the progression API
"""
from rest_framework import serializers

from .models import QuizAttempt, UnlockRequest, SecurityViolation
from .services.unlocks import APPROVE, REJECT


class StudentRequestSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()


class StudentCourseQuerySerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    course_id = serializers.UUIDField()


class StudentUnitQuerySerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    unit_id = serializers.UUIDField()


class ActorQuerySerializer(serializers.Serializer):
    actor_id = serializers.UUIDField()


class FiledRequestQuerySerializer(ActorQuerySerializer):
    status = serializers.ChoiceField(choices=UnlockRequest.STATUS_CHOICES, required=False)


class AttemptSubmitSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    answers = serializers.DictField(child=serializers.IntegerField(allow_null=True), allow_empty=True)


class VideoWatchSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    time_spent = serializers.IntegerField(min_value=0, required=False, default=0)
    completed = serializers.BooleanField(required=False, default=False)


class ViolationSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    violation_type = serializers.ChoiceField(choices=[code for code, _ in SecurityViolation.VIOLATION_TYPES])
    details = serializers.DictField(required=False, default=dict)


class UnlockSerializer(serializers.Serializer):
    actor_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class UnlockRequestCreateSerializer(UnlockSerializer):
    student_id = serializers.UUIDField()
    unit_id = serializers.UUIDField()


class ReviewSerializer(serializers.Serializer):
    actor_id = serializers.UUIDField()
    action = serializers.ChoiceField(choices=[APPROVE, REJECT])
    note = serializers.CharField(required=False, allow_blank=True, default='')


class QuizAttemptSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuizAttempt
        fields = [
            'id', 'student', 'course', 'unit', 'quiz_pool', 'quiz', 'attempt_number',
            'answers', 'score', 'max_score', 'percentage', 'passed',
            'submitted_after_deadline', 'submitted_at',
        ]
        read_only_fields = fields


class UnlockRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = UnlockRequest
        fields = [
            'id', 'student', 'course', 'unit', 'requested_by', 'required_tier',
            'reason', 'request_note', 'status', 'reviewed_by', 'reviewed_at',
            'note', 'cancelled_at', 'created_at',
        ]
        read_only_fields = fields
