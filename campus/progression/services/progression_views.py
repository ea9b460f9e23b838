"""
Student-facing progression API views
Unit listing, quiz availability/start/submit, video watches and violation reports
"""
import functools
import logging

from django.apps import apps
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from ..exceptions import AccessControlError
from ..serializers import (
    StudentRequestSerializer, StudentCourseQuerySerializer, AttemptSubmitSerializer,
    VideoWatchSerializer, ViolationSerializer, QuizAttemptSerializer,
)

logger = logging.getLogger(__name__)


def get_engine():
    return apps.get_app_config('progression').engine


def engine_errors(view):
    """Render engine errors as structured payloads; anything else is a 500."""
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except AccessControlError as e:
            if e.status_code >= 500:
                logger.error(f"{view.__name__}: {e.message}")
            return Response(e.as_payload(), status=e.status_code)
        except Exception as e:
            logger.error(f"Error in {view.__name__}: {str(e)}")
            return Response({
                'success': False,
                'error': 'internal_error',
                'message': str(e),
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return wrapper


def invalid(serializer):
    return Response({
        'success': False,
        'error': 'invalid_request',
        'details': serializer.errors,
    }, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def course_units(request):
    """
    GET /api/progression/units/?student_id=<uuid>&course_id=<uuid>

    Ordered units with unlock state, completion percent and deadline warning
    """
    params = StudentCourseQuerySerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    engine = get_engine()
    views = engine.resolver.resolve_units(params.validated_data['student_id'], params.validated_data['course_id'])
    reminders = engine.progress.approaching_deadlines(params.validated_data['student_id'], params.validated_data['course_id'])
    return Response({
        'success': True,
        'units': [view.as_dict() for view in views],
        'approaching_deadlines': reminders,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def quiz_availability(request, unit_id):
    """
    GET /api/progression/unit/<unit_id>/quiz/availability/?student_id=<uuid>
    """
    params = StudentRequestSerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    availability = get_engine().ledger.availability(params.validated_data['student_id'], unit_id)
    return Response({'success': True, **availability.as_dict()}, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def quiz_start(request, unit_id):
    """
    POST /api/progression/unit/<unit_id>/quiz/start/
    Body: { student_id }

    Returns the question set for the student's next attempt (no answers)
    """
    body = StudentRequestSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    engine = get_engine()
    draw = engine.ledger.start_attempt(body.validated_data['student_id'], unit_id)
    return Response({
        'success': True,
        'draw_id': str(draw.id),
        'attempt_number': draw.attempt_number,
        'questions': [ref.as_dict() for ref in engine.selector.question_refs(draw)],
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def quiz_attempt(request, unit_id):
    """
    POST /api/progression/unit/<unit_id>/quiz/attempt/
    Body: { student_id, answers: { question_id: option_index } }

    Score and pass state, or a structured denial the UI shows verbatim
    """
    body = AttemptSubmitSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    engine = get_engine()
    student_id = body.validated_data['student_id']
    attempt = engine.ledger.record_attempt(student_id, unit_id, body.validated_data['answers'])
    availability = engine.ledger.availability(student_id, unit_id)
    return Response({
        'success': True,
        'attempt': QuizAttemptSerializer(attempt).data,
        'availability': availability.as_dict(),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def video_watched(request, unit_id, video_id):
    """
    POST /api/progression/unit/<unit_id>/videos/<video_id>/watched/
    Body: { student_id, time_spent, completed }
    """
    body = VideoWatchSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    result = get_engine().progress.record_video_watch(
        body.validated_data['student_id'],
        unit_id,
        video_id,
        time_spent=body.validated_data['time_spent'],
        completed=body.validated_data['completed'],
    )
    return Response({'success': True, **result}, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def report_violation(request, unit_id):
    """
    POST /api/progression/unit/<unit_id>/violations/
    Body: { student_id, violation_type, details }
    """
    body = ViolationSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    result = get_engine().security_locks.record_violation(
        body.validated_data['student_id'],
        unit_id,
        body.validated_data['violation_type'],
        body.validated_data['details'],
    )
    return Response({'success': True, **result.as_dict()}, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def pool_analytics(request, pool_id):
    """
    GET /api/progression/pool/<pool_id>/analytics/
    """
    analytics = get_engine().selector.pool_analytics(pool_id)
    return Response({'success': True, **analytics}, status=status.HTTP_200_OK)
