"""
Staff-facing unlock API views
Direct unlocks, unlock requests with review and cancellation, staff queues, audit history
"""
import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from ..serializers import (
    UnlockSerializer, UnlockRequestCreateSerializer, ReviewSerializer,
    ActorQuerySerializer, FiledRequestQuerySerializer, StudentUnitQuerySerializer, UnlockRequestSerializer,
)
from .progression_views import get_engine, engine_errors, invalid

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def unlock_lock(request, lock_id):
    """
    POST /api/progression/unlock/<lock_id>/
    Body: { actor_id, reason, note }

    Clears the quiz lock and the security lock of the student/unit together
    """
    body = UnlockSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    result = get_engine().unlocks.unlock(
        body.validated_data['actor_id'],
        lock_id,
        reason=body.validated_data['reason'],
        note=body.validated_data['note'],
    )
    return Response({'success': True, **result.as_dict()}, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def locked_students(request):
    """
    GET /api/progression/unlock/locked-students/?actor_id=<uuid>
    """
    params = ActorQuerySerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    queue = get_engine().unlocks.locked_students(params.validated_data['actor_id'])
    return Response({'success': True, 'count': len(queue), 'locked': queue}, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def unlock_history(request):
    """
    GET /api/progression/unlock/history/?student_id=<uuid>&unit_id=<uuid>
    """
    params = StudentUnitQuerySerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    history = get_engine().unlocks.unlock_history(params.validated_data['student_id'], params.validated_data['unit_id'])
    return Response({'success': True, 'history': history}, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def create_unlock_request(request):
    """
    POST /api/progression/unlock-request/
    Body: { actor_id, student_id, unit_id, reason, note }
    """
    body = UnlockRequestCreateSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    data = body.validated_data
    unlock_request = get_engine().unlocks.request_unlock(
        data['actor_id'], data['student_id'], data['unit_id'], reason=data['reason'], note=data['note'],
    )
    return Response({
        'success': True,
        'request': UnlockRequestSerializer(unlock_request).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def review_unlock_request(request, request_id):
    """
    POST /api/progression/unlock-request/<request_id>/review/
    Body: { actor_id, action: approve|reject, note }
    """
    body = ReviewSerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    unlock_request, result = get_engine().unlocks.review_request(
        request_id,
        body.validated_data['actor_id'],
        body.validated_data['action'],
        note=body.validated_data['note'],
    )
    return Response({
        'success': True,
        'request': UnlockRequestSerializer(unlock_request).data,
        'unlock': result.as_dict() if result else None,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([AllowAny])
@engine_errors
def cancel_unlock_request(request, request_id):
    """
    POST /api/progression/unlock-request/<request_id>/cancel/
    Body: { actor_id }
    """
    body = ActorQuerySerializer(data=request.data)
    if not body.is_valid():
        return invalid(body)

    unlock_request = get_engine().unlocks.cancel_request(request_id, body.validated_data['actor_id'])
    return Response({
        'success': True,
        'request': UnlockRequestSerializer(unlock_request).data,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def pending_unlock_requests(request):
    """
    GET /api/progression/unlock-request/pending/?actor_id=<uuid>
    Review queue for HOD, dean and admin
    """
    params = ActorQuerySerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    queue = get_engine().unlocks.pending_requests(params.validated_data['actor_id'])
    return Response({'success': True, 'count': len(queue), 'requests': queue}, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
@engine_errors
def filed_unlock_requests(request):
    """
    GET /api/progression/unlock-request/mine/?actor_id=<uuid>&status=<pending|approved|rejected|cancelled>
    """
    params = FiledRequestQuerySerializer(data=request.GET)
    if not params.is_valid():
        return invalid(params)

    requests = get_engine().unlocks.requests_filed_by(
        params.validated_data['actor_id'], status=params.validated_data.get('status'),
    )
    return Response({'success': True, 'count': len(requests), 'requests': requests}, status=status.HTTP_200_OK)
