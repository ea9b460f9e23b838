"""
Progression app URL configuration - mounted under /api/progression/
"""
from django.urls import path

from .services.progression_views import (
    course_units, quiz_availability, quiz_start, quiz_attempt,
    video_watched, report_violation, pool_analytics,
)
from .services.unlock_views import (
    unlock_lock, locked_students, unlock_history,
    create_unlock_request, review_unlock_request, cancel_unlock_request,
    pending_unlock_requests, filed_unlock_requests,
)

urlpatterns = [
    # Student progression
    path('units/', course_units, name='progression-units'),
    path('unit/<uuid:unit_id>/quiz/availability/', quiz_availability, name='progression-quiz-availability'),
    path('unit/<uuid:unit_id>/quiz/start/', quiz_start, name='progression-quiz-start'),
    path('unit/<uuid:unit_id>/quiz/attempt/', quiz_attempt, name='progression-quiz-attempt'),
    path('unit/<uuid:unit_id>/videos/<uuid:video_id>/watched/', video_watched, name='progression-video-watched'),
    path('unit/<uuid:unit_id>/violations/', report_violation, name='progression-violations'),
    path('pool/<uuid:pool_id>/analytics/', pool_analytics, name='progression-pool-analytics'),
    # Unlocks
    path('unlock/locked-students/', locked_students, name='progression-locked-students'),
    path('unlock/history/', unlock_history, name='progression-unlock-history'),
    path('unlock/<uuid:lock_id>/', unlock_lock, name='progression-unlock'),
    path('unlock-request/', create_unlock_request, name='progression-unlock-request'),
    path('unlock-request/pending/', pending_unlock_requests, name='progression-unlock-requests-pending'),
    path('unlock-request/mine/', filed_unlock_requests, name='progression-unlock-requests-filed'),
    path('unlock-request/<uuid:request_id>/review/', review_unlock_request, name='progression-unlock-request-review'),
    path('unlock-request/<uuid:request_id>/cancel/', cancel_unlock_request, name='progression-unlock-request-cancel'),
]
