"""
Django admin configuration for progression state.
Attempts and unlock entries are read-only: both are write-once records.
"""
from django.contrib import admin
from progression.models import (
    StudentProgress, UnitProgress, AttemptCounter, QuizAttempt,
    QuizLock, SecurityLock, SecurityViolation, UnlockEntry, UnlockRequest,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(QuizAttempt)
class QuizAttemptAdmin(ReadOnlyAdmin):
    list_display = ('student', 'unit', 'attempt_number', 'score', 'max_score', 'percentage', 'passed', 'submitted_at')
    list_filter = ('passed', 'course')


@admin.register(UnlockEntry)
class UnlockEntryAdmin(ReadOnlyAdmin):
    list_display = ('lock_kind', 'lock_id', 'sequence', 'student', 'actor', 'actor_role', 'was_locked', 'created_at')
    list_filter = ('lock_kind', 'actor_role')


@admin.register(QuizLock)
class QuizLockAdmin(ReadOnlyAdmin):
    list_display = ('student', 'unit', 'is_locked', 'reason', 'locked_at', 'granted_attempts',
                    'teacher_unlock_count', 'hod_unlock_count', 'dean_unlock_count', 'admin_unlock_count')
    list_filter = ('is_locked', 'course')


@admin.register(SecurityLock)
class SecurityLockAdmin(ReadOnlyAdmin):
    list_display = ('student', 'course', 'unit', 'is_locked', 'violation_count', 'reason', 'locked_at')
    list_filter = ('is_locked', 'course')


@admin.register(UnlockRequest)
class UnlockRequestAdmin(ReadOnlyAdmin):
    list_display = ('student', 'unit', 'requested_by', 'required_tier', 'status', 'reviewed_by', 'reviewed_at')
    list_filter = ('status', 'required_tier')


# Progress
admin.site.register(StudentProgress)
admin.site.register(UnitProgress)
admin.site.register(AttemptCounter)
admin.site.register(SecurityViolation)
