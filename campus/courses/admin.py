"""
Django admin configuration for course structure.
"""
from django.contrib import admin
from courses.models import Course, Unit, Video, Quiz, Question, QuizPool


class UnitInline(admin.TabularInline):
    model = Unit
    extra = 0
    fields = ('unit_number', 'title', 'has_deadline', 'deadline', 'strict_deadline', 'warning_days')


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 0


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('title', 'department', 'completion_rule', 'attempt_limit', 'pass_threshold', 'status')
    list_filter = ('department', 'completion_rule', 'status')
    search_fields = ('title', 'code')
    inlines = [UnitInline]


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ('title', 'course', 'unit_number', 'has_deadline', 'deadline', 'strict_deadline')
    list_filter = ('course', 'has_deadline', 'strict_deadline')


@admin.register(Quiz)
class QuizAdmin(admin.ModelAdmin):
    list_display = ('title', 'unit', 'created_by', 'is_active')
    inlines = [QuestionInline]


admin.site.register(Video)
admin.site.register(QuizPool)
