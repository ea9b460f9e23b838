from django.contrib import admin
from .models import Department, UserProfile, Section, SectionMember, SectionCourse


class SectionMemberInline(admin.TabularInline):
	model = SectionMember
	extra = 0


class SectionCourseInline(admin.TabularInline):
	model = SectionCourse
	extra = 0


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
	list_display = ('id', 'name', 'code', 'created_at')
	search_fields = ('name', 'code')


@admin.register(Section)
class SectionAdmin(admin.ModelAdmin):
	list_display = ('id', 'name', 'department', 'created_at')
	list_filter = ('department',)
	inlines = [SectionMemberInline, SectionCourseInline]


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
	list_display = ('id', 'email', 'first_name', 'last_name', 'role', 'department', 'status')
	list_filter = ('role', 'status', 'department')
	search_fields = ('email', 'first_name', 'last_name')
