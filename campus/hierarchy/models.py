from django.db import models
import uuid

from .roles import Role


# Department groups courses and the staff responsible for them
class Department(models.Model):
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='department_id')
	name = models.CharField(max_length=255, unique=True, db_column='department_name')
	code = models.CharField(max_length=20, blank=True, db_column='code')
	created_at = models.DateTimeField(auto_now_add=True, db_column='created_at')

	class Meta:
		db_table = 'departments'
		managed = True

	def __str__(self):
		return self.name


# User Profile model - one role per user
class UserProfile(models.Model):
	STATUS_CHOICES = [
		('active', 'Active'),
		('inactive', 'Inactive'),
	]

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='user_id')
	first_name = models.CharField(max_length=100, db_column='first_name')
	last_name = models.CharField(max_length=100, db_column='last_name')
	email = models.EmailField(unique=True, db_column='email')
	role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT, db_column='primary_role')
	department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True, related_name='members', db_column='department_id')
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_column='status')
	created_at = models.DateTimeField(auto_now_add=True, db_column='created_at')
	updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')
	sections = models.ManyToManyField('Section', blank=True, related_name='members', through='SectionMember')

	class Meta:
		db_table = 'users'
		managed = True

	@property
	def full_name(self):
		return f"{self.first_name} {self.last_name}".strip()

	def __str__(self):
		return f"{self.full_name} ({self.role})"


# Section: a teaching group inside a department
class Section(models.Model):
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='section_id')
	name = models.CharField(max_length=255, db_column='section_name')
	department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name='sections', db_column='department_id')
	courses = models.ManyToManyField('courses.Course', blank=True, related_name='sections', through='SectionCourse')
	created_at = models.DateTimeField(auto_now_add=True, db_column='created_at')

	class Meta:
		db_table = 'sections'
		managed = True
		unique_together = ('department', 'name')

	def __str__(self):
		return f"{self.department.name} / {self.name}"


class SectionMember(models.Model):
	"""Explicit through table for Section membership"""
	MEMBER_ROLE_CHOICES = [
		('teacher', 'Teacher'),
		('student', 'Student'),
	]

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='membership_id')
	user = models.ForeignKey(UserProfile, on_delete=models.CASCADE, related_name='section_memberships', db_column='user_id')
	section = models.ForeignKey(Section, on_delete=models.CASCADE, related_name='memberships', db_column='section_id')
	member_role = models.CharField(max_length=20, choices=MEMBER_ROLE_CHOICES, db_column='member_role')
	assigned_at = models.DateTimeField(auto_now_add=True, db_column='assigned_at')

	class Meta:
		db_table = 'section_members'
		managed = True
		unique_together = ('section', 'user')

	def __str__(self):
		return f"{self.user.email} in {self.section.name} as {self.member_role}"


class SectionCourse(models.Model):
	"""Course offered to a section."""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='assignment_id')
	section = models.ForeignKey(Section, on_delete=models.CASCADE, related_name='course_assignments', db_column='section_id')
	course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='section_assignments', db_column='course_id')
	assigned_at = models.DateTimeField(auto_now_add=True, db_column='assigned_at')

	class Meta:
		db_table = 'section_courses'
		managed = True
		unique_together = ('course', 'section')

	def __str__(self):
		return f"Course {self.course_id} -> Section {self.section.name}"
