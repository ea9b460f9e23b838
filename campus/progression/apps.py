from django.apps import AppConfig


class ProgressionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'progression'
    verbose_name = 'Course Progression and Access Control'

    def ready(self):
        from .services.engine import AccessEngine
        self.engine = AccessEngine()
