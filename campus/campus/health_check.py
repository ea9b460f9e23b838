"""
Health check endpoints for the progression service.

- /health/        database connectivity
- /health/ready/  database plus the access engine tables and wiring
"""
import logging

from django.apps import apps
from django.db import connection, DatabaseError
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)

ENGINE_APPS = ('hierarchy', 'courses', 'progression')


class HealthCheckService:
    """Checks the pieces the access engine needs to answer requests."""

    @staticmethod
    def check_database():
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            return {'status': 'healthy', 'database': connection.vendor}
        except DatabaseError as e:
            logger.error(f"Database health check failed: {e}")
            return {'status': 'unhealthy', 'database': connection.vendor, 'error': str(e)}

    @staticmethod
    def check_tables():
        """Compare the engine's model tables against what the database holds."""
        required = {
            model._meta.db_table
            for label in ENGINE_APPS
            for model in apps.get_app_config(label).get_models()
        }
        try:
            existing = set(connection.introspection.table_names())
        except DatabaseError as e:
            logger.error(f"Table health check failed: {e}")
            return {'status': 'unhealthy', 'error': str(e)}

        missing = sorted(required - existing)
        return {
            'status': 'healthy' if not missing else 'degraded',
            'total_required': len(required),
            'missing': missing,
        }

    @staticmethod
    def check_engine():
        engine = getattr(apps.get_app_config('progression'), 'engine', None)
        if engine is None:
            return {'status': 'unhealthy', 'error': 'access engine not initialised'}
        return {'status': 'healthy', 'components': engine.describe()}


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """GET /health/"""
    health = HealthCheckService.check_database()
    code = status.HTTP_200_OK if health['status'] == 'healthy' else status.HTTP_503_SERVICE_UNAVAILABLE
    return Response(health, status=code)


@api_view(['GET'])
@permission_classes([AllowAny])
def readiness_check(request):
    """GET /health/ready/ - 200 only when every check is healthy."""
    checks = {
        'database': HealthCheckService.check_database(),
        'tables': HealthCheckService.check_tables(),
        'engine': HealthCheckService.check_engine(),
    }
    ready = all(check['status'] == 'healthy' for check in checks.values())
    return Response(
        {'ready': ready, 'timestamp': timezone.now().isoformat(), 'checks': checks},
        status=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
