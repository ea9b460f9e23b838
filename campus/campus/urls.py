"""
URL configuration for campus project.

The access engine's endpoints live under /api/progression/.
"""
from django.contrib import admin
from django.urls import path, include

from .health_check import health_check, readiness_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/progression/', include('progression.urls')),
    path('health/', health_check, name='health-check'),
    path('health/ready/', readiness_check, name='readiness-check'),
]
