"""
URL configuration for ucpanel.
"""

from django.contrib import admin
from django.urls import path, include
from ucpanel.security_core.health import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),
    path('api/security/', include('ucpanel.security_engine.urls', namespace='security_engine')),
]
