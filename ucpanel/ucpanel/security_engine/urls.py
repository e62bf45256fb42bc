"""
URL configuration for the proxy security API
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'rule-chains', views.RuleChainViewSet, basename='rule-chain')
router.register(r'jails', views.JailViewSet, basename='jail')
router.register(r'events', views.SecurityEventViewSet, basename='event')

app_name = 'security_engine'

urlpatterns = [
    path('settings/', views.ProxySecuritySettingsView.as_view(), name='settings'),
    path('', include(router.urls)),
]
