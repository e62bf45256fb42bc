"""
Health check view for container monitoring, with a short summary of the
proxy security state.
"""
from django.http import JsonResponse
from django.db import connection
from django.core.cache import cache
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.rule_cache_manager import RuleChainCacheManager


def _security_summary():
    settings_obj = RuleChainCacheManager.get_settings()
    return {
        "proxy_jail_enabled": settings_obj.proxy_jail_enabled,
        "active_rule_chains": len(RuleChainCacheManager.get_active_chains()),
        "active_jails": JailManager.list_jails().count(),
    }


def health_check(request):
    """
    Returns 200 when the database answers, 503 otherwise. The cache is
    reported but does not make the service unhealthy.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {e}"
        health_status["status"] = "unhealthy"

    try:
        cache.set("health_check", "ok", 10)
        health_status["cache"] = "connected" if cache.get("health_check") == "ok" else "error"
    except Exception as e:
        health_status["cache"] = f"error: {e}"

    if health_status["status"] == "healthy":
        health_status["security"] = _security_summary()

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)
