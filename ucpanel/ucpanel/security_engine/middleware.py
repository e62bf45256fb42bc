# security_engine/middleware.py

import logging
from django.conf import settings
from django.http import HttpResponseForbidden
from ucpanel.security_guard.ip_utils import parse_ip
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.rule_cache_manager import RuleChainCacheManager
from .enforcement import ActionEnforcer
from .rule_evaluation import RequestInfo, RuleEvaluator

logger = logging.getLogger('security_engine')

DEFAULT_EXEMPT_PATHS = ('/admin/', '/static/', '/health/', '/api/security/')


class ProxySecurityMiddleware:
    """
    Evaluates rule chains against every proxied request.

    Jailed IPs are refused before the view runs. Chains that do not look at
    the response status are checked before the view too, so an NGINX_BLOCK
    or NGINX_DENY match stops the request there. Otherwise every chain is
    evaluated once the response exists, so STATUS_CODE conditions can see it.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.exempt_paths = tuple(getattr(settings, 'UCPANEL_SECURITY_EXEMPT_PATHS', DEFAULT_EXEMPT_PATHS))

    def __call__(self, request):
        # Skip admin, static files and health checks
        if request.path.startswith(self.exempt_paths):
            return self.get_response(request)

        client_ip = self._get_client_ip(request)

        if JailManager.is_ip_jailed(client_ip):
            logger.info(f"Refused jailed IP {client_ip}: {request.method} {request.path}")
            return HttpResponseForbidden("<h1>403 Forbidden</h1><p>Your IP has been temporarily jailed.</p>")

        # Snapshot taken before the view so a mid-request rule edit is not seen
        chains = RuleChainCacheManager.get_active_chains()

        response = self._enforce_before_view(request, client_ip, chains)
        if response is None:
            response = self.get_response(request)

            request_info = self._build_request_info(request, client_ip, response.status_code)
            matches = RuleEvaluator.evaluate_active_rules(request_info, chains=chains)
            if matches:
                result = ActionEnforcer.apply(matches, request_info)
                if result.is_blocked:
                    response = result.response

        JailManager.record_error_response(client_ip, response.status_code)
        return response

    def _enforce_before_view(self, request, client_ip, chains):
        """
        Block or deny without calling the view.

        Returns the enforced response, or None when the request may proceed.
        """
        early_chains = [chain for chain in chains if not RuleEvaluator.needs_response(chain)]
        if not early_chains:
            return None

        request_info = self._build_request_info(request, client_ip, 0)
        matches = RuleEvaluator.evaluate_active_rules(request_info, chains=early_chains)
        chain, action = ActionEnforcer.first_response_action(matches)
        if chain is None:
            return None

        # The view never runs: events record the status that was sent
        request_info = self._build_request_info(request, client_ip, action.nginx_response_code)
        result = ActionEnforcer.apply(matches, request_info)
        logger.info(f"Stopped {request.method} {request.path} from {client_ip} before the view")
        return result.response

    def _get_client_ip(self, request):
        """First X-Forwarded-For entry when it is an IP address, else REMOTE_ADDR"""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
            if parse_ip(ip) is not None:
                return ip
            logger.warning(f"Ignoring malformed X-Forwarded-For entry: {ip[:100]!r}")

        ip = request.META.get('REMOTE_ADDR', '').strip()
        if parse_ip(ip) is None:
            return '0.0.0.0'
        return ip

    def _build_request_info(self, request, client_ip, status_code):
        try:
            domain = request.get_host().split(':')[0] or None
        except Exception as e:
            # DisallowedHost
            logger.debug(f"Could not read host for {request.path}: {e}")
            domain = None

        return RequestInfo(
            ip=client_ip,
            method=request.method or 'UNKNOWN',
            path=request.path,
            status=status_code,
            user_agent=request.META.get('HTTP_USER_AGENT') or None,
            referer=request.META.get('HTTP_REFERER') or None,
            domain=domain,
        )
