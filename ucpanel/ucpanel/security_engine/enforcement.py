# security_engine/enforcement.py
"""
Applies the actions of matched rule chains.
"""
import logging

from django.http import HttpResponse

from ucpanel.security_core.actions import JailAction, LogOnlyAction, NginxBlockAction, NginxDenyAction
from ucpanel.security_core.models import SecurityEvent
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.rule_cache_manager import RuleChainCacheManager

logger = logging.getLogger('security_engine')


class EnforcementResult:
    """Outcome of applying a list of rule matches"""

    def __init__(self):
        self.response = None
        self.deciding_chain = None
        self.jailed_ips = []
        self.events = []

    @property
    def is_blocked(self):
        return self.response is not None


class ActionEnforcer:
    """
    Turns rule matches into side effects.

    Every match is logged as a SecurityEvent. JAIL matches jail the source IP.
    The first NGINX_BLOCK / NGINX_DENY match (lowest order) decides the
    replacement response; later ones are only logged.
    """

    @classmethod
    def apply(cls, matches, request_info):
        result = EnforcementResult()

        for match in matches:
            chain = match.chain
            action = cls.resolve_action(chain)

            event = cls._log_event(match, request_info)
            if event is not None:
                result.events.append(event)

            if isinstance(action, JailAction):
                default_minutes = RuleChainCacheManager.get_settings().jail_duration_minutes
                duration = action.resolve_duration(default_minutes)
                jailed = JailManager.auto_jail(
                    request_info.ip,
                    duration,
                    f"Rule chain: {chain.name}",
                    source='rule_chain',
                )
                if jailed is not None:
                    result.jailed_ips.append(jailed.ip_address)

            elif action.alters_response and result.response is None:
                result.response = cls.build_response(action)
                result.deciding_chain = chain
                logger.info(
                    f"Rule chain '{chain.name}' {action.name} {request_info.method} "
                    f"{request_info.path} from {request_info.ip}"
                )

        return result

    @classmethod
    def resolve_action(cls, chain):
        """
        Typed action for a chain. A stored config that no longer builds is
        logged and the chain falls back to LOG_ONLY.
        """
        try:
            return chain.get_action()
        except ValueError as e:
            logger.error(f"Rule chain '{chain.name}' has an invalid action config, treating as LOG_ONLY: {e}")
            return LogOnlyAction()

    @classmethod
    def first_response_action(cls, matches):
        """The (chain, action) pair that decides the response, or (None, None)"""
        for match in matches:
            action = cls.resolve_action(match.chain)
            if action.alters_response:
                return match.chain, action
        return None, None

    @classmethod
    def build_response(cls, action):
        """HTTP response for a response-altering action"""
        if isinstance(action, NginxBlockAction):
            return HttpResponse(
                action.nginx_response_message,
                status=action.nginx_response_code,
                content_type='text/plain; charset=utf-8',
            )
        if isinstance(action, NginxDenyAction):
            # Empty body; nginx closes the connection on 444
            return HttpResponse(status=action.nginx_response_code)
        raise ValueError(f"{action.name} does not produce a response")

    @classmethod
    def _log_event(cls, match, request_info):
        chain = match.chain
        try:
            return SecurityEvent.objects.create(
                chain_id=chain.id,
                chain_name=chain.name,
                action_taken=chain.action,
                matched_conditions=[str(c.id) for c in match.matched_conditions],
                source_ip=request_info.ip,
                user_agent=request_info.user_agent or '',
                request_method=request_info.method,
                request_path=request_info.path[:2000],
                status_code=request_info.status,
                referer=request_info.referer or '',
                domain=request_info.domain or '',
            )
        except Exception as e:
            logger.error(f"Failed to log security event for chain '{chain.name}': {e}")
            return None
