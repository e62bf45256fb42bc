# security_engine/rule_evaluation.py
"""
Rule chain evaluation.

Conditions are pure predicates over a RequestInfo. A chain combines its
conditions with AND / OR; enabled chains are evaluated in ascending order and
every matching chain is reported.
"""
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from ucpanel.security_core.models import (
    CONDITION_IP,
    CONDITION_USER_AGENT,
    CONDITION_METHOD,
    CONDITION_PATH,
    CONDITION_STATUS_CODE,
    CONDITION_REFERER,
    CONDITION_DOMAIN,
    OPERATOR_AND,
    OPERATOR_OR,
)
from ucpanel.security_guard.ip_utils import ip_in_cidr
from ucpanel.security_guard.rule_cache_manager import RuleChainCacheManager

logger = logging.getLogger('security_engine')


@dataclass(frozen=True)
class RequestInfo:
    """The request attributes rule conditions can match against"""
    ip: str
    method: str
    path: str
    status: int = 0
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    domain: Optional[str] = None


@dataclass
class RuleMatch:
    """A chain that matched, with the conditions that evaluated true"""
    chain: object
    matched_conditions: List[object] = field(default_factory=list)


@lru_cache(maxsize=1024)
def _compile(pattern, flags=0):
    return re.compile(pattern, flags)


def _search(pattern, value, flags=0):
    if value is None:
        return False
    return _compile(pattern, flags).search(value) is not None


def _chain_conditions(chain):
    conditions = chain.conditions
    # Related manager on model instances, plain sequence otherwise
    if hasattr(conditions, 'all'):
        return list(conditions.all())
    return list(conditions)


class RuleEvaluator:
    """
    Evaluates rule chains against request attributes.
    """

    @classmethod
    def evaluate_condition(cls, condition, request_info):
        """
        Evaluate one condition, applying `negate` to the result.

        A pattern that fails to compile (or a malformed CIDR) is logged and
        counts as no match.
        """
        pattern = condition.pattern
        try:
            if condition.type == CONDITION_IP:
                if '/' in pattern:
                    match = ip_in_cidr(request_info.ip, pattern)
                else:
                    match = _search(pattern, request_info.ip)
            elif condition.type == CONDITION_USER_AGENT:
                match = _search(pattern, request_info.user_agent)
            elif condition.type == CONDITION_METHOD:
                match = _search(pattern, request_info.method, re.IGNORECASE)
            elif condition.type == CONDITION_PATH:
                match = _search(pattern, request_info.path)
            elif condition.type == CONDITION_STATUS_CODE:
                match = _search(pattern, str(request_info.status))
            elif condition.type == CONDITION_REFERER:
                match = _search(pattern, request_info.referer)
            elif condition.type == CONDITION_DOMAIN:
                match = _search(pattern, request_info.domain)
            else:
                logger.warning(f"Unknown condition type '{condition.type}' on condition {condition.id}")
                match = False
        except re.error as e:
            logger.warning(f"Error evaluating condition {condition.id}: {e}")
            match = False

        return not match if condition.negate else match

    @classmethod
    def evaluate_chain(cls, chain, request_info):
        """
        Combine the chain's conditions with its operator.

        Every condition is evaluated, left to right, before combining. A
        chain without conditions never matches.
        """
        conditions = _chain_conditions(chain)
        if not conditions:
            return False

        results = [cls.evaluate_condition(c, request_info) for c in conditions]

        if chain.operator == OPERATOR_AND:
            return all(results)
        if chain.operator == OPERATOR_OR:
            return any(results)

        logger.warning(f"Unknown operator '{chain.operator}' on chain {chain.id}")
        return False

    @classmethod
    def needs_response(cls, chain):
        """True when the chain has a STATUS_CODE condition"""
        return any(c.type == CONDITION_STATUS_CODE for c in _chain_conditions(chain))

    @classmethod
    def evaluate_rules(cls, chains, request_info):
        """
        Evaluate enabled chains in ascending `order` and collect every match.

        Args:
            chains: Iterable of rule chains (a snapshot, not re-read mid-request)
            request_info: RequestInfo for the request

        Returns:
            list of RuleMatch in evaluation order
        """
        active = [chain for chain in chains if chain.enabled]
        # sorted() is stable: equal orders keep the snapshot's order
        active = sorted(active, key=lambda chain: chain.order)

        matches = []
        for chain in active:
            if cls.evaluate_chain(chain, request_info):
                matched = [
                    condition for condition in _chain_conditions(chain)
                    if cls.evaluate_condition(condition, request_info)
                ]
                matches.append(RuleMatch(chain=chain, matched_conditions=matched))
                logger.debug(f"Rule chain '{chain.name}' matched {request_info.method} {request_info.path}")

        return matches

    @classmethod
    def evaluate_active_rules(cls, request_info, chains=None):
        """
        Evaluate the cached rule chain snapshot, honouring the global switch.

        Returns an empty list when proxy_jail_enabled is off.
        """
        settings_obj = RuleChainCacheManager.get_settings()
        if not settings_obj.proxy_jail_enabled:
            return []

        if chains is None:
            chains = RuleChainCacheManager.get_active_chains()
        return cls.evaluate_rules(chains, request_info)
