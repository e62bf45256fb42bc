"""
Caching for rule chains and proxy security settings.
Requests read a cached snapshot; model changes invalidate it.
"""
import logging
from django.conf import settings
from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from ucpanel.security_core.models import (
    RuleChain,
    RuleCondition,
    ProxySecuritySettings,
)

logger = logging.getLogger('security_guard')


class RuleChainCacheManager:
    """
    Caches the enabled rule chains (conditions prefetched) and the settings
    singleton. Invalidated automatically when the models are saved or deleted.
    """

    # Cache keys
    CHAINS_KEY = 'rule_chains:active'
    SETTINGS_KEY = 'proxy_security:settings'

    @classmethod
    def cache_ttl(cls):
        return getattr(settings, 'UCPANEL_RULE_CACHE_TTL', 300)

    @classmethod
    def get_active_chains(cls):
        """
        Get enabled rule chains in evaluation order (cached).

        Returns:
            list of RuleChain with conditions prefetched
        """
        cached_chains = cache.get(cls.CHAINS_KEY)
        if cached_chains is not None:
            logger.debug("Cache HIT for active rule chains")
            return cached_chains

        logger.debug("Cache MISS for active rule chains")
        chains = list(
            RuleChain.objects.filter(enabled=True)
            .prefetch_related('conditions')
            .order_by('order', 'created_at')
        )

        cache.set(cls.CHAINS_KEY, chains, cls.cache_ttl())
        return chains

    @classmethod
    def get_settings(cls):
        """Get the proxy security settings singleton (cached)"""
        cached_settings = cache.get(cls.SETTINGS_KEY)
        if cached_settings is not None:
            return cached_settings

        settings_obj = ProxySecuritySettings.load()
        cache.set(cls.SETTINGS_KEY, settings_obj, cls.cache_ttl())
        return settings_obj

    @classmethod
    def invalidate_chains(cls):
        cache.delete(cls.CHAINS_KEY)
        logger.info("Invalidated rule chain cache")

    @classmethod
    def invalidate_settings(cls):
        cache.delete(cls.SETTINGS_KEY)
        logger.info("Invalidated proxy security settings cache")

    @classmethod
    def get_cache_stats(cls):
        """Cache state for monitoring"""
        return {
            'chains_cached': cache.get(cls.CHAINS_KEY) is not None,
            'settings_cached': cache.get(cls.SETTINGS_KEY) is not None,
        }


# Signal handlers for automatic cache invalidation

@receiver(post_save, sender=RuleChain)
@receiver(post_delete, sender=RuleChain)
@receiver(post_save, sender=RuleCondition)
@receiver(post_delete, sender=RuleCondition)
def invalidate_chain_cache(sender, instance, **kwargs):
    """Invalidate the chain snapshot when a chain or one of its conditions changes"""
    RuleChainCacheManager.invalidate_chains()


@receiver(post_save, sender=ProxySecuritySettings)
@receiver(post_delete, sender=ProxySecuritySettings)
def invalidate_settings_cache(sender, instance, **kwargs):
    RuleChainCacheManager.invalidate_settings()
