"""
Signal handlers for automatic nginx deny-list regeneration.

Regeneration runs once the triggering transaction commits. Jails created by
rule chains or the error threshold are throttled to one regeneration per
NGINX_RELOAD_DEBOUNCE_SECONDS; a change inside the window is marked pending
and written by the next regeneration or by `release_expired_jails`.
"""

import logging
from django.core.cache import cache
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from django.conf import settings
from ucpanel.security_guard.models import JailedIP
from ucpanel.security_guard.signals import jails_changed

logger = logging.getLogger(__name__)

THROTTLE_CACHE_KEY = 'nginx_denylist:throttle'
PENDING_CACHE_KEY = 'nginx_denylist:pending'

AUTOMATIC_SOURCES = ('rule_chain', 'error_threshold')


def should_regenerate_denylist():
    """Check if automatic deny-list regeneration is enabled."""
    return getattr(settings, 'NGINX_AUTO_RELOAD', True)


def regenerate_and_reload():
    """Regenerate the nginx deny-list and reload nginx if enabled."""
    if not should_regenerate_denylist():
        logger.debug("Nginx auto-reload is disabled, skipping deny-list regeneration")
        return

    # This run renders every active jail
    cache.delete(PENDING_CACHE_KEY)

    try:
        from ucpanel.security_core.nginx_config_generator import NginxDenyListGenerator, NginxReloader

        generator = NginxDenyListGenerator()
        result = generator.generate_and_write(validate=True)

        if result['success']:
            logger.info(
                f"Nginx deny-list regenerated with {result['jail_count']} jail(s)"
            )

            success, message = NginxReloader.reload()
            if success:
                logger.info(f"Nginx reloaded successfully: {message}")
            else:
                logger.error(f"Failed to reload Nginx: {message}")
        else:
            error = result.get('error', 'Unknown error')
            logger.error(f"Failed to regenerate nginx deny-list: {error}")

    except Exception as e:
        logger.error(f"Error in regenerate_and_reload: {e}", exc_info=True)


def regenerate_throttled():
    """Regenerate unless another throttled run happened inside the window."""
    if not should_regenerate_denylist():
        return
    window = getattr(settings, 'NGINX_RELOAD_DEBOUNCE_SECONDS', 30)
    if window and not cache.add(THROTTLE_CACHE_KEY, True, window):
        cache.set(PENDING_CACHE_KEY, True, None)
        logger.debug("Deny-list regeneration throttled, marked pending")
        return
    regenerate_and_reload()


def regenerate_pending():
    """Run a regeneration the throttle deferred. Returns True when one ran."""
    if not should_regenerate_denylist() or not cache.get(PENDING_CACHE_KEY):
        return False
    regenerate_and_reload()
    return True


def schedule_regeneration(throttled=False):
    """Run the regeneration once the current transaction commits."""
    # Resolved at commit time
    if throttled:
        transaction.on_commit(lambda: regenerate_throttled())
    else:
        transaction.on_commit(lambda: regenerate_and_reload())


@receiver(post_save, sender=JailedIP)
def jail_saved(sender, instance, created, **kwargs):
    """Regenerate when a jail is created or refreshed."""
    logger.info(f"Jail saved for {instance.ip_address}, scheduling nginx deny-list regeneration")
    schedule_regeneration(throttled=instance.source in AUTOMATIC_SOURCES)


@receiver(post_delete, sender=JailedIP)
def jail_deleted(sender, instance, **kwargs):
    """Regenerate so the deleted jail's deny line is removed."""
    if instance.is_active:
        logger.info(f"Active jail deleted for {instance.ip_address}, scheduling nginx deny-list regeneration")
        schedule_regeneration()


@receiver(jails_changed)
def jails_bulk_changed(sender, **kwargs):
    """Regenerate after bulk unjail / expiry release."""
    schedule_regeneration()
