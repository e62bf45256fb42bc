"""
Jail management: temporary IP bans applied by rule chains, by the error
response threshold, or manually from the API.
"""
import logging
from datetime import timedelta

from django.core.cache import cache
from django.core.validators import validate_ipv46_address
from django.utils import timezone

from .rule_cache_manager import RuleChainCacheManager
from .ip_utils import is_local_ip, parse_ip
from .models import JailedIP
from .signals import jails_changed

logger = logging.getLogger('security_guard')


class JailManager:
    """
    Creates, checks and releases jails.
    Automatic triggers skip local addresses and IPs that are already jailed.
    """

    # Cache key prefix for the per-IP error counters
    ERROR_COUNTER_PREFIX = 'jail_errors'

    @classmethod
    def jail_ip(cls, ip_address, duration_minutes, reason, source='manual'):
        """
        Jail an IP, or refresh the existing jail for it.

        Args:
            ip_address: Address to ban
            duration_minutes: Ban length in minutes
            reason: Human readable reason stored with the jail
            source: What triggered the jail (rule_chain, error_threshold, manual)

        Returns:
            JailedIP: the active jail

        Raises:
            ValidationError: when ip_address is not an IPv4 or IPv6 address
        """
        validate_ipv46_address(ip_address)

        now = timezone.now()
        jailed, created = JailedIP.objects.update_or_create(
            ip_address=ip_address,
            defaults={
                'reason': reason[:300],
                'source': source,
                'duration_minutes': duration_minutes,
                'expires_at': now + timedelta(minutes=duration_minutes),
                'is_active': True,
                'released_at': None,
            }
        )

        logger.warning(
            f"JAILED IP {ip_address} for {duration_minutes} minutes "
            f"(source={source}, new={created}): {reason}"
        )
        return jailed

    @classmethod
    def auto_jail(cls, ip_address, duration_minutes, reason, source):
        """
        Jail from an automatic trigger.

        Returns:
            JailedIP, or None when the address was skipped
        """
        if not ip_address:
            return None

        if parse_ip(ip_address) is None:
            logger.warning(f"Not jailing malformed address {str(ip_address)[:100]!r}")
            return None

        settings_obj = RuleChainCacheManager.get_settings()
        if settings_obj.filter_local_ips and is_local_ip(ip_address):
            logger.debug(f"Not jailing local IP {ip_address}")
            return None

        if cls.is_ip_jailed(ip_address):
            logger.debug(f"IP {ip_address} already jailed, skipping")
            return None

        return cls.jail_ip(ip_address, duration_minutes, reason, source=source)

    @classmethod
    def unjail_ip(cls, ip_address):
        """Release an active jail. Returns False when the IP is not jailed."""
        if parse_ip(ip_address) is None:
            logger.warning(f"Attempted to unjail malformed address {str(ip_address)[:100]!r}")
            return False

        updated = JailedIP.objects.filter(
            ip_address=ip_address,
            is_active=True,
        ).update(is_active=False, released_at=timezone.now(), updated_at=timezone.now())

        if updated:
            logger.info(f"UNJAILED IP {ip_address}")
            # update() sends no post_save
            cls.clear_error_count(ip_address)
            cls._notify_change()
            return True

        logger.warning(f"Attempted to unjail IP that is not jailed: {ip_address}")
        return False

    @classmethod
    def is_ip_jailed(cls, ip_address):
        return JailedIP.objects.filter(
            ip_address=ip_address,
            is_active=True,
            expires_at__gt=timezone.now(),
        ).exists()

    @classmethod
    def list_jails(cls):
        """Active, non-expired jails, newest first"""
        return JailedIP.objects.filter(
            is_active=True,
            expires_at__gt=timezone.now(),
        ).order_by('-created_at')

    @classmethod
    def release_expired(cls):
        """Deactivate jails whose time is up. Returns the number released."""
        now = timezone.now()
        released = JailedIP.objects.filter(
            is_active=True,
            expires_at__lte=now,
        ).update(is_active=False, released_at=now, updated_at=now)

        if released:
            logger.info(f"Released {released} expired jail(s)")
            cls._notify_change()
        return released

    @classmethod
    def record_error_response(cls, ip_address, status_code):
        """
        Count an error response (status >= 400, or 0 for no response) for an IP
        and jail it once the per-window threshold is reached.

        Returns:
            bool: True when this call jailed the IP
        """
        if not ip_address:
            return False
        if not (status_code >= 400 or status_code == 0):
            return False

        settings_obj = RuleChainCacheManager.get_settings()
        if not settings_obj.proxy_jail_enabled:
            return False
        if settings_obj.filter_local_ips and is_local_ip(ip_address):
            return False

        cache_key = f"{cls.ERROR_COUNTER_PREFIX}:{ip_address}"
        window_seconds = settings_obj.monitoring_interval_minutes * 60

        # add() only sets the key when missing, so the window starts at the first error
        cache.add(cache_key, 0, window_seconds)
        try:
            count = cache.incr(cache_key)
        except ValueError:
            # Key expired between add() and incr()
            cache.set(cache_key, 1, window_seconds)
            count = 1

        if count < settings_obj.proxy_jail_threshold_non200:
            return False

        cache.delete(cache_key)
        reason = f"Too many non-200 responses ({count} in window)"
        jailed = cls.auto_jail(
            ip_address,
            settings_obj.jail_duration_minutes,
            f"Proxy: {reason}",
            source='error_threshold',
        )
        return jailed is not None

    @classmethod
    def clear_error_count(cls, ip_address):
        cache.delete(f"{cls.ERROR_COUNTER_PREFIX}:{ip_address}")

    @classmethod
    def _notify_change(cls):
        jails_changed.send(sender=cls)
