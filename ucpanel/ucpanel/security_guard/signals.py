# security_guard/signals.py
"""
Signals for the guard app. Imported by apps.py to register handlers.
"""
from django.dispatch import Signal

# Sent after bulk jail changes (unjail, expiry release) that bypass post_save
jails_changed = Signal()

# Import cache invalidation handlers so they are registered
from .rule_cache_manager import (  # noqa: E402,F401
    invalidate_chain_cache,
    invalidate_settings_cache,
)
