"""
Django management command to release jails whose duration has passed.
Meant to run from cron every minute.

Also writes deny-list changes that were held back by the regeneration throttle.

Usage:
    python manage.py release_expired_jails
"""

from django.core.management.base import BaseCommand
from ucpanel.security_core.signals import regenerate_pending
from ucpanel.security_guard.jail_manager import JailManager


class Command(BaseCommand):
    help = 'Deactivate expired jails and refresh the nginx deny-list'

    def handle(self, *args, **options):
        released = JailManager.release_expired()
        if released:
            self.stdout.write(self.style.SUCCESS(f'Released {released} expired jail(s)'))
        else:
            self.stdout.write('No expired jails')

        if regenerate_pending():
            self.stdout.write('Wrote pending deny-list changes')
