"""
Django management command to render active jails into the nginx deny-list.

Usage:
    python manage.py generate_nginx_denylist
    python manage.py generate_nginx_denylist --reload
    python manage.py generate_nginx_denylist --dry-run
    python manage.py generate_nginx_denylist --output /tmp/denylist.conf
"""

from django.core.management.base import BaseCommand, CommandError
from ucpanel.security_core.nginx_config_generator import NginxDenyListGenerator, NginxReloader


class Command(BaseCommand):
    help = 'Generate the nginx deny-list from active jails'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reload',
            action='store_true',
            help='Reload nginx after writing the deny-list',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Print the deny-list without writing it',
        )
        parser.add_argument(
            '--output',
            type=str,
            help='Custom output path for the deny-list',
        )
        parser.add_argument(
            '--no-validate',
            action='store_true',
            help='Skip nginx -t after writing',
        )

    def handle(self, *args, **options):
        generator = NginxDenyListGenerator(output_path=options.get('output'))

        jails = generator.get_active_jails()
        self.stdout.write(self.style.NOTICE(f'{len(jails)} active jail(s)'))
        for jail in jails:
            self.stdout.write(f'  - {jail.ip_address} until {jail.expires_at:%Y-%m-%d %H:%M} ({jail.reason})')

        try:
            config_content = generator.generate_config(jails)
        except Exception as e:
            raise CommandError(f'Error generating nginx deny-list: {e}')

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('\n--- DRY RUN MODE ---'))
            self.stdout.write(config_content)
            return

        self.stdout.write(self.style.NOTICE(f'Writing deny-list to {generator.output_path}...'))
        if not generator.write_config(config_content, validate=not options['no_validate']):
            raise CommandError('Failed to write nginx deny-list')

        self.stdout.write(self.style.SUCCESS(f'Wrote nginx deny-list to {generator.output_path}'))

        if options['reload']:
            success, message = NginxReloader.reload()
            if not success:
                raise CommandError(f'Failed to reload nginx: {message}')
            self.stdout.write(self.style.SUCCESS(message))
