"""
Unit tests for the nginx deny-list generator

Tests NginxDenyListGenerator, NginxReloader and the regeneration signals.
"""

import os
import shutil
import tempfile
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch, MagicMock
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from ucpanel.security_core.nginx_config_generator import NginxDenyListGenerator, NginxReloader
from ucpanel.security_core.signals import PENDING_CACHE_KEY, regenerate_pending
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.models import JailedIP


class NginxDenyListGeneratorTestCase(TestCase):
    """Test cases for NginxDenyListGenerator"""

    def setUp(self):
        """Set up test fixtures"""
        cache.clear()
        now = timezone.now()
        self.jail1 = JailedIP.objects.create(
            ip_address='198.51.100.1', reason='scanner', source='rule_chain',
            duration_minutes=30, expires_at=now + timedelta(minutes=30),
        )
        self.jail2 = JailedIP.objects.create(
            ip_address='2001:db8::5', reason='errors', source='error_threshold',
            duration_minutes=30, expires_at=now + timedelta(minutes=30),
        )
        # Expired and released jails must not be rendered
        self.expired = JailedIP.objects.create(
            ip_address='198.51.100.2', reason='old', duration_minutes=1,
            expires_at=now - timedelta(minutes=1),
        )
        self.released = JailedIP.objects.create(
            ip_address='198.51.100.3', reason='released', duration_minutes=30,
            expires_at=now + timedelta(minutes=30), is_active=False,
        )

        # Use temp directory for test output
        self.temp_dir = tempfile.mkdtemp()
        self.test_output_path = os.path.join(self.temp_dir, 'denylist.conf')

    def tearDown(self):
        """Clean up test fixtures"""
        cache.clear()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_get_active_jails(self):
        jails = NginxDenyListGenerator().get_active_jails()

        self.assertEqual(len(jails), 2)
        self.assertIn(self.jail1, jails)
        self.assertIn(self.jail2, jails)
        self.assertNotIn(self.expired, jails)
        self.assertNotIn(self.released, jails)

    def test_generate_config(self):
        config = NginxDenyListGenerator().generate_config()

        self.assertIn('deny 198.51.100.1;', config)
        self.assertIn('deny 2001:db8::5;', config)
        self.assertIn('(rule_chain)', config)
        self.assertIn('2 jailed address(es)', config)
        self.assertNotIn('198.51.100.2', config)
        self.assertNotIn('198.51.100.3', config)

    def test_generate_config_empty(self):
        config = NginxDenyListGenerator().generate_config(jails=[])

        self.assertIn('Managed by UCpanel', config)
        self.assertNotIn('deny ', config)

    def test_generate_config_skips_malformed_addresses(self):
        expires_at = timezone.now() + timedelta(minutes=30)
        jails = [
            SimpleNamespace(pk=1, ip_address='1.2.3.4; include /etc/passwd', expires_at=expires_at, source='rule_chain'),
            SimpleNamespace(pk=2, ip_address='198.51.100.9', expires_at=expires_at, source='rule_chain'),
        ]

        with self.assertLogs('ucpanel.security_core.nginx_config_generator', level='WARNING'):
            config = NginxDenyListGenerator().generate_config(jails=jails)

        self.assertIn('deny 198.51.100.9;', config)
        self.assertNotIn('include', config)
        self.assertIn('1 jailed address(es)', config)

    @patch('subprocess.run')
    def test_validate_config_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr='', stdout='syntax is ok')

        is_valid, error_msg = NginxDenyListGenerator(output_path=self.test_output_path).validate_config()

        self.assertTrue(is_valid)
        self.assertEqual(error_msg, '')

    @patch('subprocess.run')
    def test_validate_config_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stderr='nginx: [emerg] invalid syntax', stdout='')

        is_valid, error_msg = NginxDenyListGenerator(output_path=self.test_output_path).validate_config()

        self.assertFalse(is_valid)
        self.assertIn('invalid syntax', error_msg)

    @patch('subprocess.run', side_effect=FileNotFoundError)
    def test_validate_config_without_nginx(self, mock_run):
        is_valid, error_msg = NginxDenyListGenerator(output_path=self.test_output_path).validate_config()

        self.assertTrue(is_valid)
        self.assertIn('not found', error_msg)

    @patch('subprocess.run')
    def test_write_config(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr='', stdout='')
        generator = NginxDenyListGenerator(output_path=self.test_output_path)

        self.assertTrue(generator.write_config('deny 198.51.100.1;\n'))

        with open(self.test_output_path) as f:
            self.assertEqual(f.read(), 'deny 198.51.100.1;\n')

    @patch('subprocess.run')
    def test_write_config_restores_previous_on_failure(self, mock_run):
        with open(self.test_output_path, 'w') as f:
            f.write('deny 192.0.2.1;\n')
        mock_run.return_value = MagicMock(returncode=1, stderr='bad', stdout='')

        result = NginxDenyListGenerator(output_path=self.test_output_path).write_config('broken')

        self.assertFalse(result)
        with open(self.test_output_path) as f:
            self.assertEqual(f.read(), 'deny 192.0.2.1;\n')

    @patch('subprocess.run')
    def test_write_config_removes_new_file_on_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stderr='bad', stdout='')

        result = NginxDenyListGenerator(output_path=self.test_output_path).write_config('broken')

        self.assertFalse(result)
        self.assertFalse(os.path.exists(self.test_output_path))

    def test_generate_and_write_without_validation(self):
        result = NginxDenyListGenerator(output_path=self.test_output_path).generate_and_write(validate=False)

        self.assertTrue(result['success'])
        self.assertEqual(result['jail_count'], 2)
        self.assertEqual(result['output_path'], self.test_output_path)
        self.assertTrue(os.path.exists(self.test_output_path))


class NginxReloaderTestCase(TestCase):
    """Test cases for NginxReloader"""

    @patch('subprocess.run')
    def test_reload_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr='', stdout='')

        success, message = NginxReloader.reload()

        self.assertTrue(success)
        self.assertEqual(mock_run.call_count, 2)

    @patch('ucpanel.security_core.nginx_config_generator.NginxDenyListGenerator.validate_config')
    @patch('subprocess.run')
    def test_reload_refused_when_invalid(self, mock_run, mock_validate):
        mock_validate.return_value = (False, 'broken include')

        success, message = NginxReloader.reload()

        self.assertFalse(success)
        self.assertIn('broken include', message)
        mock_run.assert_not_called()


class DenyListSignalTestCase(TestCase):
    """Jail changes regenerate the deny-list once the transaction commits"""

    def setUp(self):
        cache.clear()

    def tearDown(self):
        cache.clear()

    @patch('ucpanel.security_core.signals.regenerate_and_reload')
    def test_jail_and_unjail_regenerate(self, mock_regenerate):
        with self.captureOnCommitCallbacks(execute=True):
            JailManager.jail_ip('198.51.100.50', 30, 'test')
        self.assertEqual(mock_regenerate.call_count, 1)

        with self.captureOnCommitCallbacks(execute=True):
            JailManager.unjail_ip('198.51.100.50')
        self.assertEqual(mock_regenerate.call_count, 2)

    @patch('ucpanel.security_core.signals.regenerate_and_reload')
    def test_nothing_runs_before_commit(self, mock_regenerate):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            JailManager.jail_ip('198.51.100.53', 30, 'test')

        self.assertEqual(len(callbacks), 1)
        mock_regenerate.assert_not_called()

    @override_settings(NGINX_AUTO_RELOAD=True, NGINX_RELOAD_DEBOUNCE_SECONDS=60)
    @patch('ucpanel.security_core.signals.regenerate_and_reload')
    def test_automatic_jails_are_throttled(self, mock_regenerate):
        with self.captureOnCommitCallbacks(execute=True):
            JailManager.auto_jail('198.51.100.54', 30, 'scanner', source='rule_chain')
        with self.captureOnCommitCallbacks(execute=True):
            JailManager.auto_jail('198.51.100.55', 30, 'scanner', source='rule_chain')

        self.assertEqual(mock_regenerate.call_count, 1)
        self.assertTrue(cache.get(PENDING_CACHE_KEY))

        self.assertTrue(regenerate_pending())
        self.assertEqual(mock_regenerate.call_count, 2)

    @override_settings(NGINX_AUTO_RELOAD=True, NGINX_RELOAD_DEBOUNCE_SECONDS=60)
    @patch('ucpanel.security_core.signals.regenerate_and_reload')
    def test_manual_jails_are_not_throttled(self, mock_regenerate):
        with self.captureOnCommitCallbacks(execute=True):
            JailManager.auto_jail('198.51.100.56', 30, 'scanner', source='rule_chain')
        with self.captureOnCommitCallbacks(execute=True):
            JailManager.jail_ip('198.51.100.57', 30, 'operator', source='manual')

        self.assertEqual(mock_regenerate.call_count, 2)

    @patch('subprocess.run')
    def test_auto_reload_disabled(self, mock_run):
        with override_settings(NGINX_AUTO_RELOAD=False):
            with self.captureOnCommitCallbacks(execute=True):
                JailManager.jail_ip('198.51.100.51', 30, 'test')
        mock_run.assert_not_called()

    @patch('subprocess.run')
    def test_auto_reload_writes_denylist(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr='', stdout='')
        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, ignore_errors=True)
        output_path = os.path.join(temp_dir, 'denylist.conf')

        with override_settings(NGINX_AUTO_RELOAD=True, NGINX_DENYLIST_PATH=output_path):
            with self.captureOnCommitCallbacks(execute=True):
                JailManager.jail_ip('198.51.100.52', 30, 'test')

        with open(output_path) as f:
            self.assertIn('deny 198.51.100.52;', f.read())
        self.assertTrue(mock_run.called)
