"""
Tests for ProxySecurityMiddleware
"""
from unittest.mock import Mock

from django.core.cache import cache
from django.http import HttpResponse
from django.test import RequestFactory, TestCase, override_settings

from ucpanel.security_core.models import ProxySecuritySettings, RuleChain, RuleCondition, SecurityEvent
from ucpanel.security_engine.middleware import ProxySecurityMiddleware
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.models import JailedIP


class ProxySecurityMiddlewareTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.factory = RequestFactory()
        self.view_status = 200
        self.get_response = Mock(side_effect=lambda request: HttpResponse('upstream', status=self.view_status))
        self.middleware = ProxySecurityMiddleware(self.get_response)

    def tearDown(self):
        cache.clear()

    def request(self, path='/', ip='203.0.113.60', method='get', **extra):
        request = getattr(self.factory, method)(path, REMOTE_ADDR=ip, **extra)
        return self.middleware(request)

    def create_chain(self, action, conditions, operator='AND', order=1, action_config=None, name='chain'):
        chain = RuleChain.objects.create(
            name=name, action=action, operator=operator, order=order,
            action_config=action_config or {},
        )
        for position, (type, pattern) in enumerate(conditions):
            RuleCondition.objects.create(chain=chain, type=type, pattern=pattern, position=position)
        return chain

    def test_clean_request_passes_through(self):
        response = self.request('/index.html')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'upstream')
        self.assertFalse(SecurityEvent.objects.exists())

    def test_jailed_ip_is_refused_before_the_view(self):
        JailManager.jail_ip('203.0.113.60', 30, 'test')

        response = self.request('/index.html')

        self.assertEqual(response.status_code, 403)
        self.get_response.assert_not_called()

    def test_exempt_paths_skip_everything(self):
        JailManager.jail_ip('203.0.113.60', 30, 'test')
        self.create_chain('NGINX_BLOCK', [('PATH', '.')])

        response = self.request('/health/')

        self.assertEqual(response.status_code, 200)
        self.assertFalse(SecurityEvent.objects.exists())

    @override_settings(UCPANEL_SECURITY_EXEMPT_PATHS=('/metrics',))
    def test_exempt_paths_from_settings(self):
        middleware = ProxySecurityMiddleware(self.get_response)
        self.create_chain('NGINX_BLOCK', [('PATH', '.')])

        response = middleware(self.factory.get('/metrics', REMOTE_ADDR='203.0.113.60'))

        self.assertEqual(response.status_code, 200)

    def test_block_replaces_response(self):
        self.create_chain('NGINX_BLOCK', [('PATH', r'^/\.env$')],
                          action_config={'nginx_response_message': 'Blocked'})

        response = self.request('/.env')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.content, b'Blocked')
        self.assertEqual(SecurityEvent.objects.get().action_taken, 'NGINX_BLOCK')

    def test_deny_closes_with_444(self):
        self.create_chain('NGINX_DENY', [('USER_AGENT', '(?i)sqlmap')])

        response = self.request('/', HTTP_USER_AGENT='sqlmap/1.7')

        self.assertEqual(response.status_code, 444)
        self.assertEqual(response.content, b'')

    def test_status_code_condition_sees_view_status(self):
        self.view_status = 500
        self.create_chain('LOG_ONLY', [('STATUS_CODE', r'^5\d\d$')])

        response = self.request('/api/orders')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(SecurityEvent.objects.get().status_code, 500)

    def test_jail_applies_to_later_requests(self):
        self.create_chain('JAIL', [('PATH', 'wp-login'), ('METHOD', 'post')])

        first = self.request('/wp-login.php', method='post')
        self.assertEqual(first.status_code, 200)
        self.assertTrue(JailManager.is_ip_jailed('203.0.113.60'))

        second = self.request('/index.html')
        self.assertEqual(second.status_code, 403)

    def test_forwarded_for_first_entry_is_the_client(self):
        self.create_chain('JAIL', [('PATH', 'wp-login')])

        self.request('/wp-login.php', ip='10.0.0.2', HTTP_X_FORWARDED_FOR='198.51.100.77, 10.0.0.1')

        self.assertTrue(JailManager.is_ip_jailed('198.51.100.77'))
        self.assertFalse(JailManager.is_ip_jailed('10.0.0.2'))

    def test_domain_and_referer_conditions(self):
        self.create_chain('LOG_ONLY', [('DOMAIN', r'^testserver$'), ('REFERER', r'spam\.example')])

        self.request('/', HTTP_REFERER='https://spam.example/offer')

        event = SecurityEvent.objects.get()
        self.assertEqual(event.domain, 'testserver')
        self.assertEqual(event.referer, 'https://spam.example/offer')

    def test_global_switch_off(self):
        settings_obj = ProxySecuritySettings.load()
        settings_obj.proxy_jail_enabled = False
        settings_obj.save()
        self.create_chain('NGINX_BLOCK', [('PATH', '.')])

        response = self.request('/')

        self.assertEqual(response.status_code, 200)
        self.assertFalse(SecurityEvent.objects.exists())

    def test_error_responses_trigger_jail(self):
        settings_obj = ProxySecuritySettings.load()
        settings_obj.proxy_jail_threshold_non200 = 2
        settings_obj.save()
        self.view_status = 404

        self.request('/missing-1')
        self.request('/missing-2')

        self.assertTrue(JailManager.is_ip_jailed('203.0.113.60'))
        self.assertEqual(self.request('/').status_code, 403)

    def test_local_client_is_never_jailed(self):
        self.create_chain('JAIL', [('PATH', '.')])

        self.request('/', ip='127.0.0.1')

        self.assertFalse(JailManager.is_ip_jailed('127.0.0.1'))
        # The match is still logged
        self.assertEqual(SecurityEvent.objects.count(), 1)

    def test_block_stops_the_request_before_the_view(self):
        self.create_chain('NGINX_BLOCK', [('PATH', '^/admin-x'), ('METHOD', 'POST')])

        response = self.request('/admin-x/delete', method='post')

        self.assertEqual(response.status_code, 403)
        self.get_response.assert_not_called()
        self.assertEqual(SecurityEvent.objects.get().status_code, 403)

    def test_deny_stops_the_request_before_the_view(self):
        self.create_chain('NGINX_DENY', [('USER_AGENT', '(?i)sqlmap')])

        response = self.request('/', HTTP_USER_AGENT='sqlmap/1.7')

        self.assertEqual(response.status_code, 444)
        self.get_response.assert_not_called()

    def test_every_early_match_fires_when_blocked(self):
        self.create_chain('LOG_ONLY', [('PATH', 'wp-login')], order=1, name='watch')
        self.create_chain('NGINX_BLOCK', [('PATH', 'wp-login')], order=2, name='block')
        self.create_chain('JAIL', [('PATH', 'wp-login')], order=3, name='jail')

        response = self.request('/wp-login.php')

        self.assertEqual(response.status_code, 403)
        self.get_response.assert_not_called()
        self.assertEqual(
            sorted(SecurityEvent.objects.values_list('chain_name', flat=True)),
            ['block', 'jail', 'watch'],
        )
        self.assertTrue(JailManager.is_ip_jailed('203.0.113.60'))

    def test_status_dependent_block_still_runs_the_view(self):
        self.view_status = 404
        self.create_chain('NGINX_BLOCK', [('PATH', '^/backup'), ('STATUS_CODE', '^404$')])

        response = self.request('/backup.zip')

        self.assertEqual(response.status_code, 403)
        self.get_response.assert_called_once()

    def test_malformed_forwarded_for_falls_back_to_remote_addr(self):
        self.create_chain('JAIL', [('PATH', '^/wp-login')])

        self.request('/wp-login.php', ip='198.51.100.78', HTTP_X_FORWARDED_FOR='1.2.3.4; include /etc/passwd')

        self.assertTrue(JailManager.is_ip_jailed('198.51.100.78'))
        self.assertEqual(list(JailedIP.objects.values_list('ip_address', flat=True)), ['198.51.100.78'])
        self.assertEqual(SecurityEvent.objects.get().source_ip, '198.51.100.78')

    def test_blocked_responses_count_towards_the_threshold(self):
        settings_obj = ProxySecuritySettings.load()
        settings_obj.proxy_jail_threshold_non200 = 2
        settings_obj.save()
        self.create_chain('NGINX_BLOCK', [('PATH', r'^/\.env$')])

        self.request('/.env')
        self.request('/.env')

        self.assertTrue(JailManager.is_ip_jailed('203.0.113.60'))

    def test_broken_action_config_is_treated_as_log_only(self):
        chain = self.create_chain('NGINX_BLOCK', [('PATH', '^/shop')])
        RuleChain.objects.filter(pk=chain.pk).update(action_config={'jail_duration_minutes': 5})

        with self.assertLogs('security_engine', level='ERROR'):
            response = self.request('/shop/cart')

        self.assertEqual(response.status_code, 200)
        self.get_response.assert_called_once()
        self.assertEqual(SecurityEvent.objects.get().action_taken, 'NGINX_BLOCK')
