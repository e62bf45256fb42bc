"""
Tests for rule chain validation
"""
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from ucpanel.security_core.validation import check_pattern, validate_rule_chain


def error_codes(error, field):
    return [e.code for e in error.error_dict[field]]


class ValidateRuleChainTests(SimpleTestCase):

    def test_valid_chain_passes(self):
        validate_rule_chain(
            'Block scanners',
            [{'type': 'PATH', 'pattern': r'\.env$'}, {'type': 'IP', 'pattern': '203.0.113.0/24'}],
            action='NGINX_BLOCK',
            action_config={'nginx_response_code': 403},
        )

    def test_blank_name(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_rule_chain('   ', [{'type': 'PATH', 'pattern': '/x'}])
        self.assertEqual(error_codes(ctx.exception, 'name'), ['name_required'])

    def test_no_conditions(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_rule_chain('Empty', [])
        self.assertEqual(error_codes(ctx.exception, 'conditions'), ['conditions_required'])

    def test_blank_pattern(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_rule_chain('Blank', [{'type': 'PATH', 'pattern': ''}, {'type': 'REFERER', 'pattern': ''}])
        self.assertEqual(error_codes(ctx.exception, 'conditions'), ['pattern_required'])

    def test_whitespace_pattern_is_a_regex(self):
        validate_rule_chain('Spaced agents', [{'type': 'USER_AGENT', 'pattern': ' '}])

    def test_invalid_regex_and_blank_pattern_are_both_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_rule_chain('Mixed', [
                {'type': 'USER_AGENT', 'pattern': '(bad'},
                {'type': 'PATH', 'pattern': ''},
            ])
        self.assertEqual(error_codes(ctx.exception, 'conditions'), ['pattern_required', 'pattern_invalid'])

    def test_every_violation_is_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_rule_chain('', [], action='JAIL', action_config={'nginx_response_code': 403})
        self.assertEqual(set(ctx.exception.error_dict), {'name', 'conditions', 'action_config'})
        self.assertEqual(error_codes(ctx.exception, 'action_config'), ['action_config_invalid'])

    def test_accepts_objects(self):
        class Condition:
            type = 'METHOD'
            pattern = '^POST$'
        validate_rule_chain('Objects', [Condition()])


class CheckPatternTests(SimpleTestCase):

    def test_cidr_for_ip_conditions(self):
        self.assertIsNone(check_pattern('IP', '10.0.0.0/8'))
        self.assertIsNotNone(check_pattern('IP', '10.0.0.0/99'))

    def test_slash_in_path_pattern_is_regex(self):
        self.assertIsNone(check_pattern('PATH', '^/admin/'))

    def test_bad_regex(self):
        self.assertIn('regular expression', check_pattern('REFERER', '*evil'))
