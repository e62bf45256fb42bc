"""
Validation for rule chains before they are persisted.
"""
import ipaddress
import re

from django.core.exceptions import ValidationError

from .actions import build_action
from .models import CONDITION_IP

NAME_REQUIRED = "Rule chain name is required."
CONDITIONS_REQUIRED = "A rule chain needs at least one condition."
PATTERN_REQUIRED = "Every condition needs a pattern."


def _get(obj, field, default=None):
    if isinstance(obj, dict):
        return obj.get(field, default)
    return getattr(obj, field, default)


def check_pattern(condition_type, pattern):
    """
    Check that a non-empty pattern can be used for its condition type.

    Returns an error message, or None when the pattern is usable.
    """
    if condition_type == CONDITION_IP and '/' in pattern:
        try:
            ipaddress.ip_network(pattern.strip(), strict=False)
        except ValueError:
            return f"'{pattern}' is not a valid CIDR range."
        return None

    try:
        re.compile(pattern)
    except re.error as e:
        return f"'{pattern}' is not a valid regular expression: {e}"
    return None


def validate_rule_chain(name, conditions, action=None, action_config=None):
    """
    Validate a rule chain as submitted by a client.

    Every violation is reported with its own message and code; the raised
    ValidationError maps field names to their errors.

    Args:
        name: Chain name
        conditions: Sequence of condition dicts or objects with type/pattern
        action: Optional action name, checked together with action_config

    Raises:
        ValidationError: when any rule is violated
    """
    errors = {}

    if not name or not str(name).strip():
        errors['name'] = [ValidationError(NAME_REQUIRED, code='name_required')]

    condition_errors = []
    if not conditions:
        condition_errors.append(ValidationError(CONDITIONS_REQUIRED, code='conditions_required'))
    else:
        missing_pattern = False
        for condition in conditions:
            pattern = _get(condition, 'pattern') or ''
            if pattern == '':
                missing_pattern = True
                continue
            message = check_pattern(_get(condition, 'type'), pattern)
            if message:
                condition_errors.append(ValidationError(message, code='pattern_invalid'))
        if missing_pattern:
            condition_errors.insert(0, ValidationError(PATTERN_REQUIRED, code='pattern_required'))

    if condition_errors:
        errors['conditions'] = condition_errors

    if action is not None:
        try:
            build_action(action, action_config)
        except ValueError as e:
            errors['action_config'] = [ValidationError(str(e), code='action_config_invalid')]

    if errors:
        raise ValidationError(errors)
