"""
Typed rule chain actions.

A RuleChain stores its action as a name plus a loose JSON config. These
classes are the validated form: each action carries only the fields that
belong to it.
"""
from dataclasses import dataclass
from typing import Optional

ACTION_JAIL = 'JAIL'
ACTION_NGINX_BLOCK = 'NGINX_BLOCK'
ACTION_NGINX_DENY = 'NGINX_DENY'
ACTION_LOG_ONLY = 'LOG_ONLY'

DEFAULT_BLOCK_RESPONSE_CODE = 403
DEFAULT_DENY_RESPONSE_CODE = 444


@dataclass(frozen=True)
class JailAction:
    name = ACTION_JAIL
    alters_response = False

    jail_duration_minutes: Optional[int] = None

    def resolve_duration(self, default_minutes: int) -> int:
        """Configured duration when present and positive, else the system default"""
        if self.jail_duration_minutes and self.jail_duration_minutes > 0:
            return self.jail_duration_minutes
        return default_minutes


@dataclass(frozen=True)
class NginxBlockAction:
    name = ACTION_NGINX_BLOCK
    alters_response = True

    nginx_response_code: int = DEFAULT_BLOCK_RESPONSE_CODE
    nginx_response_message: str = ''


@dataclass(frozen=True)
class NginxDenyAction:
    name = ACTION_NGINX_DENY
    alters_response = True

    nginx_response_code: int = DEFAULT_DENY_RESPONSE_CODE


@dataclass(frozen=True)
class LogOnlyAction:
    name = ACTION_LOG_ONLY
    alters_response = False


ALLOWED_CONFIG_KEYS = {
    ACTION_JAIL: {'jail_duration_minutes'},
    ACTION_NGINX_BLOCK: {'nginx_response_code', 'nginx_response_message'},
    ACTION_NGINX_DENY: {'nginx_response_code'},
    ACTION_LOG_ONLY: set(),
}


def _optional_int(config, key):
    value = config.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{key}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be an integer")


def _response_code(config, default):
    code = _optional_int(config, 'nginx_response_code')
    if code is None:
        return default
    if not 100 <= code <= 599:
        raise ValueError("'nginx_response_code' must be between 100 and 599")
    return code


def build_action(action_name, config=None):
    """
    Build a typed action from its name and stored config.

    Raises:
        ValueError: unknown action, or config keys / values that do not
            belong to the action.
    """
    config = config or {}
    if not isinstance(config, dict):
        raise ValueError("Action config must be an object")

    if action_name not in ALLOWED_CONFIG_KEYS:
        raise ValueError(f"Unknown action '{action_name}'")

    unexpected = set(config) - ALLOWED_CONFIG_KEYS[action_name]
    if unexpected:
        keys = ', '.join(sorted(unexpected))
        raise ValueError(f"{action_name} does not accept: {keys}")

    if action_name == ACTION_JAIL:
        duration = _optional_int(config, 'jail_duration_minutes')
        if duration is not None and duration < 0:
            raise ValueError("'jail_duration_minutes' must not be negative")
        return JailAction(jail_duration_minutes=duration)

    if action_name == ACTION_NGINX_BLOCK:
        message = config.get('nginx_response_message') or ''
        return NginxBlockAction(
            nginx_response_code=_response_code(config, DEFAULT_BLOCK_RESPONSE_CODE),
            nginx_response_message=str(message),
        )

    if action_name == ACTION_NGINX_DENY:
        return NginxDenyAction(
            nginx_response_code=_response_code(config, DEFAULT_DENY_RESPONSE_CODE),
        )

    return LogOnlyAction()
