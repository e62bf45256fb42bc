from django.db import models
from django.core.exceptions import ValidationError
import uuid

from .actions import (
    ACTION_JAIL,
    ACTION_NGINX_BLOCK,
    ACTION_NGINX_DENY,
    ACTION_LOG_ONLY,
    build_action,
)

# --- Rule Chain Models ---

OPERATOR_AND = 'AND'
OPERATOR_OR = 'OR'

CONDITION_IP = 'IP'
CONDITION_USER_AGENT = 'USER_AGENT'
CONDITION_METHOD = 'METHOD'
CONDITION_PATH = 'PATH'
CONDITION_STATUS_CODE = 'STATUS_CODE'
CONDITION_REFERER = 'REFERER'
CONDITION_DOMAIN = 'DOMAIN'


class RuleChain(models.Model):
    """A named, ordered policy combining conditions into a single enforcement action"""

    OPERATOR_CHOICES = [
        (OPERATOR_AND, 'All conditions must match'),
        (OPERATOR_OR, 'Any condition may match'),
    ]

    ACTION_CHOICES = [
        (ACTION_JAIL, 'Jail source IP'),
        (ACTION_NGINX_BLOCK, 'Nginx block (HTTP error response)'),
        (ACTION_NGINX_DENY, 'Nginx deny (close connection)'),
        (ACTION_LOG_ONLY, 'Log only'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    enabled = models.BooleanField(default=True)
    operator = models.CharField(max_length=3, choices=OPERATOR_CHOICES, default=OPERATOR_AND)

    # Enforcement
    action = models.CharField(max_length=20, choices=ACTION_CHOICES, default=ACTION_LOG_ONLY)
    action_config = models.JSONField(default=dict, blank=True,
                                     help_text="Parameters for the selected action")

    order = models.IntegerField(default=0, help_text="Chains are evaluated in ascending order")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order', 'created_at']
        verbose_name = "Rule Chain"
        verbose_name_plural = "Rule Chains"

    def __str__(self):
        return f"{self.name} ({self.operator} -> {self.action})"

    def clean(self):
        if not self.name or not self.name.strip():
            raise ValidationError({'name': "Rule chain name is required."})
        try:
            self.get_action()
        except ValueError as e:
            raise ValidationError({'action_config': str(e)})

    def get_action(self):
        """Return the typed action built from action + action_config"""
        return build_action(self.action, self.action_config)


class RuleCondition(models.Model):
    """One predicate within a rule chain"""

    CONDITION_TYPES = [
        (CONDITION_IP, 'Source IP / CIDR'),
        (CONDITION_USER_AGENT, 'User agent'),
        (CONDITION_METHOD, 'HTTP method'),
        (CONDITION_PATH, 'Request path'),
        (CONDITION_STATUS_CODE, 'Response status code'),
        (CONDITION_REFERER, 'Referer'),
        (CONDITION_DOMAIN, 'Domain'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    chain = models.ForeignKey(RuleChain, on_delete=models.CASCADE, related_name='conditions')

    type = models.CharField(max_length=20, choices=CONDITION_TYPES)
    pattern = models.CharField(max_length=500,
                               help_text="Regex pattern, or address / CIDR range for IP conditions")
    negate = models.BooleanField(default=False)
    description = models.CharField(max_length=200, blank=True)

    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['position']
        verbose_name = "Rule Condition"
        verbose_name_plural = "Rule Conditions"

    def __str__(self):
        prefix = "NOT " if self.negate else ""
        return f"{prefix}{self.type} ~ {self.pattern}"


# --- Global Settings ---

class ProxySecuritySettings(models.Model):
    """Singleton holding the proxy security switches and jail defaults"""

    proxy_jail_enabled = models.BooleanField(default=True,
                                             help_text="Evaluate rule chains on incoming requests")
    jail_duration_minutes = models.PositiveIntegerField(default=30,
                                                        help_text="Default jail duration")
    proxy_jail_threshold_non200 = models.PositiveIntegerField(
        default=20, help_text="Error responses per window before an IP is jailed")
    monitoring_interval_minutes = models.PositiveIntegerField(default=5)
    filter_local_ips = models.BooleanField(default=True,
                                           help_text="Never jail local or private addresses")

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Proxy Security Settings"
        verbose_name_plural = "Proxy Security Settings"

    def __str__(self):
        state = "enabled" if self.proxy_jail_enabled else "disabled"
        return f"Proxy security ({state})"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        settings_obj, _ = cls.objects.get_or_create(pk=1)
        return settings_obj


# --- Events ---

class SecurityEvent(models.Model):
    """Record of a rule chain match and the action taken"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    chain = models.ForeignKey(RuleChain, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name='events')
    chain_name = models.CharField(max_length=200, blank=True)

    action_taken = models.CharField(max_length=20, choices=RuleChain.ACTION_CHOICES)
    matched_conditions = models.JSONField(default=list, blank=True)

    # Request details
    source_ip = models.GenericIPAddressField()
    user_agent = models.TextField(blank=True)
    request_method = models.CharField(max_length=10, default='UNKNOWN')
    request_path = models.CharField(max_length=2000)
    status_code = models.IntegerField(default=0)
    referer = models.TextField(blank=True)
    domain = models.CharField(max_length=255, blank=True)

    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['source_ip', 'timestamp'], name='sec_event_ip_time_idx'),
            models.Index(fields=['action_taken', 'timestamp'], name='sec_event_action_time_idx'),
        ]
        verbose_name = "Security Event"
        verbose_name_plural = "Security Events"

    def __str__(self):
        return f"{self.chain_name} - {self.action_taken} from {self.source_ip}"
