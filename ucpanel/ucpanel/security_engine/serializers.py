"""
REST API serializers for proxy security
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers
from rest_framework.exceptions import ErrorDetail

from ucpanel.security_core.actions import ACTION_LOG_ONLY
from ucpanel.security_core.models import (
    RuleChain,
    RuleCondition,
    ProxySecuritySettings,
    SecurityEvent,
)
from ucpanel.security_core.validation import validate_rule_chain
from ucpanel.security_guard.models import JailedIP


class RuleConditionSerializer(serializers.ModelSerializer):
    # Blank patterns are reported by RuleChainSerializer.validate with their own code
    pattern = serializers.CharField(max_length=500, allow_blank=True, trim_whitespace=False, default='')

    class Meta:
        model = RuleCondition
        fields = ['id', 'type', 'pattern', 'negate', 'description', 'position']
        read_only_fields = ['id', 'position']


class RuleChainSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=200, allow_blank=True, default='')
    conditions = RuleConditionSerializer(many=True, required=False)

    class Meta:
        model = RuleChain
        fields = [
            'id', 'name', 'description', 'enabled', 'operator',
            'action', 'action_config', 'order', 'conditions',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        instance = self.instance

        name = attrs.get('name', instance.name if instance else '')
        conditions = attrs.get('conditions')
        if conditions is None:
            conditions = list(instance.conditions.all()) if instance else []
        action = attrs.get('action', instance.action if instance else ACTION_LOG_ONLY)
        action_config = attrs.get('action_config', instance.action_config if instance else {})

        try:
            validate_rule_chain(name, conditions, action, action_config)
        except DjangoValidationError as e:
            raise serializers.ValidationError(_error_details(e))

        return attrs

    def create(self, validated_data):
        conditions = validated_data.pop('conditions', [])
        with transaction.atomic():
            chain = RuleChain.objects.create(**validated_data)
            self._write_conditions(chain, conditions)
        return chain

    def update(self, instance, validated_data):
        conditions = validated_data.pop('conditions', None)
        with transaction.atomic():
            for attr, value in validated_data.items():
                setattr(instance, attr, value)
            instance.save()

            # Conditions are replaced as a whole
            if conditions is not None:
                instance.conditions.all().delete()
                self._write_conditions(instance, conditions)
        return instance

    def _write_conditions(self, chain, conditions):
        for position, condition in enumerate(conditions):
            RuleCondition.objects.create(chain=chain, position=position, **condition)


def _error_details(error):
    """Django ValidationError -> DRF error dict, keeping each error's code"""
    return {
        field: [ErrorDetail(str(err.message), code=err.code) for err in errors]
        for field, errors in error.error_dict.items()
    }


class ReorderSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)

    def validate_ids(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Rule chain ids must be unique.")
        found = RuleChain.objects.filter(pk__in=value).count()
        if found != len(value):
            raise serializers.ValidationError("Unknown rule chain id.")
        return value


class EvaluateRequestSerializer(serializers.Serializer):
    """A sample request to dry-run against the active rule chains"""
    ip = serializers.IPAddressField()
    method = serializers.CharField(max_length=10, default='GET')
    path = serializers.CharField(max_length=2000, default='/')
    status = serializers.IntegerField(min_value=0, max_value=999, default=0)
    user_agent = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    referer = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    domain = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)


class JailedIPSerializer(serializers.ModelSerializer):
    in_force = serializers.BooleanField(read_only=True)

    class Meta:
        model = JailedIP
        fields = [
            'id', 'ip_address', 'reason', 'source', 'duration_minutes',
            'expires_at', 'is_active', 'in_force',
            'created_at', 'updated_at', 'released_at'
        ]
        read_only_fields = fields


class JailRequestSerializer(serializers.Serializer):
    ip_address = serializers.IPAddressField()
    duration_minutes = serializers.IntegerField(min_value=1, required=False)
    reason = serializers.CharField(max_length=300, default='Manual jail')


class SecurityEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = SecurityEvent
        fields = [
            'id', 'chain', 'chain_name', 'action_taken', 'matched_conditions',
            'source_ip', 'user_agent', 'request_method', 'request_path',
            'status_code', 'referer', 'domain', 'timestamp'
        ]
        read_only_fields = fields


class ProxySecuritySettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProxySecuritySettings
        fields = [
            'proxy_jail_enabled', 'jail_duration_minutes',
            'proxy_jail_threshold_non200', 'monitoring_interval_minutes',
            'filter_local_ips', 'updated_at'
        ]
        read_only_fields = ['updated_at']
        extra_kwargs = {
            'jail_duration_minutes': {'min_value': 1},
            'proxy_jail_threshold_non200': {'min_value': 1},
            'monitoring_interval_minutes': {'min_value': 1},
        }
