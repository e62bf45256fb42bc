from django.contrib import admin
from .models import (
    RuleChain,
    RuleCondition,
    ProxySecuritySettings,
    SecurityEvent,
)


class RuleConditionInline(admin.TabularInline):
    model = RuleCondition
    extra = 0
    # Chains need at least one condition
    min_num = 1
    validate_min = True
    fields = ('position', 'type', 'pattern', 'negate', 'description')
    ordering = ('position',)


@admin.register(RuleChain)
class RuleChainAdmin(admin.ModelAdmin):
    list_display = ('name', 'order', 'operator', 'action', 'enabled', 'updated_at')
    list_filter = ('enabled', 'operator', 'action')
    search_fields = ('name', 'description', 'conditions__pattern')
    ordering = ('order', 'created_at')
    inlines = [RuleConditionInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'description', 'enabled', 'order')
        }),
        ('Logic', {
            'fields': ('operator',),
            'description': 'AND requires every condition to match, OR requires any one'
        }),
        ('Action', {
            'fields': ('action', 'action_config'),
            'description': 'JAIL: jail_duration_minutes. NGINX_BLOCK: nginx_response_code, '
                           'nginx_response_message. NGINX_DENY: nginx_response_code.'
        }),
    )


@admin.register(ProxySecuritySettings)
class ProxySecuritySettingsAdmin(admin.ModelAdmin):
    list_display = ('proxy_jail_enabled', 'jail_duration_minutes',
                    'proxy_jail_threshold_non200', 'filter_local_ips')

    def has_add_permission(self, request):
        return not ProxySecuritySettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SecurityEvent)
class SecurityEventAdmin(admin.ModelAdmin):
    list_display = ('chain_name', 'action_taken', 'source_ip', 'request_method',
                    'request_path', 'status_code', 'timestamp')
    list_filter = ('action_taken',)
    search_fields = ('source_ip', 'request_path', 'chain_name')
    readonly_fields = [f.name for f in SecurityEvent._meta.fields]
