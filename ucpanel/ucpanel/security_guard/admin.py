from django.contrib import admin
from .models import JailedIP


@admin.register(JailedIP)
class JailedIPAdmin(admin.ModelAdmin):
    list_display = [
        'ip_address', 'source', 'reason', 'duration_minutes',
        'expires_at', 'is_active', 'created_at'
    ]
    list_filter = ['source', 'is_active']
    search_fields = ['ip_address', 'reason']
    readonly_fields = ['created_at', 'updated_at', 'released_at']
    fieldsets = (
        ('Jail', {
            'fields': ('ip_address', 'reason', 'source')
        }),
        ('Duration', {
            'fields': ('duration_minutes', 'expires_at', 'is_active')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'released_at')
        }),
    )
