import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ProxySecuritySettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('proxy_jail_enabled', models.BooleanField(default=True, help_text='Evaluate rule chains on incoming requests')),
                ('jail_duration_minutes', models.PositiveIntegerField(default=30, help_text='Default jail duration')),
                ('proxy_jail_threshold_non200', models.PositiveIntegerField(default=20, help_text='Error responses per window before an IP is jailed')),
                ('monitoring_interval_minutes', models.PositiveIntegerField(default=5)),
                ('filter_local_ips', models.BooleanField(default=True, help_text='Never jail local or private addresses')),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Proxy Security Settings',
                'verbose_name_plural': 'Proxy Security Settings',
            },
        ),
        migrations.CreateModel(
            name='RuleChain',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('enabled', models.BooleanField(default=True)),
                ('operator', models.CharField(choices=[('AND', 'All conditions must match'), ('OR', 'Any condition may match')], default='AND', max_length=3)),
                ('action', models.CharField(choices=[('JAIL', 'Jail source IP'), ('NGINX_BLOCK', 'Nginx block (HTTP error response)'), ('NGINX_DENY', 'Nginx deny (close connection)'), ('LOG_ONLY', 'Log only')], default='LOG_ONLY', max_length=20)),
                ('action_config', models.JSONField(blank=True, default=dict, help_text='Parameters for the selected action')),
                ('order', models.IntegerField(default=0, help_text='Chains are evaluated in ascending order')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Rule Chain',
                'verbose_name_plural': 'Rule Chains',
                'ordering': ['order', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='RuleCondition',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(choices=[('IP', 'Source IP / CIDR'), ('USER_AGENT', 'User agent'), ('METHOD', 'HTTP method'), ('PATH', 'Request path'), ('STATUS_CODE', 'Response status code'), ('REFERER', 'Referer'), ('DOMAIN', 'Domain')], max_length=20)),
                ('pattern', models.CharField(help_text='Regex pattern, or address / CIDR range for IP conditions', max_length=500)),
                ('negate', models.BooleanField(default=False)),
                ('description', models.CharField(blank=True, max_length=200)),
                ('position', models.PositiveIntegerField(default=0)),
                ('chain', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conditions', to='security_core.rulechain')),
            ],
            options={
                'verbose_name': 'Rule Condition',
                'verbose_name_plural': 'Rule Conditions',
                'ordering': ['position'],
            },
        ),
        migrations.CreateModel(
            name='SecurityEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('chain_name', models.CharField(blank=True, max_length=200)),
                ('action_taken', models.CharField(choices=[('JAIL', 'Jail source IP'), ('NGINX_BLOCK', 'Nginx block (HTTP error response)'), ('NGINX_DENY', 'Nginx deny (close connection)'), ('LOG_ONLY', 'Log only')], max_length=20)),
                ('matched_conditions', models.JSONField(blank=True, default=list)),
                ('source_ip', models.GenericIPAddressField()),
                ('user_agent', models.TextField(blank=True)),
                ('request_method', models.CharField(default='UNKNOWN', max_length=10)),
                ('request_path', models.CharField(max_length=2000)),
                ('status_code', models.IntegerField(default=0)),
                ('referer', models.TextField(blank=True)),
                ('domain', models.CharField(blank=True, max_length=255)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('chain', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='events', to='security_core.rulechain')),
            ],
            options={
                'verbose_name': 'Security Event',
                'verbose_name_plural': 'Security Events',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['source_ip', 'timestamp'], name='sec_event_ip_time_idx'),
                    models.Index(fields=['action_taken', 'timestamp'], name='sec_event_action_time_idx'),
                ],
            },
        ),
    ]
