import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='JailedIP',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('ip_address', models.GenericIPAddressField(unique=True)),
                ('reason', models.CharField(max_length=300)),
                ('source', models.CharField(choices=[('rule_chain', 'Rule chain'), ('error_threshold', 'Error response threshold'), ('manual', 'Manual')], default='manual', max_length=20)),
                ('duration_minutes', models.PositiveIntegerField()),
                ('expires_at', models.DateTimeField()),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('released_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'verbose_name': 'Jailed IP',
                'verbose_name_plural': 'Jailed IPs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['is_active', 'expires_at'], name='jail_active_expiry_idx'),
                ],
            },
        ),
    ]
