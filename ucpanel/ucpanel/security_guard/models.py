from django.db import models
from django.utils import timezone
import uuid


class JailedIP(models.Model):
    """
    Temporary IP ban. A jail is in force while it is active and not expired;
    expired rows are deactivated by JailManager.release_expired().
    """
    SOURCE_CHOICES = [
        ('rule_chain', 'Rule chain'),
        ('error_threshold', 'Error response threshold'),
        ('manual', 'Manual'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ip_address = models.GenericIPAddressField(unique=True)
    reason = models.CharField(max_length=300)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='manual')

    duration_minutes = models.PositiveIntegerField()
    expires_at = models.DateTimeField()

    # Status
    is_active = models.BooleanField(default=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'expires_at'], name='jail_active_expiry_idx'),
        ]
        verbose_name = "Jailed IP"
        verbose_name_plural = "Jailed IPs"

    def __str__(self):
        return f"{self.ip_address} until {self.expires_at:%Y-%m-%d %H:%M}"

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()

    @property
    def in_force(self):
        return self.is_active and not self.is_expired
