import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    class Role(models.TextChoices):
        CLERK = "clerk", "Clerk"
        ACCOUNTANT = "accountant", "Accountant"
        ADMIN = "admin", "Admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    role = models.CharField(max_length=32, choices=Role.choices, default=Role.CLERK)

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)


class AuditLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    entity = models.CharField(max_length=64)
    action = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64, null=True, blank=True)
    changes = models.JSONField(null=True, blank=True)
    request_id = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["entity", "created_at"], name="auditlog_entity_created_idx"),
            models.Index(fields=["entity_id"], name="auditlog_entity_id_idx"),
        ]
