from django.contrib.auth import get_user_model
from rest_framework import serializers

from core.models import AuditLog

User = get_user_model()


class CurrentUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "email", "first_name", "last_name", "role", "is_staff"]
        read_only_fields = fields


class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_username",
            "entity",
            "action",
            "entity_id",
            "changes",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields
