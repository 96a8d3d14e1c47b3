from django.utils.dateparse import parse_datetime
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import RoleCapabilityPermission
from core.models import AuditLog
from core.serializers import AuditLogSerializer, CurrentUserSerializer


class CurrentUserView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "audit.view", "retrieve": "audit.view"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")

        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")
        entity = self.request.query_params.get("entity")
        entity_id = self.request.query_params.get("entity_id")
        action = self.request.query_params.get("action")

        if start_date:
            dt = parse_datetime(start_date)
            if dt:
                qs = qs.filter(created_at__gte=dt)
        if end_date:
            dt = parse_datetime(end_date)
            if dt:
                qs = qs.filter(created_at__lte=dt)
        if entity:
            qs = qs.filter(entity=entity)
        if entity_id:
            qs = qs.filter(entity_id=entity_id)
        if action:
            qs = qs.filter(action=action)

        return qs
