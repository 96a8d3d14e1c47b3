from django.db.models import ProtectedError
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import audit_context_from_request, create_audit_log
from common.exceptions import OperationResult, operation_response
from common.permissions import RoleCapabilityPermission
from orders.models import Division, InwardGatePass, OutwardGatePass, Party, PurchaseOrder
from orders.serializers import (
    DivisionSerializer,
    GatePassInputSerializer,
    InwardGatePassSerializer,
    OutwardGatePassInputSerializer,
    OutwardGatePassSerializer,
    PartySerializer,
    POWithDispatchesSerializer,
    PurchaseOrderSerializer,
)
from orders.services import get_pos_with_dispatches, record_inward_gate_pass, record_outward_gate_pass

MANAGE_ACTIONS = ("create", "update", "partial_update", "destroy")


def _action_map(view_capability, manage_capability, extra=None):
    mapping = {"list": view_capability, "retrieve": view_capability}
    mapping.update({name: manage_capability for name in MANAGE_ACTIONS})
    mapping.update(extra or {})
    return mapping


class AuditedModelViewSet(viewsets.ModelViewSet):
    audit_entity = None

    def _audit(self, action, entity_id, changes=None):
        create_audit_log(
            entity=self.audit_entity,
            action=action,
            entity_id=entity_id,
            changes=changes,
            **audit_context_from_request(self.request),
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit("CREATE", instance.id, self.get_serializer(instance).data)

    def perform_update(self, serializer):
        instance = serializer.save()
        self._audit("UPDATE", instance.id, self.get_serializer(instance).data)

    def perform_destroy(self, instance):
        entity_id = instance.id
        try:
            instance.delete()
        except ProtectedError as exc:
            raise ValidationError("Record is referenced by other documents and cannot be deleted.") from exc
        self._audit("DELETE", entity_id)


class DivisionViewSet(AuditedModelViewSet):
    queryset = Division.objects.order_by("name")
    serializer_class = DivisionSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = _action_map("orders.view", "orders.manage")
    audit_entity = "Division"


class PartyViewSet(AuditedModelViewSet):
    queryset = Party.objects.order_by("name")
    serializer_class = PartySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = _action_map("orders.view", "orders.manage")
    audit_entity = "Party"

    def get_queryset(self):
        qs = super().get_queryset()
        party_type = self.request.query_params.get("type")
        if party_type:
            qs = qs.filter(type__in=[party_type, Party.Type.BOTH])
        return qs


class PurchaseOrderViewSet(AuditedModelViewSet):
    queryset = PurchaseOrder.objects.select_related("division", "party").prefetch_related("line_items")
    serializer_class = PurchaseOrderSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = _action_map(
        "orders.view",
        "orders.manage",
        {"with_dispatches": "billing.view", "cancel": "orders.manage"},
    )
    audit_entity = "PurchaseOrder"

    def get_queryset(self):
        qs = super().get_queryset().order_by("-date", "po_number")
        status_filter = self.request.query_params.get("status")
        division = self.request.query_params.get("division")
        if status_filter:
            qs = qs.filter(status=status_filter)
        if division:
            qs = qs.filter(division_id=division)
        return qs

    @action(detail=False, methods=["get"], url_path="with-dispatches")
    def with_dispatches(self, request):
        return Response(POWithDispatchesSerializer(get_pos_with_dispatches(), many=True).data)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        po = self.get_object()
        if po.status == PurchaseOrder.Status.COMPLETED:
            return operation_response(OperationResult.failed("Completed purchase orders cannot be cancelled", code="conflict"))
        po.status = PurchaseOrder.Status.CANCELLED
        po.save(update_fields=["status", "updated_at"])
        self._audit("CANCEL", po.id)
        return Response(self.get_serializer(po).data)


class GatePassViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "orders.view", "retrieve": "orders.view", "create": "orders.gate_pass.record"}
    input_serializer_class = None
    record_operation = None

    def get_queryset(self):
        qs = self.queryset.select_related("po_line_item").order_by("-date", "-created_at")
        purchase_order = self.request.query_params.get("purchase_order")
        if purchase_order:
            qs = qs.filter(purchase_order_id=purchase_order)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = self.input_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.record_operation(serializer.validated_data, **audit_context_from_request(request))
        return operation_response(result, success_status=status.HTTP_201_CREATED)


class InwardGatePassViewSet(GatePassViewSet):
    queryset = InwardGatePass.objects.all()
    serializer_class = InwardGatePassSerializer
    input_serializer_class = GatePassInputSerializer
    record_operation = staticmethod(record_inward_gate_pass)


class OutwardGatePassViewSet(GatePassViewSet):
    queryset = OutwardGatePass.objects.all()
    serializer_class = OutwardGatePassSerializer
    input_serializer_class = OutwardGatePassInputSerializer
    record_operation = staticmethod(record_outward_gate_pass)
