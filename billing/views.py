from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from billing.models import CreditNote, Invoice, Payment, PurchaseInvoice
from billing.serializers import (
    BulkMarkPaidSerializer,
    CreditNoteAdjustSerializer,
    CreditNoteCreateSerializer,
    CreditNoteSerializer,
    InvoiceCreateSerializer,
    InvoiceSerializer,
    InvoiceStatusSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    PurchaseInvoiceCreateSerializer,
    PurchaseInvoicePaidSerializer,
    PurchaseInvoiceSerializer,
)
from billing.services import (
    adjust_credit_note_against_invoice,
    bulk_mark_as_paid,
    cancel_credit_note,
    create_credit_note,
    create_invoice,
    create_purchase_invoice,
    mark_purchase_invoice_paid,
    record_payment,
    update_payment_status,
)
from common.audit import audit_context_from_request
from common.exceptions import operation_response
from common.permissions import RoleCapabilityPermission


class DocumentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Read access plus service-backed writes; every write answers with an operation result."""

    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    lookup_value_regex = "[0-9a-f-]{36}"
    date_field = "date"
    filter_params = {}

    def get_queryset(self):
        qs = super().get_queryset()
        for param, lookup in self.filter_params.items():
            value = self.request.query_params.get(param)
            if value:
                qs = qs.filter(**{lookup: value})
        date_from = parse_date(self.request.query_params.get("date_from", ""))
        date_to = parse_date(self.request.query_params.get("date_to", ""))
        if date_from:
            qs = qs.filter(**{f"{self.date_field}__gte": date_from})
        if date_to:
            qs = qs.filter(**{f"{self.date_field}__lte": date_to})
        return qs

    def _validated(self, serializer_class):
        serializer = serializer_class(data=self.request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def _context(self):
        return audit_context_from_request(self.request)


class InvoiceViewSet(DocumentViewSet):
    queryset = Invoice.objects.select_related("purchase_order", "party").prefetch_related("line_items", "payments").order_by("-date", "-invoice_number")
    serializer_class = InvoiceSerializer
    permission_action_map = {
        "list": "billing.view",
        "retrieve": "billing.view",
        "create": "billing.invoice.create",
        "set_status": "billing.invoice.status",
        "bulk_mark_paid": "billing.payment.bulk",
    }
    filter_params = {"status": "status", "party": "party_id", "purchase_order": "purchase_order_id"}

    def create(self, request, *args, **kwargs):
        data = self._validated(InvoiceCreateSerializer)
        return operation_response(create_invoice(data, **self._context()), success_status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        data = self._validated(InvoiceStatusSerializer)
        return operation_response(update_payment_status(pk, data["status"], **self._context()))

    @action(detail=False, methods=["post"], url_path="bulk-mark-paid")
    def bulk_mark_paid(self, request):
        data = self._validated(BulkMarkPaidSerializer)
        return operation_response(bulk_mark_as_paid(data["ids"], **self._context()))


class PaymentViewSet(DocumentViewSet):
    queryset = Payment.objects.select_related("invoice").order_by("-date", "-created_at")
    serializer_class = PaymentSerializer
    permission_action_map = {"list": "billing.view", "retrieve": "billing.view", "create": "billing.payment.record"}
    filter_params = {"invoice": "invoice_id", "party": "invoice__party_id", "mode": "mode"}

    def create(self, request, *args, **kwargs):
        data = self._validated(PaymentCreateSerializer)
        return operation_response(record_payment(data, **self._context()), success_status=status.HTTP_201_CREATED)


class CreditNoteViewSet(DocumentViewSet):
    queryset = CreditNote.objects.select_related("party", "invoice").prefetch_related("items").order_by("-date", "-credit_note_number")
    serializer_class = CreditNoteSerializer
    permission_action_map = {
        "list": "billing.view",
        "retrieve": "billing.view",
        "create": "billing.credit_note.manage",
        "adjust": "billing.credit_note.manage",
        "cancel": "billing.credit_note.manage",
    }
    filter_params = {"status": "status", "party": "party_id"}

    def create(self, request, *args, **kwargs):
        data = self._validated(CreditNoteCreateSerializer)
        return operation_response(create_credit_note(data, **self._context()), success_status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="adjust")
    def adjust(self, request, pk=None):
        data = self._validated(CreditNoteAdjustSerializer)
        return operation_response(adjust_credit_note_against_invoice(pk, data["invoice_id"], **self._context()))

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        return operation_response(cancel_credit_note(pk, **self._context()))


class PurchaseInvoiceViewSet(DocumentViewSet):
    queryset = PurchaseInvoice.objects.select_related("party").order_by("-date", "invoice_number")
    serializer_class = PurchaseInvoiceSerializer
    permission_action_map = {
        "list": "billing.view",
        "retrieve": "billing.view",
        "create": "billing.purchase.manage",
        "mark_paid": "billing.purchase.manage",
    }
    filter_params = {"payment_status": "payment_status", "party": "party_id"}

    def create(self, request, *args, **kwargs):
        data = self._validated(PurchaseInvoiceCreateSerializer)
        return operation_response(create_purchase_invoice(data, **self._context()), success_status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):
        data = self._validated(PurchaseInvoicePaidSerializer)
        return operation_response(mark_purchase_invoice_paid(pk, data["paid_amount"], **self._context()))
