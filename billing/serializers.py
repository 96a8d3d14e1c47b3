from rest_framework import serializers

from billing.models import CreditNote, CreditNoteItem, Invoice, InvoiceLineItem, Payment, PurchaseInvoice

MONEY = {"max_digits": 14, "decimal_places": 2}
QTY = {"max_digits": 12, "decimal_places": 2}


class InvoiceLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLineItem
        fields = ["id", "po_line_item", "part_number", "part_name", "qty", "rate", "amount"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source="invoice.invoice_number", read_only=True)

    class Meta:
        model = Payment
        fields = ["id", "invoice", "invoice_number", "amount", "date", "mode", "reference", "remarks", "status", "created_at"]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    line_items = InvoiceLineItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    po_number = serializers.CharField(source="purchase_order.po_number", read_only=True)
    party_name = serializers.CharField(source="party.name", read_only=True, default=None)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "date",
            "purchase_order",
            "po_number",
            "party",
            "party_name",
            "inter_state",
            "subtotal",
            "cgst",
            "sgst",
            "igst",
            "total_amount",
            "paid_amount",
            "balance_due",
            "status",
            "remarks",
            "created_at",
            "updated_at",
            "line_items",
            "payments",
        ]
        read_only_fields = fields


class InvoiceItemInputSerializer(serializers.Serializer):
    po_line_item_id = serializers.UUIDField()
    qty = serializers.DecimalField(**QTY)
    rate = serializers.DecimalField(**MONEY)


class InvoiceCreateSerializer(serializers.Serializer):
    purchase_order_id = serializers.UUIDField()
    date = serializers.DateField()
    remarks = serializers.CharField(required=False, allow_blank=True, default="")
    inter_state = serializers.BooleanField(required=False, default=False)
    items = InvoiceItemInputSerializer(many=True, allow_empty=False)


class PaymentCreateSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()
    amount = serializers.DecimalField(**MONEY)
    date = serializers.DateField()
    mode = serializers.ChoiceField(choices=Payment.Mode.choices, required=False, allow_null=True)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Invoice.Status.choices)


class BulkMarkPaidSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class CreditNoteItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = CreditNoteItem
        fields = ["id", "item_name", "hsn_code", "qty", "rate", "amount"]
        read_only_fields = fields


class CreditNoteSerializer(serializers.ModelSerializer):
    items = CreditNoteItemSerializer(many=True, read_only=True)
    party_name = serializers.CharField(source="party.name", read_only=True)
    invoice_number = serializers.CharField(source="invoice.invoice_number", read_only=True, default=None)

    class Meta:
        model = CreditNote
        fields = [
            "id",
            "credit_note_number",
            "party",
            "party_name",
            "date",
            "total_amount",
            "reason",
            "status",
            "invoice",
            "invoice_number",
            "applied_amount",
            "adjusted_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class CreditNoteItemInputSerializer(serializers.Serializer):
    item_name = serializers.CharField(max_length=200)
    hsn_code = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    qty = serializers.DecimalField(**QTY)
    rate = serializers.DecimalField(**MONEY)


class CreditNoteCreateSerializer(serializers.Serializer):
    party_id = serializers.UUIDField()
    date = serializers.DateField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    items = CreditNoteItemInputSerializer(many=True, allow_empty=False)


class CreditNoteAdjustSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()


class PurchaseInvoiceSerializer(serializers.ModelSerializer):
    party_name = serializers.CharField(source="party.name", read_only=True)

    class Meta:
        model = PurchaseInvoice
        fields = [
            "id",
            "party",
            "party_name",
            "invoice_number",
            "date",
            "total_amount",
            "paid_amount",
            "balance_due",
            "payment_status",
            "payment_type",
            "description",
            "po_number",
            "work_order",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PurchaseInvoiceCreateSerializer(serializers.Serializer):
    party_id = serializers.UUIDField()
    invoice_number = serializers.CharField(max_length=50)
    date = serializers.DateField()
    total_amount = serializers.DecimalField(**MONEY)
    payment_type = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    po_number = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    work_order = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)


class PurchaseInvoicePaidSerializer(serializers.Serializer):
    paid_amount = serializers.DecimalField(**MONEY)


class StatementEntrySerializer(serializers.Serializer):
    date = serializers.DateField()
    type = serializers.CharField()
    reference = serializers.CharField()
    description = serializers.CharField()
    debit = serializers.DecimalField(**MONEY)
    credit = serializers.DecimalField(**MONEY)
    balance = serializers.DecimalField(**MONEY)
    document_id = serializers.UUIDField()


class StatementPartySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    name = serializers.CharField()
    gstin = serializers.CharField(allow_null=True)
    type = serializers.CharField()


class PartyStatementSerializer(serializers.Serializer):
    party = StatementPartySerializer()
    opening_balance = serializers.DecimalField(**MONEY)
    closing_balance = serializers.DecimalField(**MONEY)
    entries = StatementEntrySerializer(many=True)


class AgingRowSerializer(serializers.Serializer):
    party_id = serializers.UUIDField(allow_null=True)
    party_name = serializers.CharField()
    current = serializers.DecimalField(**MONEY)
    days31_60 = serializers.DecimalField(**MONEY)
    days61_90 = serializers.DecimalField(**MONEY)
    days90_plus = serializers.DecimalField(**MONEY)
    total = serializers.DecimalField(**MONEY)


class OutstandingInvoiceSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    invoice_number = serializers.CharField()
    date = serializers.DateField()
    po_number = serializers.CharField()
    division = serializers.CharField()
    party_name = serializers.CharField()
    total_amount = serializers.DecimalField(**MONEY)
    paid_amount = serializers.DecimalField(**MONEY)
    outstanding_amount = serializers.DecimalField(**MONEY)
    days_overdue = serializers.IntegerField()
