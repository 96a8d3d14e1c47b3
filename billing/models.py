import uuid

from django.conf import settings
from django.db import models

from orders.models import Party, POLineItem, PurchaseOrder


class Invoice(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        UNPAID = "UNPAID", "Unpaid"
        PARTIALLY_PAID = "PARTIALLY_PAID", "Partially Paid"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice_number = models.CharField(max_length=50, unique=True)
    date = models.DateField()
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name="invoices")
    party = models.ForeignKey(Party, on_delete=models.PROTECT, null=True, blank=True, related_name="invoices")
    inter_state = models.BooleanField(default=False)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)
    cgst = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    sgst = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    igst = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    remarks = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["party", "date"], name="invoice_party_date_idx"),
            models.Index(fields=["status", "date"], name="invoice_status_date_idx"),
        ]

    def __str__(self):
        return self.invoice_number


class InvoiceLineItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="line_items")
    po_line_item = models.ForeignKey(POLineItem, on_delete=models.PROTECT, related_name="invoice_lines")
    part_number = models.CharField(max_length=50)
    part_name = models.CharField(max_length=200)
    qty = models.DecimalField(max_digits=12, decimal_places=2)
    rate = models.DecimalField(max_digits=14, decimal_places=2)
    amount = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        indexes = [
            models.Index(fields=["po_line_item"], name="invoiceline_poline_idx"),
        ]


class Payment(models.Model):
    class Mode(models.TextChoices):
        NEFT = "NEFT", "NEFT"
        RTGS = "RTGS", "RTGS"
        CHEQUE = "CHEQUE", "Cheque"
        UPI = "UPI", "UPI"
        CASH = "CASH", "Cash"

    class Status(models.TextChoices):
        RECEIVED = "RECEIVED", "Received"
        PENDING = "PENDING", "Pending"
        BOUNCED = "BOUNCED", "Bounced"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    date = models.DateField()
    mode = models.CharField(max_length=10, choices=Mode.choices, null=True, blank=True)
    reference = models.CharField(max_length=100, null=True, blank=True)
    remarks = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.RECEIVED)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["invoice", "date"], name="payment_invoice_date_idx"),
        ]


class CreditNote(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ADJUSTED = "ADJUSTED", "Adjusted"
        CANCELLED = "CANCELLED", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    credit_note_number = models.CharField(max_length=50, unique=True)
    party = models.ForeignKey(Party, on_delete=models.PROTECT, related_name="credit_notes")
    date = models.DateField()
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    reason = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, null=True, blank=True, related_name="credit_notes")
    applied_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    adjusted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.credit_note_number


class CreditNoteItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    credit_note = models.ForeignKey(CreditNote, on_delete=models.CASCADE, related_name="items")
    item_name = models.CharField(max_length=200)
    hsn_code = models.CharField(max_length=20, null=True, blank=True)
    qty = models.DecimalField(max_digits=12, decimal_places=2)
    rate = models.DecimalField(max_digits=14, decimal_places=2)
    amount = models.DecimalField(max_digits=14, decimal_places=2)


class PurchaseInvoice(models.Model):
    class PaymentStatus(models.TextChoices):
        UNPAID = "UNPAID", "Unpaid"
        PARTIALLY_PAID = "PARTIALLY_PAID", "Partially Paid"
        PAID = "PAID", "Paid"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    party = models.ForeignKey(Party, on_delete=models.PROTECT, related_name="purchase_invoices")
    invoice_number = models.CharField(max_length=50)
    date = models.DateField()
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    payment_type = models.CharField(max_length=20, null=True, blank=True)
    description = models.TextField(blank=True, default="")
    po_number = models.CharField(max_length=100, null=True, blank=True)
    work_order = models.CharField(max_length=50, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["party", "invoice_number"], name="uniq_purchase_invoice_per_party"),
        ]
        indexes = [
            models.Index(fields=["party", "date"], name="purchaseinv_party_date_idx"),
        ]

    def __str__(self):
        return self.invoice_number
