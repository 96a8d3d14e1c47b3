import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("invoice_number", models.CharField(max_length=50, unique=True)),
                ("date", models.DateField()),
                ("inter_state", models.BooleanField(default=False)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=14)),
                ("cgst", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("sgst", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("igst", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("balance_due", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("SENT", "Sent"),
                            ("UNPAID", "Unpaid"),
                            ("PARTIALLY_PAID", "Partially Paid"),
                            ("PAID", "Paid"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="DRAFT",
                        max_length=20,
                    ),
                ),
                ("remarks", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "party",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                        to="orders.party",
                    ),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="orders.purchaseorder"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["party", "date"], name="invoice_party_date_idx"),
                    models.Index(fields=["status", "date"], name="invoice_status_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceLineItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("part_number", models.CharField(max_length=50)),
                ("part_name", models.CharField(max_length=200)),
                ("qty", models.DecimalField(decimal_places=2, max_digits=12)),
                ("rate", models.DecimalField(decimal_places=2, max_digits=14)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="line_items", to="billing.invoice"
                    ),
                ),
                (
                    "po_line_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="invoice_lines", to="orders.polineitem"
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["po_line_item"], name="invoiceline_poline_idx")],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("date", models.DateField()),
                (
                    "mode",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("NEFT", "NEFT"),
                            ("RTGS", "RTGS"),
                            ("CHEQUE", "Cheque"),
                            ("UPI", "UPI"),
                            ("CASH", "Cash"),
                        ],
                        max_length=10,
                        null=True,
                    ),
                ),
                ("reference", models.CharField(blank=True, max_length=100, null=True)),
                ("remarks", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[("RECEIVED", "Received"), ("PENDING", "Pending"), ("BOUNCED", "Bounced")],
                        default="RECEIVED",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="billing.invoice"
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["invoice", "date"], name="payment_invoice_date_idx")],
            },
        ),
        migrations.CreateModel(
            name="CreditNote",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("credit_note_number", models.CharField(max_length=50, unique=True)),
                ("date", models.DateField()),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("reason", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("ADJUSTED", "Adjusted"), ("CANCELLED", "Cancelled")],
                        default="PENDING",
                        max_length=10,
                    ),
                ),
                ("applied_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("adjusted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_notes",
                        to="billing.invoice",
                    ),
                ),
                (
                    "party",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="credit_notes", to="orders.party"
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="CreditNoteItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_name", models.CharField(max_length=200)),
                ("hsn_code", models.CharField(blank=True, max_length=20, null=True)),
                ("qty", models.DecimalField(decimal_places=2, max_digits=12)),
                ("rate", models.DecimalField(decimal_places=2, max_digits=14)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "credit_note",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="billing.creditnote"
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="PurchaseInvoice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("invoice_number", models.CharField(max_length=50)),
                ("date", models.DateField()),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("balance_due", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("UNPAID", "Unpaid"), ("PARTIALLY_PAID", "Partially Paid"), ("PAID", "Paid")],
                        default="UNPAID",
                        max_length=20,
                    ),
                ),
                ("payment_type", models.CharField(blank=True, max_length=20, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("po_number", models.CharField(blank=True, max_length=100, null=True)),
                ("work_order", models.CharField(blank=True, max_length=50, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "party",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="purchase_invoices", to="orders.party"
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["party", "date"], name="purchaseinv_party_date_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("party", "invoice_number"), name="uniq_purchase_invoice_per_party"),
                ],
            },
        ),
    ]
