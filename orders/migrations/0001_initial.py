import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Division",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("code", models.CharField(max_length=10, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Party",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("gstin", models.CharField(blank=True, max_length=15, null=True)),
                ("phone", models.CharField(blank=True, max_length=20, null=True)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("address", models.TextField(blank=True, null=True)),
                (
                    "type",
                    models.CharField(
                        choices=[("CUSTOMER", "Customer"), ("SUPPLIER", "Supplier"), ("BOTH", "Both")],
                        default="CUSTOMER",
                        max_length=16,
                    ),
                ),
                ("credit_limit", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("receivable_balance", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("payable_balance", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"verbose_name_plural": "parties"},
        ),
        migrations.CreateModel(
            name="PurchaseOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("po_number", models.CharField(max_length=100, unique=True)),
                ("date", models.DateField()),
                ("delivery_date", models.DateField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("OPEN", "Open"),
                            ("PARTIALLY_FULFILLED", "Partially Fulfilled"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="OPEN",
                        max_length=24,
                    ),
                ),
                ("remarks", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "division",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="purchase_orders", to="orders.division"
                    ),
                ),
                (
                    "party",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchase_orders",
                        to="orders.party",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["status", "date"], name="po_status_date_idx")],
            },
        ),
        migrations.CreateModel(
            name="POLineItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("part_number", models.CharField(max_length=50)),
                ("part_name", models.CharField(max_length=200)),
                ("work_order", models.CharField(blank=True, max_length=50, null=True)),
                (
                    "unit",
                    models.CharField(
                        choices=[("NOS", "Nos"), ("KG", "Kg"), ("MTR", "Metre"), ("SET", "Set"), ("LOT", "Lot")],
                        default="NOS",
                        max_length=8,
                    ),
                ),
                ("rate", models.DecimalField(decimal_places=2, max_digits=14)),
                ("qty_ordered", models.DecimalField(decimal_places=2, max_digits=12)),
                ("qty_received", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("qty_dispatched", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="line_items", to="orders.purchaseorder"
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty_dispatched__gte", 0), ("qty_dispatched__lte", models.F("qty_received"))),
                        name="poline_dispatched_within_received",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("qty_received__lte", models.F("qty_ordered"))),
                        name="poline_received_within_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InwardGatePass",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gp_number", models.CharField(max_length=50, unique=True)),
                ("date", models.DateField()),
                ("qty", models.DecimalField(decimal_places=2, max_digits=12)),
                ("batch_number", models.CharField(blank=True, max_length=50, null=True)),
                ("vehicle_number", models.CharField(blank=True, max_length=20, null=True)),
                ("challan_number", models.CharField(blank=True, max_length=50, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "po_line_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="inward_gate_passes", to="orders.polineitem"
                    ),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="inward_gate_passes", to="orders.purchaseorder"
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="OutwardGatePass",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gp_number", models.CharField(max_length=50, unique=True)),
                ("date", models.DateField()),
                ("qty", models.DecimalField(decimal_places=2, max_digits=12)),
                ("batch_number", models.CharField(blank=True, max_length=50, null=True)),
                ("vehicle_number", models.CharField(blank=True, max_length=20, null=True)),
                ("challan_number", models.CharField(blank=True, max_length=50, null=True)),
                ("dispatch_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "po_line_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="outward_gate_passes", to="orders.polineitem"
                    ),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="outward_gate_passes", to="orders.purchaseorder"
                    ),
                ),
            ],
        ),
    ]
