import uuid

from django.db import models


class Division(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=10, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Party(models.Model):
    class Type(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        SUPPLIER = "SUPPLIER", "Supplier"
        BOTH = "BOTH", "Both"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    gstin = models.CharField(max_length=15, null=True, blank=True)
    phone = models.CharField(max_length=20, null=True, blank=True)
    email = models.EmailField(null=True, blank=True)
    address = models.TextField(null=True, blank=True)
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.CUSTOMER)
    credit_limit = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    # Opening balances maintained outside this system; read-only here.
    receivable_balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    payable_balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "parties"

    def __str__(self):
        return self.name


class PurchaseOrder(models.Model):
    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        PARTIALLY_FULFILLED = "PARTIALLY_FULFILLED", "Partially Fulfilled"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    po_number = models.CharField(max_length=100, unique=True)
    division = models.ForeignKey(Division, on_delete=models.PROTECT, related_name="purchase_orders")
    party = models.ForeignKey(Party, on_delete=models.PROTECT, null=True, blank=True, related_name="purchase_orders")
    date = models.DateField()
    delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.OPEN)
    remarks = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "date"], name="po_status_date_idx"),
        ]

    def __str__(self):
        return self.po_number


class POLineItem(models.Model):
    class Unit(models.TextChoices):
        NOS = "NOS", "Nos"
        KG = "KG", "Kg"
        MTR = "MTR", "Metre"
        SET = "SET", "Set"
        LOT = "LOT", "Lot"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="line_items")
    part_number = models.CharField(max_length=50)
    part_name = models.CharField(max_length=200)
    work_order = models.CharField(max_length=50, null=True, blank=True)
    unit = models.CharField(max_length=8, choices=Unit.choices, default=Unit.NOS)
    rate = models.DecimalField(max_digits=14, decimal_places=2)
    qty_ordered = models.DecimalField(max_digits=12, decimal_places=2)
    qty_received = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    qty_dispatched = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(qty_dispatched__gte=0) & models.Q(qty_dispatched__lte=models.F("qty_received")),
                name="poline_dispatched_within_received",
            ),
            models.CheckConstraint(
                condition=models.Q(qty_received__lte=models.F("qty_ordered")),
                name="poline_received_within_ordered",
            ),
        ]

    def __str__(self):
        return f"{self.part_number} ({self.purchase_order_id})"


class InwardGatePass(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gp_number = models.CharField(max_length=50, unique=True)
    date = models.DateField()
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name="inward_gate_passes")
    po_line_item = models.ForeignKey(POLineItem, on_delete=models.PROTECT, related_name="inward_gate_passes")
    qty = models.DecimalField(max_digits=12, decimal_places=2)
    batch_number = models.CharField(max_length=50, null=True, blank=True)
    vehicle_number = models.CharField(max_length=20, null=True, blank=True)
    challan_number = models.CharField(max_length=50, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class OutwardGatePass(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gp_number = models.CharField(max_length=50, unique=True)
    date = models.DateField()
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name="outward_gate_passes")
    po_line_item = models.ForeignKey(POLineItem, on_delete=models.PROTECT, related_name="outward_gate_passes")
    qty = models.DecimalField(max_digits=12, decimal_places=2)
    batch_number = models.CharField(max_length=50, null=True, blank=True)
    vehicle_number = models.CharField(max_length=20, null=True, blank=True)
    challan_number = models.CharField(max_length=50, null=True, blank=True)
    dispatch_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
