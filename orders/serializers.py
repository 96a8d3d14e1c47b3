from django.db import transaction
from rest_framework import serializers

from orders.models import Division, InwardGatePass, OutwardGatePass, Party, POLineItem, PurchaseOrder


class DivisionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Division
        fields = ["id", "name", "code", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class PartySerializer(serializers.ModelSerializer):
    class Meta:
        model = Party
        fields = [
            "id",
            "name",
            "gstin",
            "phone",
            "email",
            "address",
            "type",
            "credit_limit",
            "receivable_balance",
            "payable_balance",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_gstin(self, value):
        if value:
            value = value.strip().upper()
            if len(value) != 15:
                raise serializers.ValidationError("GSTIN must be 15 characters.")
        return value


class POLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = POLineItem
        fields = [
            "id",
            "purchase_order",
            "part_number",
            "part_name",
            "work_order",
            "unit",
            "rate",
            "qty_ordered",
            "qty_received",
            "qty_dispatched",
        ]
        read_only_fields = ["id", "purchase_order", "qty_received", "qty_dispatched"]

    def validate_qty_ordered(self, value):
        if value <= 0:
            raise serializers.ValidationError("Ordered quantity must be greater than zero.")
        return value


class PurchaseOrderSerializer(serializers.ModelSerializer):
    line_items = POLineItemSerializer(many=True)
    division_name = serializers.CharField(source="division.name", read_only=True)
    party_name = serializers.CharField(source="party.name", read_only=True, default=None)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "po_number",
            "division",
            "division_name",
            "party",
            "party_name",
            "date",
            "delivery_date",
            "status",
            "remarks",
            "created_at",
            "updated_at",
            "line_items",
        ]
        read_only_fields = ["id", "status", "created_at", "updated_at"]

    def validate_line_items(self, value):
        if not value:
            raise serializers.ValidationError("A purchase order needs at least one line item.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        line_items = validated_data.pop("line_items", [])
        po = PurchaseOrder.objects.create(**validated_data)
        for line in line_items:
            POLineItem.objects.create(purchase_order=po, **line)
        return po

    def update(self, instance, validated_data):
        # Line quantities move only through gate passes and invoices.
        validated_data.pop("line_items", None)
        return super().update(instance, validated_data)


class GatePassInputSerializer(serializers.Serializer):
    gp_number = serializers.CharField(max_length=50)
    date = serializers.DateField()
    purchase_order_id = serializers.UUIDField()
    po_line_item_id = serializers.UUIDField()
    qty = serializers.DecimalField(max_digits=12, decimal_places=2)
    batch_number = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    vehicle_number = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    challan_number = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)


class OutwardGatePassInputSerializer(GatePassInputSerializer):
    dispatch_date = serializers.DateField(required=False, allow_null=True)


class InwardGatePassSerializer(serializers.ModelSerializer):
    part_number = serializers.CharField(source="po_line_item.part_number", read_only=True)

    class Meta:
        model = InwardGatePass
        fields = [
            "id",
            "gp_number",
            "date",
            "purchase_order",
            "po_line_item",
            "part_number",
            "qty",
            "batch_number",
            "vehicle_number",
            "challan_number",
            "created_at",
        ]
        read_only_fields = fields


class OutwardGatePassSerializer(serializers.ModelSerializer):
    part_number = serializers.CharField(source="po_line_item.part_number", read_only=True)

    class Meta:
        model = OutwardGatePass
        fields = [
            "id",
            "gp_number",
            "date",
            "purchase_order",
            "po_line_item",
            "part_number",
            "qty",
            "batch_number",
            "vehicle_number",
            "challan_number",
            "dispatch_date",
            "created_at",
        ]
        read_only_fields = fields


class DispatchedLineSerializer(serializers.Serializer):
    id = serializers.UUIDField(source="line_item.id")
    part_number = serializers.CharField(source="line_item.part_number")
    part_name = serializers.CharField(source="line_item.part_name")
    unit = serializers.CharField(source="line_item.unit")
    rate = serializers.DecimalField(source="line_item.rate", max_digits=14, decimal_places=2)
    qty_ordered = serializers.DecimalField(source="line_item.qty_ordered", max_digits=12, decimal_places=2)
    qty_dispatched = serializers.DecimalField(source="line_item.qty_dispatched", max_digits=12, decimal_places=2)
    invoiceable_qty = serializers.DecimalField(max_digits=12, decimal_places=2)


class POWithDispatchesSerializer(serializers.Serializer):
    id = serializers.UUIDField(source="purchase_order.id")
    po_number = serializers.CharField(source="purchase_order.po_number")
    date = serializers.DateField(source="purchase_order.date")
    status = serializers.CharField(source="purchase_order.status")
    division_name = serializers.CharField(source="purchase_order.division.name")
    party = serializers.UUIDField(source="purchase_order.party_id", allow_null=True)
    line_items = DispatchedLineSerializer(many=True)
