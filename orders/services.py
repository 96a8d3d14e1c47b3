import logging
from decimal import Decimal

from django.db import transaction

from common.audit import create_audit_log
from common.exceptions import OperationResult, RecordNotFound, ServiceError, StateConflict, service_operation
from orders.models import InwardGatePass, OutwardGatePass, POLineItem, PurchaseOrder
from orders.quantities import (
    QuantityIntegrityError,
    dispatch_balance,
    invoiceable_qty,
    invoiced_qty_expression,
    receive_balance,
)

logger = logging.getLogger(__name__)


def _lock_line_item(purchase_order_id, line_item_id):
    try:
        po = PurchaseOrder.objects.select_for_update().get(id=purchase_order_id)
    except PurchaseOrder.DoesNotExist as exc:
        raise RecordNotFound("Purchase order not found") from exc
    if po.status == PurchaseOrder.Status.CANCELLED:
        raise StateConflict(f"Purchase order {po.po_number} is cancelled")
    try:
        line_item = POLineItem.objects.select_for_update().get(id=line_item_id, purchase_order=po)
    except POLineItem.DoesNotExist as exc:
        raise RecordNotFound("Line item not found on this purchase order") from exc
    return po, line_item


def _positive_qty(qty):
    qty = Decimal(str(qty))
    if qty <= 0:
        raise ServiceError("Quantity must be greater than zero")
    return qty


def derive_po_status(po):
    """OPEN until anything moves, COMPLETED once every line is fully dispatched."""
    if po.status == PurchaseOrder.Status.CANCELLED:
        return po.status
    lines = list(po.line_items.all())
    if lines and all(line.qty_dispatched >= line.qty_ordered for line in lines):
        return PurchaseOrder.Status.COMPLETED
    if any(line.qty_received > 0 or line.qty_dispatched > 0 for line in lines):
        return PurchaseOrder.Status.PARTIALLY_FULFILLED
    return PurchaseOrder.Status.OPEN


def _refresh_po_status(po):
    new_status = derive_po_status(po)
    if new_status != po.status:
        po.status = new_status
        po.save(update_fields=["status", "updated_at"])


@service_operation(failure_message="Failed to record inward gate pass", conflict_message="Gate pass number already exists")
def record_inward_gate_pass(data, *, actor=None, request_id=None):
    qty = _positive_qty(data["qty"])
    with transaction.atomic():
        po, line_item = _lock_line_item(data["purchase_order_id"], data["po_line_item_id"])
        available = receive_balance(line_item)
        if qty > available:
            raise ServiceError(f"Quantity exceeds pending receipt for {line_item.part_number} (pending: {available})")

        gate_pass = InwardGatePass.objects.create(
            gp_number=data["gp_number"],
            date=data["date"],
            purchase_order=po,
            po_line_item=line_item,
            qty=qty,
            batch_number=data.get("batch_number"),
            vehicle_number=data.get("vehicle_number"),
            challan_number=data.get("challan_number"),
        )
        line_item.qty_received += qty
        line_item.save(update_fields=["qty_received"])
        _refresh_po_status(po)
        create_audit_log(
            entity="InwardGatePass",
            action="CREATE",
            entity_id=gate_pass.id,
            changes={"gp_number": gate_pass.gp_number, "po_line_item_id": line_item.id, "qty": qty},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Inward gate pass recorded", extra={"purchase_order_id": str(po.id), "po_line_item_id": str(line_item.id)})
    return OperationResult.ok(id=gate_pass.id)


@service_operation(failure_message="Failed to record outward gate pass", conflict_message="Gate pass number already exists")
def record_outward_gate_pass(data, *, actor=None, request_id=None):
    qty = _positive_qty(data["qty"])
    with transaction.atomic():
        po, line_item = _lock_line_item(data["purchase_order_id"], data["po_line_item_id"])
        available = dispatch_balance(line_item)
        if qty > available:
            raise ServiceError(f"Quantity exceeds stock available to dispatch for {line_item.part_number} (available: {available})")

        gate_pass = OutwardGatePass.objects.create(
            gp_number=data["gp_number"],
            date=data["date"],
            purchase_order=po,
            po_line_item=line_item,
            qty=qty,
            batch_number=data.get("batch_number"),
            vehicle_number=data.get("vehicle_number"),
            challan_number=data.get("challan_number"),
            dispatch_date=data.get("dispatch_date") or data["date"],
        )
        line_item.qty_dispatched += qty
        line_item.save(update_fields=["qty_dispatched"])
        _refresh_po_status(po)
        create_audit_log(
            entity="OutwardGatePass",
            action="CREATE",
            entity_id=gate_pass.id,
            changes={"gp_number": gate_pass.gp_number, "po_line_item_id": line_item.id, "qty": qty},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Outward gate pass recorded", extra={"purchase_order_id": str(po.id), "po_line_item_id": str(line_item.id)})
    return OperationResult.ok(id=gate_pass.id)


def get_pos_with_dispatches():
    """Open purchase orders with at least one dispatched line still left to invoice."""
    purchase_orders = (
        PurchaseOrder.objects.exclude(status=PurchaseOrder.Status.CANCELLED)
        .filter(line_items__qty_dispatched__gt=0)
        .select_related("division", "party")
        .distinct()
        .order_by("-date", "po_number")
    )

    results = []
    for po in purchase_orders:
        lines = (
            po.line_items.filter(qty_dispatched__gt=0)
            .annotate(invoiced_qty=invoiced_qty_expression())
            .order_by("created_at")
        )
        line_items = []
        for line in lines:
            try:
                available = invoiceable_qty(line)
            except QuantityIntegrityError:
                logger.warning(
                    "Skipping over-invoiced line in dispatch listing",
                    extra={"purchase_order_id": str(po.id), "po_line_item_id": str(line.id)},
                )
                continue
            if available > 0:
                line_items.append({"line_item": line, "invoiceable_qty": available})
        if line_items:
            results.append({"purchase_order": po, "line_items": line_items})
    return results
