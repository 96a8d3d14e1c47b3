import logging
from decimal import Decimal

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

logger = logging.getLogger(__name__)

QTY_ZERO = Decimal("0")


class QuantityIntegrityError(Exception):
    """Invoiced quantity on a PO line has overtaken what was dispatched."""


def invoiced_qty_expression():
    return Coalesce(
        Sum("invoice_lines__qty"),
        Value(QTY_ZERO),
        output_field=DecimalField(max_digits=12, decimal_places=2),
    )


def invoiced_qty(line_item):
    if hasattr(line_item, "invoiced_qty"):
        return Decimal(line_item.invoiced_qty or 0)
    return line_item.invoice_lines.aggregate(total=Sum("qty"))["total"] or QTY_ZERO


def invoiceable_qty(line_item):
    """Dispatched quantity not yet covered by an invoice line.

    Always computed from live rows; annotate `invoiced_qty` on a queryset
    (see `invoiced_qty_expression`) to avoid one query per line.
    """
    balance = Decimal(line_item.qty_dispatched or 0) - invoiced_qty(line_item)
    if balance < 0:
        logger.error(
            "Invoiced quantity exceeds dispatch",
            extra={"purchase_order_id": str(line_item.purchase_order_id), "po_line_item_id": str(line_item.id)},
        )
        raise QuantityIntegrityError(
            f"Line item {line_item.part_number} has {-balance} more invoiced than dispatched."
        )
    return balance


def dispatch_balance(line_item):
    return Decimal(line_item.qty_received or 0) - Decimal(line_item.qty_dispatched or 0)


def receive_balance(line_item):
    return Decimal(line_item.qty_ordered or 0) - Decimal(line_item.qty_received or 0)
