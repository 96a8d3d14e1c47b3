import logging
from collections import OrderedDict
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from billing.models import CreditNote, CreditNoteItem, Invoice, InvoiceLineItem, Payment, PurchaseInvoice
from billing.numbering import allocate_document_number, credit_note_prefix, invoice_prefix
from common.audit import create_audit_log
from common.exceptions import OperationResult, RecordNotFound, ServiceError, StateConflict, service_operation
from common.money import ZERO, to_decimal, to_money
from orders.models import Party, POLineItem, PurchaseOrder
from orders.quantities import invoiceable_qty

logger = logging.getLogger(__name__)

INVOICE_NUMBER_CONFLICT = "Invoice number already exists"
CREDIT_NOTE_NUMBER_CONFLICT = "Credit note number already exists"


def _get_locked(model, pk, label):
    try:
        return model.objects.select_for_update().get(pk=pk)
    except model.DoesNotExist as exc:
        raise RecordNotFound(f"{label} not found") from exc


def compute_gst(subtotal, *, inter_state=False):
    """Return rounded (subtotal, cgst, sgst, igst, total) for an unrounded subtotal."""
    subtotal = to_decimal(subtotal)
    if inter_state:
        cgst = sgst = ZERO
        igst = to_money(subtotal * settings.BILLING_IGST_RATE)
    else:
        cgst = to_money(subtotal * settings.BILLING_CGST_RATE)
        sgst = to_money(subtotal * settings.BILLING_SGST_RATE)
        igst = ZERO
    subtotal = to_money(subtotal)
    return subtotal, cgst, sgst, igst, subtotal + cgst + sgst + igst


def settled_amount(invoice):
    """Received payments plus credit applied by adjusted credit notes."""
    received = invoice.payments.filter(status=Payment.Status.RECEIVED).aggregate(total=Sum("amount"))["total"] or ZERO
    credited = (
        invoice.credit_notes.filter(status=CreditNote.Status.ADJUSTED).aggregate(total=Sum("applied_amount"))["total"]
        or ZERO
    )
    return received + credited


def _resolve_invoice_items(po, items):
    if not items:
        raise ServiceError("At least one line item is required")

    requested = OrderedDict()
    for item in items:
        qty = to_decimal(item["qty"])
        rate = to_decimal(item["rate"])
        if qty <= 0:
            raise ServiceError("Quantity must be greater than zero")
        if rate < 0:
            raise ServiceError("Rate cannot be negative")
        requested.setdefault(str(item["po_line_item_id"]), []).append((qty, rate))

    line_items = {
        str(line.id): line
        for line in POLineItem.objects.select_for_update().filter(purchase_order=po, id__in=list(requested))
    }

    resolved = []
    for line_id, entries in requested.items():
        line = line_items.get(line_id)
        if line is None:
            raise ServiceError(f"Line item {line_id} does not belong to purchase order {po.po_number}")
        available = invoiceable_qty(line)
        asked = sum((qty for qty, _ in entries), Decimal("0"))
        if asked > available:
            raise ServiceError(
                f"Quantity exceeds invoiceable balance for {line.part_number} (available: {available})"
            )
        resolved.extend((line, qty, rate) for qty, rate in entries)
    return resolved


@service_operation(failure_message="Failed to create invoice", conflict_message=INVOICE_NUMBER_CONFLICT)
def create_invoice(data, *, actor=None, request_id=None):
    inter_state = bool(data.get("inter_state", False))

    with transaction.atomic():
        try:
            po = PurchaseOrder.objects.select_for_update().get(id=data["purchase_order_id"])
        except PurchaseOrder.DoesNotExist as exc:
            raise RecordNotFound("Purchase order not found") from exc
        if po.status == PurchaseOrder.Status.CANCELLED:
            raise StateConflict(f"Purchase order {po.po_number} is cancelled")

        resolved = _resolve_invoice_items(po, data.get("items") or [])
        raw_subtotal = sum((qty * rate for _, qty, rate in resolved), Decimal("0"))
        subtotal, cgst, sgst, igst, total = compute_gst(raw_subtotal, inter_state=inter_state)

        def build(number):
            invoice = Invoice.objects.create(
                invoice_number=number,
                date=data["date"],
                purchase_order=po,
                party_id=po.party_id,
                inter_state=inter_state,
                subtotal=subtotal,
                cgst=cgst,
                sgst=sgst,
                igst=igst,
                total_amount=total,
                paid_amount=ZERO,
                balance_due=total,
                remarks=data.get("remarks") or "",
                created_by=actor if getattr(actor, "is_authenticated", False) else None,
            )
            InvoiceLineItem.objects.bulk_create(
                [
                    InvoiceLineItem(
                        invoice=invoice,
                        po_line_item=line,
                        part_number=line.part_number,
                        part_name=line.part_name,
                        qty=qty,
                        rate=rate,
                        amount=to_money(qty * rate),
                    )
                    for line, qty, rate in resolved
                ]
            )
            return invoice

        invoice = allocate_document_number(
            build,
            model=Invoice,
            field="invoice_number",
            prefix=invoice_prefix(data["date"]),
            conflict_message=INVOICE_NUMBER_CONFLICT,
        )
        create_audit_log(
            entity="Invoice",
            action="CREATE",
            entity_id=invoice.id,
            changes={
                "invoice_number": invoice.invoice_number,
                "purchase_order_id": po.id,
                "subtotal": subtotal,
                "cgst": cgst,
                "sgst": sgst,
                "igst": igst,
                "total_amount": total,
            },
            actor=actor,
            request_id=request_id,
        )

    logger.info(
        "Invoice issued",
        extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number, "amount": total},
    )
    return OperationResult.ok(id=invoice.id)


@service_operation(failure_message="Failed to record payment")
def record_payment(data, *, actor=None, request_id=None):
    amount = to_money(data["amount"])
    if amount <= 0:
        raise ServiceError("Payment amount must be greater than zero")

    with transaction.atomic():
        invoice = _get_locked(Invoice, data["invoice_id"], "Invoice")
        if invoice.status == Invoice.Status.CANCELLED:
            raise StateConflict("Cannot record a payment against a cancelled invoice")
        if invoice.status == Invoice.Status.PAID:
            raise StateConflict("Invoice is already paid")

        existing = settled_amount(invoice)
        if existing + amount > invoice.total_amount:
            remaining = max(invoice.total_amount - existing, ZERO)
            raise ServiceError(f"Payment exceeds balance due (remaining: {remaining})")

        payment = Payment.objects.create(
            invoice=invoice,
            amount=amount,
            date=data["date"],
            mode=data.get("mode") or None,
            reference=data.get("reference") or None,
            remarks=data.get("remarks") or "",
            status=Payment.Status.RECEIVED,
        )

        total_paid = existing + amount
        invoice.status = Invoice.Status.PAID if total_paid >= invoice.total_amount else Invoice.Status.PARTIALLY_PAID
        invoice.paid_amount = total_paid
        invoice.balance_due = max(invoice.total_amount - total_paid, ZERO)
        invoice.save(update_fields=["status", "paid_amount", "balance_due", "updated_at"])

        create_audit_log(
            entity="Payment",
            action="CREATE",
            entity_id=payment.id,
            changes={"invoice_id": invoice.id, "amount": amount, "mode": payment.mode, "status": invoice.status},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Payment recorded", extra={"invoice_id": str(invoice.id), "amount": amount})
    return OperationResult.ok(id=payment.id)


@service_operation(failure_message="Failed to update invoice status")
def update_payment_status(invoice_id, status, *, actor=None, request_id=None):
    if status not in Invoice.Status.values:
        raise ServiceError(f"Unknown invoice status: {status}")

    with transaction.atomic():
        invoice = _get_locked(Invoice, invoice_id, "Invoice")
        if invoice.status == Invoice.Status.PAID and status != Invoice.Status.PAID:
            raise StateConflict("A paid invoice cannot change status")

        previous = invoice.status
        invoice.status = status
        invoice.save(update_fields=["status", "updated_at"])
        create_audit_log(
            entity="Invoice",
            action="UPDATE_STATUS",
            entity_id=invoice.id,
            changes={"from": previous, "to": status},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Invoice status changed", extra={"invoice_id": str(invoice.id)})
    return OperationResult.ok(id=invoice.id)


@service_operation(failure_message="Failed to mark invoices as paid")
def bulk_mark_as_paid(invoice_ids, *, actor=None, request_id=None):
    invoice_ids = list(dict.fromkeys(str(pk) for pk in invoice_ids or []))
    if not invoice_ids:
        raise ServiceError("No invoices selected")
    limit = settings.BILLING_BULK_PAY_LIMIT
    if len(invoice_ids) > limit:
        raise ServiceError(f"Cannot mark more than {limit} invoices at once")

    today = timezone.localdate()
    affected = []
    with transaction.atomic():
        invoices = (
            Invoice.objects.select_for_update()
            .filter(id__in=invoice_ids)
            .exclude(status__in=[Invoice.Status.PAID, Invoice.Status.CANCELLED])
            .order_by("invoice_number")
        )
        for invoice in invoices:
            remainder = invoice.total_amount - settled_amount(invoice)
            if remainder > 0:
                Payment.objects.create(
                    invoice=invoice,
                    amount=remainder,
                    date=today,
                    reference="Bulk settlement",
                    status=Payment.Status.RECEIVED,
                )
            invoice.status = Invoice.Status.PAID
            invoice.paid_amount = invoice.total_amount
            invoice.balance_due = ZERO
            invoice.save(update_fields=["status", "paid_amount", "balance_due", "updated_at"])
            affected.append(invoice.id)

        create_audit_log(
            entity="Invoice",
            action="BULK_MARK_PAID",
            changes={"invoice_ids": affected},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Invoices bulk settled", extra={"count": len(affected)})
    return OperationResult.ok(count=len(affected))


@service_operation(failure_message="Failed to create credit note", conflict_message=CREDIT_NOTE_NUMBER_CONFLICT)
def create_credit_note(data, *, actor=None, request_id=None):
    items = data.get("items") or []
    if not items:
        raise ServiceError("At least one item is required")

    lines = []
    for item in items:
        qty = to_decimal(item["qty"])
        rate = to_decimal(item["rate"])
        if qty <= 0:
            raise ServiceError("Quantity must be greater than zero")
        if rate < 0:
            raise ServiceError("Rate cannot be negative")
        lines.append((item, qty, rate, to_money(qty * rate)))
    total = sum((amount for *_, amount in lines), ZERO)

    with transaction.atomic():
        if not Party.objects.filter(id=data["party_id"]).exists():
            raise RecordNotFound("Party not found")

        def build(number):
            credit_note = CreditNote.objects.create(
                credit_note_number=number,
                party_id=data["party_id"],
                date=data["date"],
                total_amount=total,
                reason=data.get("reason") or "",
                status=CreditNote.Status.PENDING,
            )
            CreditNoteItem.objects.bulk_create(
                [
                    CreditNoteItem(
                        credit_note=credit_note,
                        item_name=item["item_name"],
                        hsn_code=item.get("hsn_code") or None,
                        qty=qty,
                        rate=rate,
                        amount=amount,
                    )
                    for item, qty, rate, amount in lines
                ]
            )
            return credit_note

        credit_note = allocate_document_number(
            build,
            model=CreditNote,
            field="credit_note_number",
            prefix=credit_note_prefix(),
            conflict_message=CREDIT_NOTE_NUMBER_CONFLICT,
        )
        create_audit_log(
            entity="CreditNote",
            action="CREATE",
            entity_id=credit_note.id,
            changes={"credit_note_number": credit_note.credit_note_number, "party_id": data["party_id"], "total_amount": total},
            actor=actor,
            request_id=request_id,
        )

    logger.info(
        "Credit note created",
        extra={"credit_note_id": str(credit_note.id), "credit_note_number": credit_note.credit_note_number, "amount": total},
    )
    return OperationResult.ok(id=credit_note.id)


@service_operation(failure_message="Failed to adjust credit note")
def adjust_credit_note_against_invoice(credit_note_id, invoice_id, *, actor=None, request_id=None):
    with transaction.atomic():
        credit_note = _get_locked(CreditNote, credit_note_id, "Credit note")
        if credit_note.status == CreditNote.Status.ADJUSTED:
            raise StateConflict("Credit note already adjusted")
        if credit_note.status == CreditNote.Status.CANCELLED:
            raise StateConflict("Credit note is cancelled")
        invoice = _get_locked(Invoice, invoice_id, "Invoice")
        if invoice.status == Invoice.Status.CANCELLED:
            raise StateConflict("Cannot adjust a credit note against a cancelled invoice")
        if invoice.status == Invoice.Status.PAID:
            raise StateConflict("Invoice is already paid")

        cn_amount = credit_note.total_amount
        current_balance = invoice.balance_due
        applied = min(cn_amount, current_balance)
        adjusted_balance = max(current_balance - cn_amount, ZERO)
        new_paid = invoice.paid_amount + applied

        if adjusted_balance <= 0:
            invoice.status = Invoice.Status.PAID
        elif new_paid > 0:
            invoice.status = Invoice.Status.PARTIALLY_PAID
        else:
            invoice.status = Invoice.Status.UNPAID
        invoice.balance_due = adjusted_balance
        invoice.paid_amount = new_paid
        invoice.save(update_fields=["status", "balance_due", "paid_amount", "updated_at"])

        credit_note.status = CreditNote.Status.ADJUSTED
        credit_note.invoice = invoice
        credit_note.applied_amount = applied
        credit_note.adjusted_at = timezone.now()
        credit_note.save(update_fields=["status", "invoice", "applied_amount", "adjusted_at", "updated_at"])

        create_audit_log(
            entity="CreditNote",
            action="ADJUST",
            entity_id=credit_note.id,
            changes={"invoice_id": invoice.id, "applied_amount": applied, "balance_due": adjusted_balance},
            actor=actor,
            request_id=request_id,
        )

    if applied < cn_amount:
        logger.warning(
            "Credit note exceeds invoice balance; excess not carried forward",
            extra={"credit_note_id": str(credit_note.id), "invoice_id": str(invoice.id), "amount": cn_amount - applied},
        )
    logger.info(
        "Credit note adjusted",
        extra={"credit_note_id": str(credit_note.id), "invoice_id": str(invoice.id), "amount": applied},
    )
    return OperationResult.ok(id=credit_note.id)


@service_operation(failure_message="Failed to cancel credit note")
def cancel_credit_note(credit_note_id, *, actor=None, request_id=None):
    with transaction.atomic():
        credit_note = _get_locked(CreditNote, credit_note_id, "Credit note")
        if credit_note.status != CreditNote.Status.PENDING:
            raise StateConflict(f"Only pending credit notes can be cancelled (status: {credit_note.status})")
        credit_note.status = CreditNote.Status.CANCELLED
        credit_note.save(update_fields=["status", "updated_at"])
        create_audit_log(
            entity="CreditNote",
            action="CANCEL",
            entity_id=credit_note.id,
            actor=actor,
            request_id=request_id,
        )

    logger.info("Credit note cancelled", extra={"credit_note_id": str(credit_note.id)})
    return OperationResult.ok(id=credit_note.id)


def _purchase_payment_status(paid, total):
    if paid >= total:
        return PurchaseInvoice.PaymentStatus.PAID
    if paid > 0:
        return PurchaseInvoice.PaymentStatus.PARTIALLY_PAID
    return PurchaseInvoice.PaymentStatus.UNPAID


@service_operation(
    failure_message="Failed to create purchase invoice",
    conflict_message="Purchase invoice number already exists for this party",
)
def create_purchase_invoice(data, *, actor=None, request_id=None):
    total = to_money(data["total_amount"])
    if total <= 0:
        raise ServiceError("Total amount must be greater than zero")

    with transaction.atomic():
        if not Party.objects.filter(id=data["party_id"]).exists():
            raise RecordNotFound("Party not found")
        purchase_invoice = PurchaseInvoice.objects.create(
            party_id=data["party_id"],
            invoice_number=data["invoice_number"],
            date=data["date"],
            total_amount=total,
            paid_amount=ZERO,
            balance_due=total,
            payment_status=PurchaseInvoice.PaymentStatus.UNPAID,
            payment_type=data.get("payment_type") or None,
            description=data.get("description") or "",
            po_number=data.get("po_number") or None,
            work_order=data.get("work_order") or None,
        )
        create_audit_log(
            entity="PurchaseInvoice",
            action="CREATE",
            entity_id=purchase_invoice.id,
            changes={"invoice_number": purchase_invoice.invoice_number, "party_id": data["party_id"], "total_amount": total},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Purchase invoice recorded", extra={"party_id": str(data["party_id"]), "amount": total})
    return OperationResult.ok(id=purchase_invoice.id)


@service_operation(failure_message="Failed to update purchase invoice payment")
def mark_purchase_invoice_paid(purchase_invoice_id, paid_amount, *, actor=None, request_id=None):
    paid_amount = to_money(paid_amount)
    if paid_amount < 0:
        raise ServiceError("Paid amount cannot be negative")

    with transaction.atomic():
        purchase_invoice = _get_locked(PurchaseInvoice, purchase_invoice_id, "Purchase invoice")
        new_paid = min(paid_amount, purchase_invoice.total_amount)
        if new_paid < purchase_invoice.paid_amount:
            raise ServiceError(f"Paid amount cannot go below {purchase_invoice.paid_amount}")

        purchase_invoice.paid_amount = new_paid
        purchase_invoice.balance_due = purchase_invoice.total_amount - new_paid
        purchase_invoice.payment_status = _purchase_payment_status(new_paid, purchase_invoice.total_amount)
        purchase_invoice.save(update_fields=["paid_amount", "balance_due", "payment_status", "updated_at"])
        create_audit_log(
            entity="PurchaseInvoice",
            action="PAYMENT",
            entity_id=purchase_invoice.id,
            changes={"paid_amount": new_paid, "payment_status": purchase_invoice.payment_status},
            actor=actor,
            request_id=request_id,
        )

    logger.info("Purchase invoice payment updated", extra={"party_id": str(purchase_invoice.party_id), "amount": new_paid})
    return OperationResult.ok(id=purchase_invoice.id)
