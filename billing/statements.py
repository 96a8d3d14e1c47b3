from collections import defaultdict

from django.db.models import Sum
from django.utils import timezone

from billing.models import CreditNote, Invoice, Payment, PurchaseInvoice
from common.money import ZERO, to_money
from orders.models import Party

SALE = "SALE"
PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
PURCHASE = "PURCHASE"
CREDIT_NOTE = "CREDIT_NOTE"

# Same-day entries: documents first, then the money that settles them.
ENTRY_ORDER = {SALE: 0, PAYMENT_RECEIVED: 1, PURCHASE: 2, CREDIT_NOTE: 3}

AGING_BUCKETS = ("current", "days31_60", "days61_90", "days90_plus")
UNASSIGNED_PARTY = "Unassigned"


def _date_range(qs, field, date_from, date_to):
    if date_from:
        qs = qs.filter(**{f"{field}__gte": date_from})
    if date_to:
        qs = qs.filter(**{f"{field}__lte": date_to})
    return qs


def _entry(*, date, entry_type, reference, description, debit=ZERO, credit=ZERO, document_id=None):
    return {
        "date": date,
        "type": entry_type,
        "reference": reference,
        "description": description,
        "debit": debit,
        "credit": credit,
        "document_id": document_id,
    }


def get_party_statement(party_id, date_from=None, date_to=None):
    """Chronological ledger for one party with a running balance.

    Positive balances mean the party owes us (Dr), negative that we owe the
    party (Cr). The opening balance is the party's externally maintained
    receivable minus payable, with or without a date window. Returns None
    for an unknown party.
    """
    party = Party.objects.filter(id=party_id).first()
    if party is None:
        return None

    entries = []

    invoices = _date_range(
        Invoice.objects.filter(party=party).exclude(status=Invoice.Status.CANCELLED), "date", date_from, date_to
    )
    for invoice in invoices:
        entries.append(
            _entry(
                date=invoice.date,
                entry_type=SALE,
                reference=invoice.invoice_number,
                description=f"Sales invoice {invoice.invoice_number}",
                debit=invoice.total_amount,
                document_id=invoice.id,
            )
        )

    payments = _date_range(
        Payment.objects.filter(invoice__party=party, status=Payment.Status.RECEIVED).select_related("invoice"),
        "date",
        date_from,
        date_to,
    )
    for payment in payments:
        detail = " ".join(part for part in (payment.mode, payment.reference) if part)
        entries.append(
            _entry(
                date=payment.date,
                entry_type=PAYMENT_RECEIVED,
                reference=payment.invoice.invoice_number,
                description=f"Payment received{f' ({detail})' if detail else ''}",
                credit=payment.amount,
                document_id=payment.id,
            )
        )

    for purchase in _date_range(PurchaseInvoice.objects.filter(party=party), "date", date_from, date_to):
        entries.append(
            _entry(
                date=purchase.date,
                entry_type=PURCHASE,
                reference=purchase.invoice_number,
                description=purchase.description or f"Purchase invoice {purchase.invoice_number}",
                credit=purchase.total_amount,
                document_id=purchase.id,
            )
        )

    credit_notes = _date_range(
        CreditNote.objects.filter(party=party).exclude(status=CreditNote.Status.CANCELLED), "date", date_from, date_to
    )
    for credit_note in credit_notes:
        entries.append(
            _entry(
                date=credit_note.date,
                entry_type=CREDIT_NOTE,
                reference=credit_note.credit_note_number,
                description=credit_note.reason or f"Credit note {credit_note.credit_note_number}",
                credit=credit_note.total_amount,
                document_id=credit_note.id,
            )
        )

    entries.sort(key=lambda entry: (entry["date"], ENTRY_ORDER[entry["type"]], entry["reference"]))

    opening_balance = to_money(party.receivable_balance) - to_money(party.payable_balance)
    balance = opening_balance
    for entry in entries:
        balance = balance + entry["debit"] - entry["credit"]
        entry["balance"] = balance

    return {
        "party": party,
        "entries": entries,
        "opening_balance": opening_balance,
        "closing_balance": balance,
    }


def age_in_days(document_date, as_of):
    return max((as_of - document_date).days, 0)


def aging_bucket(days):
    if days <= 30:
        return "current"
    if days <= 60:
        return "days31_60"
    if days <= 90:
        return "days61_90"
    return "days90_plus"


def _sum_by(queryset, key, field):
    return {row[key]: row["total"] for row in queryset.values(key).annotate(total=Sum(field))}


def invoice_outstanding_map(invoices):
    """Outstanding per invoice id: total less received payments and applied credit."""
    invoice_ids = [invoice.id for invoice in invoices]
    received = _sum_by(
        Payment.objects.filter(invoice_id__in=invoice_ids, status=Payment.Status.RECEIVED).order_by(),
        "invoice_id",
        "amount",
    )
    credited = _sum_by(
        CreditNote.objects.filter(invoice_id__in=invoice_ids, status=CreditNote.Status.ADJUSTED).order_by(),
        "invoice_id",
        "applied_amount",
    )
    return {
        invoice.id: (
            received.get(invoice.id) or ZERO,
            credited.get(invoice.id) or ZERO,
            max(invoice.total_amount - (received.get(invoice.id) or ZERO) - (credited.get(invoice.id) or ZERO), ZERO),
        )
        for invoice in invoices
    }


def _aging_rows(items, as_of):
    rows = {}
    for party, document_date, outstanding in items:
        if outstanding <= 0:
            continue
        key = party.id if party else None
        row = rows.get(key)
        if row is None:
            row = {
                "party_id": key,
                "party_name": party.name if party else UNASSIGNED_PARTY,
                **{bucket: ZERO for bucket in AGING_BUCKETS},
                "total": ZERO,
            }
            rows[key] = row
        row[aging_bucket(age_in_days(document_date, as_of))] += outstanding
        row["total"] += outstanding
    return sorted(rows.values(), key=lambda row: row["total"], reverse=True)


def get_receivables_aging(as_of=None):
    as_of = as_of or timezone.localdate()
    invoices = list(
        Invoice.objects.exclude(status__in=[Invoice.Status.PAID, Invoice.Status.CANCELLED]).select_related("party")
    )
    outstanding = invoice_outstanding_map(invoices)
    return _aging_rows(((inv.party, inv.date, outstanding[inv.id][2]) for inv in invoices), as_of)


def get_payables_aging(as_of=None):
    as_of = as_of or timezone.localdate()
    purchases = PurchaseInvoice.objects.exclude(payment_status=PurchaseInvoice.PaymentStatus.PAID).select_related("party")
    return _aging_rows(((pi.party, pi.date, pi.balance_due) for pi in purchases), as_of)


def outstanding_invoices(as_of=None):
    """Unpaid, uncancelled invoices oldest first, with days outstanding."""
    as_of = as_of or timezone.localdate()
    invoices = list(
        Invoice.objects.exclude(status__in=[Invoice.Status.PAID, Invoice.Status.CANCELLED])
        .select_related("party", "purchase_order__division")
        .order_by("date", "invoice_number")
    )
    amounts = invoice_outstanding_map(invoices)

    rows = []
    for invoice in invoices:
        received, credited, outstanding = amounts[invoice.id]
        if outstanding <= 0:
            continue
        rows.append(
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "date": invoice.date,
                "po_number": invoice.purchase_order.po_number,
                "division": invoice.purchase_order.division.name,
                "party_name": invoice.party.name if invoice.party else UNASSIGNED_PARTY,
                "total_amount": invoice.total_amount,
                "paid_amount": received + credited,
                "outstanding_amount": outstanding,
                "days_overdue": age_in_days(invoice.date, as_of),
            }
        )
    return rows
