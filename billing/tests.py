from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from billing.models import CreditNote, Invoice, InvoiceLineItem, Payment, PurchaseInvoice
from billing.numbering import fiscal_year_label, next_document_number, next_sequence
from billing.services import (
    adjust_credit_note_against_invoice,
    bulk_mark_as_paid,
    cancel_credit_note,
    compute_gst,
    create_credit_note,
    create_invoice,
    create_purchase_invoice,
    mark_purchase_invoice_paid,
    record_payment,
    update_payment_status,
)
from billing.statements import (
    aging_bucket,
    get_party_statement,
    get_payables_aging,
    get_receivables_aging,
    outstanding_invoices,
)
from core.models import AuditLog
from orders.models import Division, Party, POLineItem, PurchaseOrder
from orders.quantities import QuantityIntegrityError, invoiceable_qty

INVOICE_DATE = date(2024, 6, 15)


class BillingFixtureMixin:
    def make_party(self, name="Ashok Leyland", **kwargs):
        return Party.objects.create(name=name, **kwargs)

    def make_dispatched_po(self, *, party=None, po_number="PO-1001", ordered="100", rate="500", dispatched="60"):
        division = Division.objects.create(name=f"Division {po_number}", code=po_number[-4:])
        po = PurchaseOrder.objects.create(po_number=po_number, division=division, party=party, date=date(2024, 5, 1))
        line = POLineItem.objects.create(
            purchase_order=po,
            part_number="BRK-220",
            part_name="Axle bracket",
            rate=Decimal(rate),
            qty_ordered=Decimal(ordered),
            qty_received=Decimal(dispatched),
            qty_dispatched=Decimal(dispatched),
        )
        return po, line

    def issue(self, po, line, qty, rate="500", on=INVOICE_DATE, **extra):
        return create_invoice(
            {
                "purchase_order_id": po.id,
                "date": on,
                "items": [{"po_line_item_id": line.id, "qty": Decimal(qty), "rate": Decimal(rate)}],
                **extra,
            }
        )

    def make_invoice_row(self, *, po, party, number, on, total, status=Invoice.Status.UNPAID):
        total = Decimal(total)
        return Invoice.objects.create(
            invoice_number=number,
            date=on,
            purchase_order=po,
            party=party,
            subtotal=total,
            total_amount=total,
            balance_due=total,
            status=status,
        )


class NumberingTests(BillingFixtureMixin, TestCase):
    def test_fiscal_year_label_switches_in_april(self):
        self.assertEqual(fiscal_year_label(date(2024, 3, 31)), "2023-24")
        self.assertEqual(fiscal_year_label(date(2024, 4, 1)), "2024-25")
        self.assertEqual(fiscal_year_label(date(2025, 1, 15)), "2024-25")
        self.assertEqual(fiscal_year_label(date(2099, 4, 1)), "2099-00")

    def test_next_sequence_parses_trailing_segment(self):
        self.assertEqual(next_sequence("SSI/INV/2024-25/", None), 1)
        self.assertEqual(next_sequence("SSI/INV/2024-25/", "SSI/INV/2024-25/009"), 10)
        self.assertEqual(next_sequence("SSI/INV/2024-25/", "SSI/INV/2024-25/ABC"), 1)
        self.assertEqual(next_sequence("CN-", "CN-041"), 42)

    def test_next_number_uses_lexicographic_maximum_for_prefix(self):
        po, _ = self.make_dispatched_po()
        self.make_invoice_row(po=po, party=None, number="SSI/INV/2024-25/009", on=INVOICE_DATE, total="10")
        self.make_invoice_row(po=po, party=None, number="SSI/INV/2023-24/120", on=date(2024, 2, 1), total="10")

        number = next_document_number(Invoice, "invoice_number", "SSI/INV/2024-25/")

        self.assertEqual(number, "SSI/INV/2024-25/010")

    def test_first_invoice_of_a_new_fiscal_year_restarts_at_one(self):
        po, line = self.make_dispatched_po()
        self.make_invoice_row(po=po, party=None, number="SSI/INV/2023-24/057", on=date(2024, 3, 30), total="10")

        result = self.issue(po, line, "1", on=date(2024, 4, 1))

        self.assertTrue(result.success, result.error)
        self.assertEqual(Invoice.objects.get(id=result.id).invoice_number, "SSI/INV/2024-25/001")

    def test_stale_maximum_is_retried_with_the_next_number(self):
        po, line = self.make_dispatched_po()
        self.make_invoice_row(po=po, party=None, number="SSI/INV/2024-25/001", on=INVOICE_DATE, total="10")

        with patch("billing.numbering.last_document_number", return_value=None):
            with self.assertLogs("billing.numbering", level="WARNING") as logs:
                result = self.issue(po, line, "1")

        self.assertTrue(result.success, result.error)
        self.assertEqual(Invoice.objects.get(id=result.id).invoice_number, "SSI/INV/2024-25/002")
        self.assertIn("Document number taken", logs.output[0])

    @override_settings(BILLING_NUMBER_ALLOCATION_ATTEMPTS=1)
    def test_exhausted_retries_report_number_conflict(self):
        po, line = self.make_dispatched_po()
        self.make_invoice_row(po=po, party=None, number="SSI/INV/2024-25/001", on=INVOICE_DATE, total="10")

        with patch("billing.numbering.last_document_number", return_value=None):
            result = self.issue(po, line, "1")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invoice number already exists")
        self.assertEqual(result.code, "conflict")
        self.assertEqual(Invoice.objects.count(), 1)
        self.assertFalse(InvoiceLineItem.objects.exists())

    def test_credit_notes_are_numbered_without_fiscal_year(self):
        party = self.make_party()
        payload = {"party_id": party.id, "date": INVOICE_DATE, "items": [{"item_name": "Rework", "qty": 1, "rate": 100}]}

        first = create_credit_note(payload)
        second = create_credit_note(payload)

        self.assertEqual(CreditNote.objects.get(id=first.id).credit_note_number, "CN-001")
        self.assertEqual(CreditNote.objects.get(id=second.id).credit_note_number, "CN-002")


class InvoiceIssuanceTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.party = self.make_party()
        self.po, self.line = self.make_dispatched_po(party=self.party)

    def test_scenario_a_invoice_for_dispatched_quantity(self):
        self.assertEqual(invoiceable_qty(self.line), Decimal("60"))

        result = self.issue(self.po, self.line, "60")

        self.assertTrue(result.success, result.error)
        invoice = Invoice.objects.get(id=result.id)
        self.assertEqual(invoice.invoice_number, "SSI/INV/2024-25/001")
        self.assertEqual(invoice.subtotal, Decimal("30000"))
        self.assertEqual(invoice.cgst, Decimal("2700"))
        self.assertEqual(invoice.sgst, Decimal("2700"))
        self.assertEqual(invoice.igst, Decimal("0"))
        self.assertEqual(invoice.total_amount, Decimal("35400"))
        self.assertEqual(invoice.balance_due, Decimal("35400"))
        self.assertEqual(invoice.paid_amount, Decimal("0"))
        self.assertEqual(invoice.party_id, self.party.id)
        self.assertEqual(invoice.status, Invoice.Status.DRAFT)

        line_item = invoice.line_items.get()
        self.assertEqual(line_item.part_number, "BRK-220")
        self.assertEqual(line_item.amount, Decimal("30000"))
        self.assertEqual(invoiceable_qty(self.line), Decimal("0"))

    def test_scenario_c_quantity_beyond_invoiceable_balance_is_rejected(self):
        self.assertTrue(self.issue(self.po, self.line, "60").success)

        result = self.issue(self.po, self.line, "41")

        self.assertFalse(result.success)
        self.assertIn("exceeds invoiceable balance", result.error)
        self.assertIn("BRK-220", result.error)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_repeated_line_ids_are_checked_together(self):
        result = create_invoice(
            {
                "purchase_order_id": self.po.id,
                "date": INVOICE_DATE,
                "items": [
                    {"po_line_item_id": self.line.id, "qty": Decimal("40"), "rate": Decimal("500")},
                    {"po_line_item_id": self.line.id, "qty": Decimal("30"), "rate": Decimal("500")},
                ],
            }
        )

        self.assertFalse(result.success)
        self.assertFalse(Invoice.objects.exists())

    def test_line_from_another_po_is_rejected(self):
        other_po, other_line = self.make_dispatched_po(po_number="PO-2002")

        result = self.issue(self.po, other_line, "1")

        self.assertFalse(result.success)
        self.assertIn("does not belong", result.error)

    def test_inter_state_invoice_uses_igst(self):
        result = self.issue(self.po, self.line, "10", inter_state=True)

        invoice = Invoice.objects.get(id=result.id)
        self.assertEqual(invoice.cgst, Decimal("0"))
        self.assertEqual(invoice.sgst, Decimal("0"))
        self.assertEqual(invoice.igst, Decimal("900"))
        self.assertEqual(invoice.total_amount, Decimal("5900"))

    def test_total_is_exact_sum_of_rounded_components(self):
        subtotal, cgst, sgst, igst, total = compute_gst(Decimal("3") * Decimal("33.33"))

        self.assertEqual(subtotal, Decimal("99.99"))
        self.assertEqual(cgst, Decimal("9.00"))
        self.assertEqual(sgst, Decimal("9.00"))
        self.assertEqual(total, subtotal + cgst + sgst + igst)

    def test_cancelled_po_cannot_be_invoiced(self):
        self.po.status = PurchaseOrder.Status.CANCELLED
        self.po.save(update_fields=["status"])

        result = self.issue(self.po, self.line, "1")

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")

    def test_unknown_po_is_not_found(self):
        result = create_invoice(
            {
                "purchase_order_id": "00000000-0000-0000-0000-000000000000",
                "date": INVOICE_DATE,
                "items": [{"po_line_item_id": self.line.id, "qty": 1, "rate": 1}],
            }
        )

        self.assertFalse(result.success)
        self.assertEqual(result.code, "not_found")

    def test_issuance_is_audited(self):
        result = self.issue(self.po, self.line, "5")

        log = AuditLog.objects.get(entity="Invoice", action="CREATE")
        self.assertEqual(log.entity_id, str(result.id))
        self.assertEqual(log.changes["invoice_number"], "SSI/INV/2024-25/001")

    def test_over_invoiced_line_is_an_integrity_fault(self):
        invoice = self.make_invoice_row(po=self.po, party=self.party, number="SSI/INV/2024-25/001", on=INVOICE_DATE, total="1")
        InvoiceLineItem.objects.create(
            invoice=invoice,
            po_line_item=self.line,
            part_number="BRK-220",
            part_name="Axle bracket",
            qty=Decimal("61"),
            rate=Decimal("1"),
            amount=Decimal("61"),
        )

        with self.assertRaises(QuantityIntegrityError):
            invoiceable_qty(self.line)

        with self.assertLogs("common.exceptions", level="ERROR"):
            result = self.issue(self.po, self.line, "1")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Failed to create invoice")
        self.assertEqual(result.code, "internal_error")


class PaymentLedgerTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.party = self.make_party()
        self.po, self.line = self.make_dispatched_po(party=self.party)
        self.invoice = Invoice.objects.get(id=self.issue(self.po, self.line, "60").id)

    def pay(self, amount, invoice=None):
        return record_payment(
            {"invoice_id": (invoice or self.invoice).id, "amount": Decimal(amount), "date": INVOICE_DATE, "mode": "NEFT"}
        )

    def test_scenario_b_full_payment_marks_invoice_paid(self):
        result = self.pay("35400")

        self.assertTrue(result.success, result.error)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.paid_amount, Decimal("35400"))
        self.assertEqual(self.invoice.balance_due, Decimal("0"))
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertTrue(AuditLog.objects.filter(entity="Payment", action="CREATE").exists())

    def test_partial_payments_accumulate_monotonically(self):
        seen = []
        for amount in ("10000", "5000.50", "20399.50"):
            self.assertTrue(self.pay(amount).success)
            self.invoice.refresh_from_db()
            seen.append(self.invoice.paid_amount)

        self.assertEqual(seen, sorted(seen))
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertEqual(self.invoice.balance_due, Decimal("0"))

    def test_partial_payment_sets_partially_paid(self):
        self.pay("400")

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PARTIALLY_PAID)
        self.assertEqual(self.invoice.balance_due, Decimal("35000"))

    def test_non_positive_amount_is_rejected(self):
        result = self.pay("0")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Payment amount must be greater than zero")

    def test_overpayment_names_remaining_balance(self):
        self.pay("35000")

        result = self.pay("401")

        self.assertFalse(result.success)
        self.assertIn("400.00", result.error)
        self.assertEqual(Payment.objects.count(), 1)

    def test_applied_credit_counts_towards_settlement(self):
        credit = create_credit_note(
            {"party_id": self.party.id, "date": INVOICE_DATE, "items": [{"item_name": "Short supply", "qty": 1, "rate": 5400}]}
        )
        self.assertTrue(adjust_credit_note_against_invoice(credit.id, self.invoice.id).success)

        self.assertFalse(self.pay("30001").success)
        self.assertTrue(self.pay("30000").success)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertEqual(self.invoice.paid_amount, Decimal("35400"))
        self.assertEqual(self.invoice.balance_due, Decimal("0"))

    def test_manual_status_override(self):
        result = update_payment_status(self.invoice.id, Invoice.Status.SENT)

        self.assertTrue(result.success)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.SENT)
        self.assertEqual(self.invoice.paid_amount, Decimal("0"))

    def test_paid_invoice_cannot_leave_paid(self):
        self.pay("35400")

        result = update_payment_status(self.invoice.id, Invoice.Status.UNPAID)

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")

    def test_payment_against_forced_paid_invoice_is_rejected(self):
        self.assertTrue(update_payment_status(self.invoice.id, Invoice.Status.PAID).success)

        result = self.pay("100")

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertFalse(Payment.objects.exists())

    def test_unknown_status_is_rejected(self):
        result = update_payment_status(self.invoice.id, "OVERDUE")

        self.assertFalse(result.success)
        self.assertEqual(result.code, "validation_error")

    def test_bulk_mark_as_paid_settles_remainders(self):
        second_po, second_line = self.make_dispatched_po(party=self.party, po_number="PO-3003", rate="100", dispatched="10")
        second = Invoice.objects.get(id=self.issue(second_po, second_line, "10", rate="100").id)
        self.pay("10000")
        record_payment({"invoice_id": second.id, "amount": Decimal("1180"), "date": INVOICE_DATE})

        result = bulk_mark_as_paid([self.invoice.id, second.id])

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.count, 1)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertEqual(self.invoice.paid_amount, Decimal("35400"))
        self.assertEqual(self.invoice.balance_due, Decimal("0"))
        settlement = self.invoice.payments.get(reference="Bulk settlement")
        self.assertEqual(settlement.amount, Decimal("25400"))
        log = AuditLog.objects.get(action="BULK_MARK_PAID")
        self.assertEqual(log.changes["invoice_ids"], [str(self.invoice.id)])

    def test_bulk_mark_as_paid_skips_cancelled_invoices(self):
        update_payment_status(self.invoice.id, Invoice.Status.CANCELLED)

        result = bulk_mark_as_paid([self.invoice.id])

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.count, 0)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.CANCELLED)
        self.assertEqual(self.invoice.paid_amount, Decimal("0"))
        self.assertFalse(Payment.objects.exists())

    @override_settings(BILLING_BULK_PAY_LIMIT=2)
    def test_bulk_mark_as_paid_enforces_limit(self):
        ids = [self.invoice.id, "00000000-0000-0000-0000-000000000001", "00000000-0000-0000-0000-000000000002"]

        result = bulk_mark_as_paid(ids)

        self.assertFalse(result.success)
        self.assertIn("more than 2", result.error)
        self.invoice.refresh_from_db()
        self.assertNotEqual(self.invoice.status, Invoice.Status.PAID)


class CreditNoteTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.party = self.make_party()
        self.po, self.line = self.make_dispatched_po(party=self.party)
        self.invoice = Invoice.objects.get(id=self.issue(self.po, self.line, "60").id)

    def credit(self, amount):
        return create_credit_note(
            {
                "party_id": self.party.id,
                "date": INVOICE_DATE,
                "reason": "Rejected parts",
                "items": [{"item_name": "Axle bracket", "hsn_code": "8708", "qty": 1, "rate": Decimal(amount)}],
            }
        )

    def test_create_credit_note_totals_items(self):
        result = create_credit_note(
            {
                "party_id": self.party.id,
                "date": INVOICE_DATE,
                "items": [
                    {"item_name": "Bracket", "qty": Decimal("2"), "rate": Decimal("150.25")},
                    {"item_name": "Bush", "qty": Decimal("4"), "rate": Decimal("10")},
                ],
            }
        )

        credit_note = CreditNote.objects.get(id=result.id)
        self.assertEqual(credit_note.total_amount, Decimal("340.50"))
        self.assertEqual(credit_note.status, CreditNote.Status.PENDING)
        self.assertEqual(credit_note.items.count(), 2)

    def test_scenario_d_adjustment_reduces_balance(self):
        record_payment({"invoice_id": self.invoice.id, "amount": Decimal("27400"), "date": INVOICE_DATE})
        credit = self.credit("5000")

        result = adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.assertTrue(result.success, result.error)
        self.invoice.refresh_from_db()
        credit_note = CreditNote.objects.get(id=credit.id)
        self.assertEqual(self.invoice.balance_due, Decimal("3000"))
        self.assertEqual(self.invoice.status, Invoice.Status.PARTIALLY_PAID)
        self.assertEqual(credit_note.status, CreditNote.Status.ADJUSTED)
        self.assertEqual(credit_note.invoice_id, self.invoice.id)
        self.assertEqual(credit_note.applied_amount, Decimal("5000"))

    def test_second_adjustment_fails_and_changes_nothing(self):
        credit = self.credit("5000")
        self.assertTrue(adjust_credit_note_against_invoice(credit.id, self.invoice.id).success)
        self.invoice.refresh_from_db()
        before = (self.invoice.balance_due, self.invoice.paid_amount, self.invoice.status)

        result = adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.assertFalse(result.success)
        self.assertIn("already adjusted", result.error)
        self.invoice.refresh_from_db()
        self.assertEqual((self.invoice.balance_due, self.invoice.paid_amount, self.invoice.status), before)
        self.assertEqual(CreditNote.objects.get(id=credit.id).applied_amount, Decimal("5000"))

    def test_excess_credit_is_capped_at_balance(self):
        record_payment({"invoice_id": self.invoice.id, "amount": Decimal("32400"), "date": INVOICE_DATE})
        credit = self.credit("10000")

        with self.assertLogs("billing.services", level="WARNING"):
            adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.balance_due, Decimal("0"))
        self.assertEqual(self.invoice.paid_amount, Decimal("35400"))
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertEqual(CreditNote.objects.get(id=credit.id).applied_amount, Decimal("3000"))

    def test_adjustment_against_forced_paid_invoice_is_rejected(self):
        update_payment_status(self.invoice.id, Invoice.Status.PAID)
        credit = self.credit("5000")

        result = adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)
        self.assertEqual(CreditNote.objects.get(id=credit.id).status, CreditNote.Status.PENDING)

    def test_adjustment_against_cancelled_invoice_is_rejected(self):
        update_payment_status(self.invoice.id, Invoice.Status.CANCELLED)
        credit = self.credit("5000")

        result = adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.balance_due, Decimal("35400"))
        self.assertEqual(CreditNote.objects.get(id=credit.id).applied_amount, Decimal("0"))

    def test_missing_invoice_leaves_credit_note_pending(self):
        credit = self.credit("100")

        result = adjust_credit_note_against_invoice(credit.id, "00000000-0000-0000-0000-000000000000")

        self.assertFalse(result.success)
        self.assertEqual(result.code, "not_found")
        self.assertEqual(CreditNote.objects.get(id=credit.id).status, CreditNote.Status.PENDING)

    def test_cancel_only_from_pending(self):
        pending = self.credit("100")
        adjusted = self.credit("200")
        adjust_credit_note_against_invoice(adjusted.id, self.invoice.id)

        self.assertTrue(cancel_credit_note(pending.id).success)
        self.assertEqual(CreditNote.objects.get(id=pending.id).status, CreditNote.Status.CANCELLED)
        self.assertFalse(cancel_credit_note(pending.id).success)
        self.assertFalse(cancel_credit_note(adjusted.id).success)

    def test_cancelled_note_cannot_be_adjusted(self):
        credit = self.credit("100")
        cancel_credit_note(credit.id)

        result = adjust_credit_note_against_invoice(credit.id, self.invoice.id)

        self.assertFalse(result.success)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.balance_due, Decimal("35400"))


class PurchaseInvoiceTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.supplier = self.make_party("Steel Traders", type=Party.Type.SUPPLIER)
        result = create_purchase_invoice(
            {"party_id": self.supplier.id, "invoice_number": "ST/88", "date": INVOICE_DATE, "total_amount": Decimal("1000")}
        )
        self.purchase = PurchaseInvoice.objects.get(id=result.id)

    def test_paid_amount_is_cumulative_and_capped(self):
        self.assertTrue(mark_purchase_invoice_paid(self.purchase.id, Decimal("400")).success)
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.payment_status, PurchaseInvoice.PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(self.purchase.balance_due, Decimal("600"))

        self.assertFalse(mark_purchase_invoice_paid(self.purchase.id, Decimal("300")).success)

        self.assertTrue(mark_purchase_invoice_paid(self.purchase.id, Decimal("5000")).success)
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.paid_amount, Decimal("1000"))
        self.assertEqual(self.purchase.balance_due, Decimal("0"))
        self.assertEqual(self.purchase.payment_status, PurchaseInvoice.PaymentStatus.PAID)

    def test_duplicate_supplier_invoice_number_conflicts(self):
        result = create_purchase_invoice(
            {"party_id": self.supplier.id, "invoice_number": "ST/88", "date": INVOICE_DATE, "total_amount": Decimal("5")}
        )

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")


class PartyStatementTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.party = self.make_party(receivable_balance=Decimal("1000"), payable_balance=Decimal("200"))
        self.po, _ = self.make_dispatched_po(party=self.party)
        invoice = self.make_invoice_row(po=self.po, party=self.party, number="SSI/INV/2024-25/001", on=date(2024, 6, 15), total="35400")
        Payment.objects.create(invoice=invoice, amount=Decimal("10000"), date=date(2024, 6, 15))
        Payment.objects.create(invoice=invoice, amount=Decimal("999"), date=date(2024, 6, 15), status=Payment.Status.BOUNCED)
        PurchaseInvoice.objects.create(
            party=self.party, invoice_number="SUP-7", date=date(2024, 6, 10), total_amount=Decimal("5000"), balance_due=Decimal("5000")
        )
        CreditNote.objects.create(
            party=self.party, credit_note_number="CN-001", date=date(2024, 6, 20), total_amount=Decimal("400")
        )
        CreditNote.objects.create(
            party=self.party,
            credit_note_number="CN-002",
            date=date(2024, 6, 21),
            total_amount=Decimal("50"),
            status=CreditNote.Status.CANCELLED,
        )

    def test_entries_are_chronological_with_running_balance(self):
        statement = get_party_statement(self.party.id)

        self.assertEqual(statement["opening_balance"], Decimal("800"))
        self.assertEqual(
            [entry["type"] for entry in statement["entries"]],
            ["PURCHASE", "SALE", "PAYMENT_RECEIVED", "CREDIT_NOTE"],
        )
        self.assertEqual(
            [entry["balance"] for entry in statement["entries"]],
            [Decimal("-4200"), Decimal("31200"), Decimal("21200"), Decimal("20800")],
        )
        self.assertEqual(statement["closing_balance"], Decimal("20800"))

    def test_date_window_keeps_opening_balance(self):
        statement = get_party_statement(self.party.id, date(2024, 6, 14), date(2024, 6, 16))

        self.assertEqual(len(statement["entries"]), 2)
        self.assertEqual(statement["opening_balance"], Decimal("800"))
        self.assertEqual(statement["closing_balance"], Decimal("26200"))

    def test_empty_statement_closes_at_opening_balance(self):
        other = self.make_party("Idle Party", receivable_balance=Decimal("75"))

        statement = get_party_statement(other.id)

        self.assertEqual(statement["entries"], [])
        self.assertEqual(statement["closing_balance"], Decimal("75"))

    def test_unknown_party_returns_none(self):
        self.assertIsNone(get_party_statement("00000000-0000-0000-0000-000000000000"))


class AgingTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.as_of = date(2024, 9, 30)
        self.party = self.make_party()
        self.other = self.make_party("Eicher")
        self.po, _ = self.make_dispatched_po(party=self.party)

    def test_bucket_boundaries_are_inclusive_on_upper_edge(self):
        self.assertEqual(aging_bucket(0), "current")
        self.assertEqual(aging_bucket(30), "current")
        self.assertEqual(aging_bucket(31), "days31_60")
        self.assertEqual(aging_bucket(60), "days31_60")
        self.assertEqual(aging_bucket(61), "days61_90")
        self.assertEqual(aging_bucket(90), "days61_90")
        self.assertEqual(aging_bucket(91), "days90_plus")

    def test_scenario_e_old_receivable_lands_in_ninety_plus(self):
        self.make_invoice_row(
            po=self.po, party=self.party, number="SSI/INV/2024-25/001", on=self.as_of - timedelta(days=95), total="1000"
        )

        rows = get_receivables_aging(self.as_of)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["days90_plus"], Decimal("1000"))
        self.assertEqual(rows[0]["current"], Decimal("0"))
        self.assertEqual(rows[0]["total"], Decimal("1000"))

    def test_receivables_net_of_payments_sorted_by_total(self):
        small = self.make_invoice_row(po=self.po, party=self.party, number="A-1", on=self.as_of - timedelta(days=10), total="500")
        Payment.objects.create(invoice=small, amount=Decimal("100"), date=self.as_of)
        self.make_invoice_row(po=self.po, party=self.other, number="A-2", on=self.as_of - timedelta(days=45), total="2000")
        self.make_invoice_row(
            po=self.po, party=self.other, number="A-3", on=self.as_of, total="9000", status=Invoice.Status.PAID
        )
        self.make_invoice_row(po=self.po, party=self.party, number="A-4", on=self.as_of + timedelta(days=3), total="50")

        rows = get_receivables_aging(self.as_of)

        self.assertEqual([row["party_name"] for row in rows], ["Eicher", "Ashok Leyland"])
        self.assertEqual(rows[0]["days31_60"], Decimal("2000"))
        self.assertEqual(rows[1]["current"], Decimal("450"))
        self.assertEqual(rows[1]["total"], Decimal("450"))

    def test_cancelled_invoices_are_left_out_of_receivables(self):
        self.make_invoice_row(
            po=self.po,
            party=self.party,
            number="C-1",
            on=self.as_of - timedelta(days=20),
            total="700",
            status=Invoice.Status.CANCELLED,
        )

        self.assertEqual(get_receivables_aging(self.as_of), [])

    def test_payables_use_balance_due(self):
        PurchaseInvoice.objects.create(
            party=self.other,
            invoice_number="P-1",
            date=self.as_of - timedelta(days=70),
            total_amount=Decimal("800"),
            paid_amount=Decimal("300"),
            balance_due=Decimal("500"),
            payment_status=PurchaseInvoice.PaymentStatus.PARTIALLY_PAID,
        )
        PurchaseInvoice.objects.create(
            party=self.party,
            invoice_number="P-2",
            date=self.as_of,
            total_amount=Decimal("100"),
            paid_amount=Decimal("100"),
            balance_due=Decimal("0"),
            payment_status=PurchaseInvoice.PaymentStatus.PAID,
        )

        rows = get_payables_aging(self.as_of)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["days61_90"], Decimal("500"))

    def test_outstanding_register_lists_oldest_first(self):
        self.make_invoice_row(po=self.po, party=self.party, number="B-2", on=self.as_of - timedelta(days=5), total="100")
        self.make_invoice_row(po=self.po, party=self.party, number="B-1", on=self.as_of - timedelta(days=40), total="300")
        self.make_invoice_row(
            po=self.po, party=self.party, number="B-3", on=self.as_of, total="100", status=Invoice.Status.CANCELLED
        )

        rows = outstanding_invoices(self.as_of)

        self.assertEqual([row["invoice_number"] for row in rows], ["B-1", "B-2"])
        self.assertEqual(rows[0]["days_overdue"], 40)
        self.assertEqual(rows[0]["outstanding_amount"], Decimal("300"))


class BillingApiTests(BillingFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.clerk = user_model.objects.create_user(username="clerk", password="pass1234", role="clerk")
        self.accountant = user_model.objects.create_user(username="accountant", password="pass1234", role="accountant")
        self.admin = user_model.objects.create_user(username="admin", password="pass1234", role="admin")
        self.party = self.make_party()
        self.po, self.line = self.make_dispatched_po(party=self.party)

    def post_invoice(self, qty="60"):
        return self.client.post(
            "/api/v1/invoices/",
            {
                "purchase_order_id": str(self.po.id),
                "date": "2024-06-15",
                "items": [{"po_line_item_id": str(self.line.id), "qty": qty, "rate": "500.00"}],
            },
            format="json",
        )

    def test_accountant_issues_invoice(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.post_invoice()

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        invoice = Invoice.objects.get(id=payload["id"])
        self.assertEqual(invoice.created_by, self.accountant)
        self.assertEqual(AuditLog.objects.get(entity="Invoice", action="CREATE").actor, self.accountant)

        detail = self.client.get(f"/api/v1/invoices/{invoice.id}/").json()
        self.assertEqual(detail["total_amount"], "35400.00")
        self.assertEqual(len(detail["line_items"]), 1)

    def test_clerk_cannot_issue_invoice(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.post_invoice()

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Invoice.objects.exists())

    def test_quantity_failure_returns_envelope(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.post_invoice(qty="61")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("exceeds invoiceable balance", payload["message"])
        self.assertEqual(payload["status"], 400)

    def test_missing_items_fail_serializer_validation(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.client.post(
            "/api/v1/invoices/", {"purchase_order_id": str(self.po.id), "date": "2024-06-15", "items": []}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Validation failed.")
        self.assertIn("items", response.json()["errors"])

    def test_payment_and_double_adjustment_over_http(self):
        invoice = Invoice.objects.get(id=self.issue(self.po, self.line, "60").id)
        credit = create_credit_note(
            {"party_id": self.party.id, "date": INVOICE_DATE, "items": [{"item_name": "Scrap", "qty": 1, "rate": 400}]}
        )
        self.client.force_authenticate(user=self.accountant)

        paid = self.client.post(
            "/api/v1/payments/",
            {"invoice_id": str(invoice.id), "amount": "1000.00", "date": "2024-06-20", "mode": "UPI"},
            format="json",
        )
        first = self.client.post(f"/api/v1/credit-notes/{credit.id}/adjust/", {"invoice_id": str(invoice.id)}, format="json")
        second = self.client.post(f"/api/v1/credit-notes/{credit.id}/adjust/", {"invoice_id": str(invoice.id)}, format="json")

        self.assertEqual(paid.status_code, 201)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["code"], "conflict")
        invoice.refresh_from_db()
        self.assertEqual(invoice.balance_due, Decimal("34000"))

    def test_bulk_mark_paid_requires_admin(self):
        invoice = Invoice.objects.get(id=self.issue(self.po, self.line, "10").id)
        body = {"ids": [str(invoice.id)]}

        self.client.force_authenticate(user=self.accountant)
        self.assertEqual(self.client.post("/api/v1/invoices/bulk-mark-paid/", body, format="json").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/invoices/bulk-mark-paid/", body, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "count": 1})

    def test_status_update_for_missing_invoice_is_404(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.client.post(
            "/api/v1/invoices/00000000-0000-0000-0000-000000000000/status/", {"status": "SENT"}, format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_statement_endpoint(self):
        self.issue(self.po, self.line, "10")
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get(f"/api/v1/parties/{self.party.id}/statement/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["party"]["name"], "Ashok Leyland")
        self.assertEqual(payload["closing_balance"], "5900.00")
        self.assertEqual(payload["entries"][0]["type"], "SALE")

    def test_statement_for_unknown_party_is_404(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/parties/00000000-0000-0000-0000-000000000000/statement/")

        self.assertEqual(response.status_code, 404)

    def test_aging_report_is_restricted_to_accounts(self):
        self.issue(self.po, self.line, "10")

        self.client.force_authenticate(user=self.clerk)
        self.assertEqual(self.client.get("/api/v1/reports/receivables-aging/").status_code, 403)

        self.client.force_authenticate(user=self.accountant)
        response = self.client.get("/api/v1/reports/receivables-aging/", {"as_of": "2024-06-20"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]["current"], "5900.00")

    def test_aging_report_csv_export(self):
        self.issue(self.po, self.line, "10")
        self.client.force_authenticate(user=self.accountant)

        response = self.client.get("/api/v1/reports/receivables-aging/", {"as_of": "2024-06-20", "export": "csv"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn(b"days90_plus", response.content)
