from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from billing.models import Invoice, InvoiceLineItem
from core.models import AuditLog
from orders.models import Division, OutwardGatePass, Party, POLineItem, PurchaseOrder
from orders.quantities import dispatch_balance, invoiceable_qty, receive_balance
from orders.services import (
    derive_po_status,
    get_pos_with_dispatches,
    record_inward_gate_pass,
    record_outward_gate_pass,
)


def make_purchase_order(po_number="PO-100", party=None, division=None, lines=((Decimal("100"), Decimal("500")),)):
    division = division or Division.objects.create(name=f"Division {po_number}", code=po_number[-3:])
    po = PurchaseOrder.objects.create(po_number=po_number, division=division, party=party, date=date(2024, 5, 2))
    for index, (qty, rate) in enumerate(lines, start=1):
        POLineItem.objects.create(
            purchase_order=po,
            part_number=f"P-{index:03d}",
            part_name=f"Bracket {index}",
            rate=rate,
            qty_ordered=qty,
        )
    return po


def receive_and_dispatch(po, line, received, dispatched, suffix="1"):
    if received:
        result = record_inward_gate_pass(
            {
                "gp_number": f"IGP-{po.po_number}-{suffix}",
                "date": date(2024, 5, 10),
                "purchase_order_id": po.id,
                "po_line_item_id": line.id,
                "qty": received,
            }
        )
        assert result.success, result.error
    if dispatched:
        result = record_outward_gate_pass(
            {
                "gp_number": f"OGP-{po.po_number}-{suffix}",
                "date": date(2024, 5, 20),
                "purchase_order_id": po.id,
                "po_line_item_id": line.id,
                "qty": dispatched,
            }
        )
        assert result.success, result.error
    line.refresh_from_db()
    return line


class QuantityLedgerTests(TestCase):
    def setUp(self):
        self.po = make_purchase_order()
        self.line = self.po.line_items.get()

    def test_balances_follow_cumulative_quantities(self):
        receive_and_dispatch(self.po, self.line, Decimal("80"), Decimal("60"))

        self.assertEqual(receive_balance(self.line), Decimal("20"))
        self.assertEqual(dispatch_balance(self.line), Decimal("20"))
        self.assertEqual(invoiceable_qty(self.line), Decimal("60"))

    def test_nothing_invoiceable_before_dispatch(self):
        self.assertEqual(invoiceable_qty(self.line), Decimal("0"))
        self.assertEqual(receive_balance(self.line), Decimal("100"))


class GatePassServiceTests(TestCase):
    def setUp(self):
        self.po = make_purchase_order(lines=((Decimal("10"), Decimal("100")), (Decimal("5"), Decimal("40"))))
        self.first, self.second = self.po.line_items.order_by("part_number")

    def test_inward_beyond_ordered_quantity_is_rejected(self):
        result = record_inward_gate_pass(
            {
                "gp_number": "IGP-1",
                "date": date(2024, 5, 10),
                "purchase_order_id": self.po.id,
                "po_line_item_id": self.first.id,
                "qty": Decimal("11"),
            }
        )

        self.assertFalse(result.success)
        self.assertIn("P-001", result.error)
        self.first.refresh_from_db()
        self.assertEqual(self.first.qty_received, Decimal("0"))

    def test_outward_beyond_received_quantity_is_rejected(self):
        receive_and_dispatch(self.po, self.first, Decimal("4"), None)

        result = record_outward_gate_pass(
            {
                "gp_number": "OGP-1",
                "date": date(2024, 5, 20),
                "purchase_order_id": self.po.id,
                "po_line_item_id": self.first.id,
                "qty": Decimal("5"),
            }
        )

        self.assertFalse(result.success)
        self.assertEqual(result.code, "validation_error")
        self.assertFalse(OutwardGatePass.objects.exists())

    def test_non_positive_quantity_is_rejected(self):
        result = record_inward_gate_pass(
            {
                "gp_number": "IGP-0",
                "date": date(2024, 5, 10),
                "purchase_order_id": self.po.id,
                "po_line_item_id": self.first.id,
                "qty": Decimal("0"),
            }
        )

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Quantity must be greater than zero")

    def test_po_status_moves_from_open_to_completed(self):
        self.assertEqual(derive_po_status(self.po), PurchaseOrder.Status.OPEN)

        receive_and_dispatch(self.po, self.first, Decimal("10"), Decimal("10"), suffix="a")
        self.po.refresh_from_db()
        self.assertEqual(self.po.status, PurchaseOrder.Status.PARTIALLY_FULFILLED)

        receive_and_dispatch(self.po, self.second, Decimal("5"), Decimal("5"), suffix="b")
        self.po.refresh_from_db()
        self.assertEqual(self.po.status, PurchaseOrder.Status.COMPLETED)

    def test_cancelled_po_rejects_gate_passes(self):
        self.po.status = PurchaseOrder.Status.CANCELLED
        self.po.save(update_fields=["status"])

        result = record_inward_gate_pass(
            {
                "gp_number": "IGP-X",
                "date": date(2024, 5, 10),
                "purchase_order_id": self.po.id,
                "po_line_item_id": self.first.id,
                "qty": Decimal("1"),
            }
        )

        self.assertFalse(result.success)
        self.assertEqual(result.code, "conflict")

    def test_duplicate_gate_pass_number_maps_to_conflict(self):
        receive_and_dispatch(self.po, self.first, Decimal("2"), None, suffix="dup")

        result = record_inward_gate_pass(
            {
                "gp_number": f"IGP-{self.po.po_number}-dup",
                "date": date(2024, 5, 11),
                "purchase_order_id": self.po.id,
                "po_line_item_id": self.first.id,
                "qty": Decimal("1"),
            }
        )

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Gate pass number already exists")
        self.first.refresh_from_db()
        self.assertEqual(self.first.qty_received, Decimal("2"))

    def test_gate_pass_is_audited(self):
        receive_and_dispatch(self.po, self.first, Decimal("3"), Decimal("2"))

        self.assertEqual(AuditLog.objects.filter(entity="InwardGatePass", action="CREATE").count(), 1)
        self.assertEqual(AuditLog.objects.filter(entity="OutwardGatePass", action="CREATE").count(), 1)


class POsWithDispatchesTests(TestCase):
    def test_only_dispatched_lines_of_live_orders_are_listed(self):
        dispatched = make_purchase_order("PO-201", lines=((Decimal("10"), Decimal("10")), (Decimal("10"), Decimal("10"))))
        first = dispatched.line_items.order_by("part_number").first()
        receive_and_dispatch(dispatched, first, Decimal("6"), Decimal("6"))

        make_purchase_order("PO-202")

        cancelled = make_purchase_order("PO-203")
        receive_and_dispatch(cancelled, cancelled.line_items.get(), Decimal("5"), Decimal("5"))
        cancelled.status = PurchaseOrder.Status.CANCELLED
        cancelled.save(update_fields=["status"])

        results = get_pos_with_dispatches()

        self.assertEqual([row["purchase_order"].po_number for row in results], ["PO-201"])
        self.assertEqual(len(results[0]["line_items"]), 1)
        self.assertEqual(results[0]["line_items"][0]["line_item"].id, first.id)
        self.assertEqual(results[0]["line_items"][0]["invoiceable_qty"], Decimal("6"))

    def test_over_invoiced_line_is_skipped_without_failing_the_listing(self):
        healthy = make_purchase_order("PO-211")
        receive_and_dispatch(healthy, healthy.line_items.get(), Decimal("4"), Decimal("4"))
        faulty = make_purchase_order("PO-212")
        faulty_line = receive_and_dispatch(faulty, faulty.line_items.get(), Decimal("3"), Decimal("3"))
        invoice = Invoice.objects.create(
            invoice_number="SSI/INV/2024-25/001",
            date=date(2024, 5, 25),
            purchase_order=faulty,
            subtotal=Decimal("5"),
            total_amount=Decimal("5"),
            balance_due=Decimal("5"),
        )
        InvoiceLineItem.objects.create(
            invoice=invoice,
            po_line_item=faulty_line,
            part_number=faulty_line.part_number,
            part_name=faulty_line.part_name,
            qty=Decimal("5"),
            rate=Decimal("1"),
            amount=Decimal("5"),
        )

        with self.assertLogs("orders", level="WARNING") as logs:
            results = get_pos_with_dispatches()

        self.assertEqual([row["purchase_order"].po_number for row in results], ["PO-211"])
        self.assertTrue(any("Skipping over-invoiced line" in line for line in logs.output))


class OrdersApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.clerk = user_model.objects.create_user(username="clerk", password="pass1234", role="clerk")
        self.accountant = user_model.objects.create_user(username="accountant", password="pass1234", role="accountant")
        self.admin = user_model.objects.create_user(username="admin", password="pass1234", role="admin")
        self.party = Party.objects.create(name="Tata Motors", type=Party.Type.CUSTOMER)
        self.po = make_purchase_order("PO-301", party=self.party)
        self.line = self.po.line_items.get()

    def test_clerk_records_inward_gate_pass(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.post(
            "/api/v1/gate-passes/inward/",
            {
                "gp_number": "IGP-301",
                "date": "2024-05-10",
                "purchase_order_id": str(self.po.id),
                "po_line_item_id": str(self.line.id),
                "qty": "25.00",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["success"])
        self.line.refresh_from_db()
        self.assertEqual(self.line.qty_received, Decimal("25"))

    def test_accountant_cannot_record_gate_pass(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.client.post(
            "/api/v1/gate-passes/outward/",
            {
                "gp_number": "OGP-301",
                "date": "2024-05-10",
                "purchase_order_id": str(self.po.id),
                "po_line_item_id": str(self.line.id),
                "qty": "1",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_rejected_gate_pass_uses_error_envelope(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.post(
            "/api/v1/gate-passes/outward/",
            {
                "gp_number": "OGP-302",
                "date": "2024-05-10",
                "purchase_order_id": str(self.po.id),
                "po_line_item_id": str(self.line.id),
                "qty": "1",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["code", "errors", "message", "status"])
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("P-001", payload["message"])

    def test_admin_creates_purchase_order_with_lines(self):
        self.client.force_authenticate(user=self.admin)
        division = self.po.division

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "po_number": "PO-400",
                "division": str(division.id),
                "party": str(self.party.id),
                "date": "2024-06-01",
                "line_items": [
                    {"part_number": "X-1", "part_name": "Flange", "unit": "NOS", "rate": "120.00", "qty_ordered": "40"},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        po = PurchaseOrder.objects.get(po_number="PO-400")
        self.assertEqual(po.status, PurchaseOrder.Status.OPEN)
        self.assertEqual(po.line_items.get().qty_ordered, Decimal("40"))
        self.assertTrue(AuditLog.objects.filter(entity="PurchaseOrder", action="CREATE", entity_id=str(po.id)).exists())

    def test_clerk_cannot_create_purchase_order(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.post("/api/v1/purchase-orders/", {"po_number": "PO-401"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_with_dispatches_lists_invoiceable_lines(self):
        receive_and_dispatch(self.po, self.line, Decimal("30"), Decimal("20"))
        self.client.force_authenticate(user=self.accountant)

        response = self.client.get("/api/v1/purchase-orders/with-dispatches/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload), 1)
        self.assertEqual(payload[0]["po_number"], "PO-301")
        self.assertEqual(payload[0]["line_items"][0]["invoiceable_qty"], "20.00")
