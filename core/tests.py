import json
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import OperationResult, ServiceError, StateConflict, service_operation
from common.logging import JsonFormatter
from core.models import AuditLog
from orders.models import Division


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.clerk = self.user_model.objects.create_user(username="clerk-core", password="pass1234", role="clerk")
        self.admin = self.user_model.objects.create_user(username="admin-core", password="pass1234", role="admin")

    def test_me_returns_role(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role"], "clerk")

    def test_anonymous_request_gets_error_envelope(self):
        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_clerk_cannot_manage_divisions_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.clerk)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post("/api/v1/divisions/", {"name": "Chennai", "code": "che"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_division_create_writes_audit_log_with_request_id(self):
        self.client.force_authenticate(user=self.admin)

        res = self.client.post(
            "/api/v1/divisions/",
            {"name": "Pune", "code": "pun"},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 201)
        self.assertEqual(res["X-Request-ID"], "req-123")
        self.assertEqual(Division.objects.get().code, "PUN")
        self.assertTrue(AuditLog.objects.filter(action="CREATE", entity="Division", request_id="req-123").exists())


class AuditLogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="audit-admin", password="pass1234", role="admin")
        self.accountant = user_model.objects.create_user(username="audit-acct", password="pass1234", role="accountant")
        self.log = AuditLog.objects.create(action="CREATE", entity="Invoice", entity_id="abc", actor=self.admin)
        AuditLog.objects.create(action="ADJUST", entity="CreditNote", entity_id="xyz")

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{self.log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{self.log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_filter_by_entity(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"entity": "Invoice"})

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual([row["entity_id"] for row in results], ["abc"])
        self.assertEqual(results[0]["actor_username"], "audit-admin")

    def test_audit_logs_need_admin(self):
        self.client.force_authenticate(user=self.accountant)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)


class ServiceOperationTests(TestCase):
    def test_service_error_keeps_message_and_code(self):
        @service_operation(failure_message="Failed")
        def operation():
            raise StateConflict("Already done")

        result = operation()

        self.assertEqual(result, OperationResult(success=False, error="Already done", code="conflict"))

    def test_integrity_error_maps_to_conflict_message(self):
        @service_operation(failure_message="Failed", conflict_message="Number already exists")
        def operation():
            raise IntegrityError("duplicate key")

        with self.assertLogs("common.exceptions", level="WARNING"):
            result = operation()

        self.assertEqual(result.error, "Number already exists")
        self.assertEqual(result.code, "conflict")

    def test_unexpected_error_is_logged_and_hidden(self):
        @service_operation(failure_message="Failed to do the thing")
        def operation():
            raise RuntimeError("connection reset by peer")

        with self.assertLogs("common.exceptions", level="ERROR") as logs:
            result = operation()

        self.assertEqual(result.as_dict(), {"success": False, "error": "Failed to do the thing"})
        self.assertIn("connection reset by peer", "\n".join(logs.output))

    def test_success_passes_through(self):
        @service_operation(failure_message="Failed")
        def operation():
            return OperationResult.ok(count=3)

        self.assertEqual(operation().as_dict(), {"success": True, "count": 3})

    def test_plain_service_error_is_validation(self):
        self.assertEqual(ServiceError("bad").code, "validation_error")


class JsonFormatterTests(TestCase):
    def test_structured_fields_are_emitted(self):
        record = logging.LogRecord("billing.services", logging.INFO, __file__, 1, "Invoice issued", None, None)
        record.invoice_number = "SSI/INV/2024-25/001"
        record.attempt = 2

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "Invoice issued")
        self.assertEqual(payload["logger"], "billing.services")
        self.assertEqual(payload["invoice_number"], "SSI/INV/2024-25/001")
        self.assertEqual(payload["attempt"], 2)
        self.assertNotIn("request_id", payload)
