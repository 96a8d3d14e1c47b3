from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

# Extra attributes copied from a log record into the JSON payload when present.
STRUCTURED_FIELDS = (
    "request_id",
    "path",
    "method",
    "status_code",
    "duration_ms",
    "user_id",
    "invoice_id",
    "invoice_number",
    "credit_note_id",
    "credit_note_number",
    "document_number",
    "purchase_order_id",
    "po_line_item_id",
    "party_id",
    "amount",
    "attempt",
    "count",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value) if not isinstance(value, (int, float, bool)) else value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


class RequestLogMiddleware:
    """Attach/propagate request ID and emit per-request access logs."""

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        started_at = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.request_id = request_id

        response = self.get_response(request)

        user = getattr(request, "user", None)
        user_id = str(user.id) if user is not None and getattr(user, "is_authenticated", False) else None

        self.logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started_at) * 1000, 2),
                "user_id": user_id,
            },
        )
        response["X-Request-ID"] = request_id
        return response
