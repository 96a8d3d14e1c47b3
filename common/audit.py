import json

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog


def _json_safe(value):
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def get_request_id(request):
    if request is None:
        return None
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def create_audit_log(*, entity, action, entity_id=None, changes=None, actor=None, request_id=None):
    """Append one audit row. Callers inside a transaction get it rolled back with them."""
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None

    return AuditLog.objects.create(
        actor=actor,
        entity=entity,
        action=action,
        entity_id=str(entity_id) if entity_id is not None else None,
        changes=_json_safe(changes),
        request_id=request_id,
    )


def audit_context_from_request(request):
    """Keyword arguments the service layer accepts for audit attribution."""
    user = getattr(request, "user", None)
    return {
        "actor": user if user is not None and user.is_authenticated else None,
        "request_id": get_request_id(request),
    }
