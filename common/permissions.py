import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ROLE_CAPABILITY_MATRIX = {
    "orders.view": {User.Role.CLERK, User.Role.ACCOUNTANT, User.Role.ADMIN},
    "orders.manage": {User.Role.ADMIN},
    "orders.gate_pass.record": {User.Role.CLERK, User.Role.ADMIN},
    "billing.view": {User.Role.CLERK, User.Role.ACCOUNTANT, User.Role.ADMIN},
    "billing.invoice.create": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "billing.invoice.status": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "billing.payment.record": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "billing.payment.bulk": {User.Role.ADMIN},
    "billing.credit_note.manage": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "billing.purchase.manage": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "reports.view": {User.Role.ACCOUNTANT, User.Role.ADMIN},
    "audit.view": {User.Role.ADMIN},
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    role = getattr(user, "role", None)
    if role:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.CLERK


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


class RoleCapabilityPermission(BasePermission):
    """Checks the capability mapped to the view action (or HTTP method) against the user's role."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
            )
        return allowed
