import logging
import uuid

from django.db import models
from rest_framework import authentication, exceptions

logger = logging.getLogger(__name__)


class Role(models.TextChoices):
    ADMIN = "admin", "Admin"
    OWNER = "owner", "Coffee shop owner"
    CUSTOMER = "customer", "Customer"


class CallerIdentity:
    """
    The already-authenticated caller, as forwarded by the API gateway.

    Quacks enough like a Django user for DRF permission checks.
    """

    is_authenticated = True
    is_anonymous = False

    def __init__(self, user_id: uuid.UUID, role: Role):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    def __str__(self):
        return f"{self.role}:{self.user_id}"


class GatewayHeaderAuthentication(authentication.BaseAuthentication):
    """
    Build the request identity from the X-User-Id / X-User-Role headers.

    Session and token validation happen upstream; a request without the
    headers is treated as anonymous and a request with malformed headers is
    rejected.
    """

    user_header = "HTTP_X_USER_ID"
    role_header = "HTTP_X_USER_ROLE"

    def authenticate(self, request):
        raw_user_id = request.META.get(self.user_header)
        if not raw_user_id:
            return None

        try:
            user_id = uuid.UUID(raw_user_id)
        except ValueError:
            logger.warning("Rejected malformed user id header: %s", raw_user_id)
            raise exceptions.AuthenticationFailed("Invalid user identifier.")

        raw_role = (request.META.get(self.role_header) or Role.CUSTOMER).lower()
        if raw_role not in Role.values:
            logger.warning("Rejected unknown role header: %s", raw_role)
            raise exceptions.AuthenticationFailed("Unknown role.")

        return CallerIdentity(user_id, Role(raw_role)), None

    def authenticate_header(self, request):
        return "X-User-Id"
