from rest_framework.response import Response

from cafe.exceptions import SettlementError


def settlement_error_response(exc: SettlementError) -> Response:
    """Render a business error as {"error": ..., "code": ...}."""
    return Response(
        {"error": str(exc), "code": exc.code},
        status=exc.status_code,
    )
