from rest_framework.response import Response
from rest_framework import status

from core.exceptions import Unauthorized
from activities.policies import Actor, ActivityPolicy


def api_error(message, status_code=status.HTTP_400_BAD_REQUEST):
    """
    Validation errors share the envelope produced by the exception handler
    for domain errors.
    """
    return Response(
        {"success": False, "status_code": status_code, "errors": message},
        status=status_code,
    )


def current_actor(request) -> Actor:
    """
    Identity context for the request. Users without a tenant cannot act on
    any activity.
    """
    user = request.user
    if not getattr(user, "tenant_id", None):
        raise Unauthorized("Your account is not attached to an institution.")
    return Actor.from_user(user)


def require_operator(request) -> Actor:
    actor = current_actor(request)
    if not ActivityPolicy.can_operate(actor):
        raise Unauthorized("Only tenant administrators can use this endpoint.")
    return actor


def parse_pagination(request, default_limit=50, max_limit=100):
    """
    Returns (limit, offset) or raises ValueError on garbage input.
    """
    limit = int(request.query_params.get("limit", default_limit))
    offset = int(request.query_params.get("offset", 0))
    return max(1, min(limit, max_limit)), max(0, offset)
