from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger("vtl")


# ---------------------------------------------------------------------
# Ledger error taxonomy
# ---------------------------------------------------------------------

class LedgerError(Exception):
    """
    Base class for every domain error raised by the ledger apps.

    `code` is the stable machine-readable kind, `http_status` is what the
    synchronous API answers with, and `retryable` tells the async pipeline
    whether redelivery can possibly succeed.
    """
    code = "ledger_error"
    http_status = status.HTTP_400_BAD_REQUEST
    retryable = False
    default_detail = "Ledger error."

    def __init__(self, detail=None, **context):
        self.detail = detail or self.default_detail
        self.context = context
        super().__init__(self.detail)

    def as_dict(self):
        data = {"code": self.code, "detail": self.detail}
        if self.context:
            data["context"] = self.context
        return data


class InvalidTransition(LedgerError):
    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT
    default_detail = "This transition is not allowed from the current status."


class Unauthorized(LedgerError):
    code = "unauthorized"
    http_status = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action."


class ConcurrentModification(LedgerError):
    code = "concurrent_modification"
    http_status = status.HTTP_409_CONFLICT
    retryable = True
    default_detail = "The activity changed since it was read. Re-read and retry."


class ProofTampered(LedgerError):
    code = "proof_tampered"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Proof content does not match its recorded hash. Re-upload the proof."


class LedgerInconsistency(LedgerError):
    code = "ledger_inconsistency"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Activity status disagrees with its transition history."


class IssuanceUnavailable(LedgerError):
    code = "issuance_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
    default_detail = "Credential issuance is temporarily unavailable."


class Timeout(LedgerError):
    code = "timeout"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
    default_detail = "The request could not be completed in time. It is safe to retry."


class InvalidSignature(LedgerError):
    code = "invalid_signature"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Request signature is invalid."


class NotFound(LedgerError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class ImmutableRecord(LedgerError):
    code = "immutable_record"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Ledger records cannot be updated or deleted."


# ---------------------------------------------------------------------
# DRF exception handler
# ---------------------------------------------------------------------

def custom_exception_handler(exc, context):
    """
    Wrap DRF, Django and ledger exceptions into a consistent response format.

    Success responses (2xx) are not touched.
    Only errors come through here.
    """
    if isinstance(exc, LedgerError):
        view = context.get("view")
        logger.info(
            f"Ledger error {exc.code} in {view.__class__.__name__ if view else 'unknown'}: {exc.detail}"
        )
        return Response(
            {
                "success": False,
                "status_code": exc.http_status,
                "errors": exc.as_dict(),
            },
            status=exc.http_status,
        )

    response = drf_exception_handler(exc, context)

    # If DRF handled it, wrap it
    if response is not None:
        return Response(
            {
                "success": False,
                "status_code": response.status_code,
                "errors": response.data,
            },
            status=response.status_code,
        )

    # Unhandled exceptions -> 500
    logger.exception("Unhandled API exception", exc_info=exc)

    return Response(
        {
            "success": False,
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "errors": {"detail": "Internal server error."},
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
