# Overview: Maps service exceptions to JSON error responses.

from flask import jsonify, current_app

from .validation import ValidationError, ConflictError
from .services.catalog_service import CatalogError, CatalogPermissionError
from .services.customer_service import CustomerError
from .services.distribution_service import (
    DistributionError,
    InsufficientStockError,
    CodeNotRecognizedError,
)
from .services.ledger_service import LedgerError, VariantNotFoundError
from .services.movement_service import MovementValidationError
from .services.pos_service import PosError
from .services.pricing import PricingError
from .services.reporting_service import ReportError
from .services.shift_service import ShiftError
from .services.transaction_service import TransactionError

# Most specific first
_STATUS_BY_ERROR = (
    (VariantNotFoundError, 404),
    (CodeNotRecognizedError, 404),
    (InsufficientStockError, 409),
    (ConflictError, 409),
    (CatalogPermissionError, 403),
    (CatalogError, 404),
    (CustomerError, 404),
    (DistributionError, 400),
    (LedgerError, 400),
    (MovementValidationError, 400),
    (TransactionError, 400),
    (PosError, 400),
    (ShiftError, 400),
    (ReportError, 400),
    (PricingError, 400),
    (ValidationError, 400),
)


def status_for(exc: Exception) -> int | None:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return None


def service_error_response(exc: Exception):
    """
    JSON body + status for an exception raised under a route.

    Unknown exceptions are logged with their traceback and become 500s.
    """
    status = status_for(exc)
    if status is None:
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Unexpected error"}), 500

    body = {"error": getattr(exc, "message", None) or str(exc)}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), status
