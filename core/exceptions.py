"""
Error taxonomy and the DRF exception handler that renders it.

Every error leaves the API as JSON:
    {"error": "<kind>", "detail": <message or field errors>}
"""
import logging

from django.db.models import ProtectedError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base class for errors with a defined HTTP mapping."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = 'Server Error'
    default_detail = 'An unexpected error occurred'

    def __init__(self, detail=None):
        self.detail = detail if detail is not None else self.default_detail
        super().__init__(self.detail)


class ValidationError(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = 'Validation Error'
    default_detail = 'Invalid input'


class Unauthorized(StorefrontError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = 'Unauthorized'
    default_detail = 'Authentication required'


class InvalidToken(Unauthorized):
    """Token is malformed, badly signed or expired."""
    default_detail = 'Invalid token'


class Forbidden(StorefrontError):
    status_code = status.HTTP_403_FORBIDDEN
    error = 'Forbidden'
    default_detail = 'Admin access required'


class NotFound(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    error = 'Not Found'
    default_detail = 'Not found'


class Conflict(StorefrontError):
    status_code = status.HTTP_409_CONFLICT
    error = 'Conflict'
    default_detail = 'Resource already exists'


class InvalidTransition(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = 'Invalid Transition'

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}")


class InsufficientStock(Conflict):
    """Raised when one or more items request more units than are in stock."""
    error = 'Insufficient Stock'

    def __init__(self, shortages):
        self.shortages = shortages
        details = "; ".join(
            f"{s['name']}: requested {s['requested']}, available {s['available']}"
            for s in shortages
        )
        super().__init__(f"Insufficient stock: {details}")


class PersistenceError(StorefrontError):
    error = 'Persistence Error'
    default_detail = 'The operation could not be completed'


def _envelope(error, detail, status_code, headers=None):
    return Response({'error': error, 'detail': detail}, status=status_code, headers=headers)


def api_exception_handler(exc, context):
    """
    REST_FRAMEWORK['EXCEPTION_HANDLER'].

    Maps the taxonomy above, reshapes DRF's own errors into the same
    envelope and turns anything unexpected into a generic 500.
    """
    view = context.get('view')
    view_name = view.__class__.__name__ if view is not None else 'unknown'

    if isinstance(exc, StorefrontError):
        if exc.status_code >= 500:
            logger.error(f"{view_name}: {exc.error}: {exc.detail}", exc_info=exc.__cause__ or exc)
        else:
            logger.warning(f"{view_name}: {exc.error}: {exc.detail}")
        return _envelope(exc.error, exc.detail, exc.status_code)

    if isinstance(exc, ProtectedError):
        logger.warning(f"{view_name}: delete blocked by dependent rows")
        return _envelope(
            Conflict.error,
            'Cannot delete: other records still reference this one',
            status.HTTP_409_CONFLICT,
        )

    response = exception_handler(exc, context)
    if response is not None:
        data = response.data
        if isinstance(data, dict) and set(data) == {'detail'}:
            data = data['detail']
        error = 'Validation Error' if response.status_code == 400 else response.status_text
        response.data = {'error': error, 'detail': data}
        return response

    logger.exception(f"Unexpected error in {view_name}: {exc}")
    return _envelope(
        StorefrontError.error,
        StorefrontError.default_detail,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
