"""
Access control decorators for DRF view methods.

    class OrderDetailView(APIView):
        @require_admin
        def patch(self, request, identity, pk):
            ...

The decorated method receives the verified Identity as its first argument
after ``request``. Errors raised by the method itself propagate unchanged.
"""
import logging
from functools import wraps

from accounts.credentials import verify_token
from .exceptions import Forbidden, InvalidToken, Unauthorized

logger = logging.getLogger(__name__)

BEARER_PREFIX = 'Bearer '


def get_bearer_token(request):
    """Return the token from ``Authorization: Bearer <token>``, or None."""
    header = request.headers.get('Authorization', '')
    if not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def authenticate(request):
    token = get_bearer_token(request)
    if token is None:
        raise Unauthorized('Unauthorized: No token provided')
    try:
        return verify_token(token)
    except InvalidToken as e:
        logger.info(f"Rejected bearer token on {request.method} {request.path}: {e.detail}")
        raise Unauthorized('Unauthorized: Invalid token') from e


def require_auth(view_func):
    """Only run ``view_func`` for requests carrying a valid bearer token."""
    @wraps(view_func)
    def wrapper(self, request, *args, **kwargs):
        identity = authenticate(request)
        return view_func(self, request, identity, *args, **kwargs)
    return wrapper


def require_admin(view_func):
    """As require_auth, and the token's role must be ADMIN."""
    @wraps(view_func)
    def wrapper(self, request, *args, **kwargs):
        identity = authenticate(request)
        if not identity.is_admin:
            logger.warning(
                f"User {identity.id} ({identity.role}) denied admin access to "
                f"{request.method} {request.path}"
            )
            raise Forbidden('Forbidden: Admin access required')
        return view_func(self, request, identity, *args, **kwargs)
    return wrapper
