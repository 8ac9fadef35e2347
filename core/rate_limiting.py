"""
Redis-based rate limiting for the authentication endpoints.

Fixed window counter per (view, client IP). Fails open: when Redis is
unreachable or RATE_LIMIT_ENABLED is off, requests pass through.
"""
import logging
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_unavailable = False


def get_redis_client():
    """Connect on first use; remember a failed connection for the process lifetime."""
    global _redis_client, _redis_unavailable
    if _redis_client is not None or _redis_unavailable:
        return _redis_client
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
        )
        client.ping()
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will be disabled.")
        _redis_unavailable = True
        return None
    _redis_client = client
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def hit(client, key, window_seconds):
    """Count one request against ``key``; return (count, seconds until reset)."""
    count = client.incr(key)
    if count == 1:
        client.expire(key, window_seconds)
    return count, client.ttl(key)


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    Limit a DRF view method to ``max_requests`` per ``window_seconds`` per IP.

    Usage:
        @rate_limit(max_requests=10, window_seconds=60)
        def post(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
                return view_func(self, request, *args, **kwargs)
            client = get_redis_client()
            if client is None:
                return view_func(self, request, *args, **kwargs)

            key = f"rate_limit:{self.__class__.__name__}.{view_func.__name__}:{get_client_ip(request)}"
            try:
                count, ttl = hit(client, key, window_seconds)
            except redis.RedisError as e:
                logger.error(f"Redis error in rate limiting: {e}")
                return view_func(self, request, *args, **kwargs)

            if count > max_requests:
                logger.warning(f"Rate limit exceeded for {key}")
                return Response(
                    {
                        'error': 'Rate limit exceeded',
                        'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                        'retry_after': ttl,
                    },
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers={
                        'X-RateLimit-Limit': str(max_requests),
                        'X-RateLimit-Remaining': '0',
                        'X-RateLimit-Reset': str(ttl),
                        'Retry-After': str(ttl),
                    },
                )

            response = view_func(self, request, *args, **kwargs)
            response['X-RateLimit-Limit'] = str(max_requests)
            response['X-RateLimit-Remaining'] = str(max(0, max_requests - count))
            response['X-RateLimit-Reset'] = str(ttl)
            return response
        return wrapper
    return decorator
