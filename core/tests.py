"""
Tests for the error envelope, access control decorators and rate limiting.
"""
from unittest.mock import MagicMock, patch

import redis
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory
from rest_framework.views import APIView

from accounts.credentials import Identity, issue_token
from core import rate_limiting
from core.access_control import get_bearer_token, require_admin, require_auth
from core.exceptions import (
    Conflict,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PersistenceError,
    api_exception_handler,
)
from core.rate_limiting import rate_limit

factory = APIRequestFactory()

CUSTOMER = Identity(id=7, email='jane@example.com', name='Jane', role='USER')
ADMIN = Identity(id=1, email='admin@example.com', name='Admin', role='ADMIN')


class ProbeView(APIView):
    calls = []

    @require_auth
    def get(self, request, identity):
        self.calls.append(('get', identity))
        return Response({'id': identity.id})

    @require_admin
    def delete(self, request, identity, pk):
        self.calls.append(('delete', identity, pk))
        return Response({'deleted': pk})


class LimitedView(APIView):

    @rate_limit(max_requests=2, window_seconds=30)
    def post(self, request):
        return Response({'ok': True})


class ExceptionHandlerTestCase(SimpleTestCase):

    def test_storefront_errors_use_envelope(self):
        response = api_exception_handler(NotFound('Order 3 not found'), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'error': 'Not Found', 'detail': 'Order 3 not found'})

    def test_insufficient_stock_is_conflict(self):
        exc = InsufficientStock([{'name': 'Lamp', 'requested': 3, 'available': 1}])
        response = api_exception_handler(exc, {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'Insufficient Stock')
        self.assertIn('Lamp: requested 3, available 1', response.data['detail'])
        self.assertIsInstance(exc, Conflict)

    def test_invalid_transition_message(self):
        response = api_exception_handler(InvalidTransition('DELIVERED', 'PENDING'), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.data['detail'], 'Cannot change order status from DELIVERED to PENDING'
        )

    def test_persistence_error_is_500(self):
        response = api_exception_handler(PersistenceError(), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data['error'], 'Persistence Error')

    def test_drf_errors_are_reshaped(self):
        response = api_exception_handler(NotAuthenticated(), {})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(set(response.data), {'error', 'detail'})

    def test_unexpected_error_hides_details(self):
        with self.assertLogs('core.exceptions', level='ERROR'):
            response = api_exception_handler(RuntimeError('secret internals'), {})
        self.assertEqual(response.status_code, 500)
        self.assertNotIn('secret internals', str(response.data))


class AccessControlTestCase(SimpleTestCase):

    def setUp(self):
        ProbeView.calls = []
        self.view = ProbeView.as_view()

    def request(self, method, token=None):
        headers = {'HTTP_AUTHORIZATION': f'Bearer {token}'} if token else {}
        return getattr(factory, method)('/probe/', **headers)

    def test_missing_token_is_401(self):
        response = self.view(self.request('get'))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['detail'], 'Unauthorized: No token provided')
        self.assertEqual(ProbeView.calls, [])

    def test_invalid_token_is_401(self):
        response = self.view(self.request('get', token='garbage'))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['detail'], 'Unauthorized: Invalid token')

    def test_valid_token_passes_identity(self):
        response = self.view(self.request('get', token=issue_token(CUSTOMER)))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(ProbeView.calls, [('get', CUSTOMER)])

    def test_non_admin_is_403_and_handler_never_runs(self):
        response = self.view(self.request('delete', token=issue_token(CUSTOMER)), pk=5)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['detail'], 'Forbidden: Admin access required')
        self.assertEqual(ProbeView.calls, [])

    def test_admin_reaches_handler(self):
        response = self.view(self.request('delete', token=issue_token(ADMIN)), pk=5)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(ProbeView.calls, [('delete', ADMIN, 5)])

    def test_bearer_token_parsing(self):
        self.assertIsNone(get_bearer_token(factory.get('/', HTTP_AUTHORIZATION='Basic abc')))
        self.assertIsNone(get_bearer_token(factory.get('/', HTTP_AUTHORIZATION='Bearer ')))
        self.assertEqual(get_bearer_token(factory.get('/', HTTP_AUTHORIZATION='Bearer abc')), 'abc')


@override_settings(RATE_LIMIT_ENABLED=True)
class RateLimitTestCase(TestCase):

    def setUp(self):
        self.view = LimitedView.as_view()
        self.redis = MagicMock()
        self.redis.ttl.return_value = 30

    def post(self):
        return self.view(factory.post('/limited/', {}, format='json', REMOTE_ADDR='10.0.0.1'))

    def test_requests_within_limit_pass(self):
        self.redis.incr.return_value = 1
        with patch('core.rate_limiting.get_redis_client', return_value=self.redis):
            response = self.post()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['X-RateLimit-Remaining'], '1')
        self.redis.incr.assert_called_once_with('rate_limit:LimitedView.post:10.0.0.1')
        self.redis.expire.assert_called_once_with('rate_limit:LimitedView.post:10.0.0.1', 30)

    def test_request_over_limit_is_429(self):
        self.redis.incr.return_value = 3
        with patch('core.rate_limiting.get_redis_client', return_value=self.redis):
            response = self.post()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response['Retry-After'], '30')
        self.redis.expire.assert_not_called()

    def test_fails_open_without_redis(self):
        with patch('core.rate_limiting.get_redis_client', return_value=None):
            self.assertEqual(self.post().status_code, 200)

    def test_fails_open_on_redis_error(self):
        self.redis.incr.side_effect = redis.ConnectionError('gone')
        with patch('core.rate_limiting.get_redis_client', return_value=self.redis):
            self.assertEqual(self.post().status_code, 200)

    @override_settings(RATE_LIMIT_ENABLED=False)
    def test_disabled_by_setting(self):
        with patch('core.rate_limiting.get_redis_client') as get_client:
            self.assertEqual(self.post().status_code, 200)
        get_client.assert_not_called()

    def test_unreachable_redis_is_remembered(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError('refused')
        with patch.object(rate_limiting, '_redis_client', None), \
                patch.object(rate_limiting, '_redis_unavailable', False), \
                patch('core.rate_limiting.redis.Redis.from_url', return_value=client) as from_url:
            self.assertIsNone(rate_limiting.get_redis_client())
            self.assertIsNone(rate_limiting.get_redis_client())
        from_url.assert_called_once()
