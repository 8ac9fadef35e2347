"""
Tests for credentials, registration/login and admin user management.
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from jose import jwt
from rest_framework.test import APIClient

from catalog.models import Category, Product
from core.exceptions import InvalidToken
from orders.services import create_order
from .credentials import Identity, hash_password, issue_token, verify_password, verify_token
from .models import User

JANE = Identity(id=3, email='jane@example.com', name='Jane', role='USER')


class CredentialTestCase(SimpleTestCase):

    def test_hash_and_verify(self):
        hashed = hash_password('secret123')
        self.assertNotEqual(hashed, 'secret123')
        self.assertTrue(verify_password('secret123', hashed))
        self.assertFalse(verify_password('secret124', hashed))

    def test_hashes_are_salted(self):
        self.assertNotEqual(hash_password('secret123'), hash_password('secret123'))

    def test_token_round_trip(self):
        self.assertEqual(verify_token(issue_token(JANE)), JANE)

    def test_expired_token_is_rejected(self):
        token = issue_token(JANE, expires_in=timedelta(seconds=-1))
        with self.assertRaises(InvalidToken):
            verify_token(token)

    def test_tampered_token_is_rejected(self):
        header, payload, signature = issue_token(JANE).split('.')
        tampered = '.'.join([header, payload, signature[::-1]])
        with self.assertRaises(InvalidToken):
            verify_token(tampered)

    def test_token_signed_with_other_secret_is_rejected(self):
        forged = jwt.encode(
            {'sub': '3', 'email': JANE.email, 'name': JANE.name, 'role': 'ADMIN'},
            'not-the-secret',
            algorithm='HS256',
        )
        with self.assertRaises(InvalidToken):
            verify_token(forged)

    def test_token_carries_identity_claims_only(self):
        claims = jwt.get_unverified_claims(issue_token(JANE))
        self.assertEqual(set(claims), {'sub', 'email', 'name', 'role', 'iat', 'exp'})
        self.assertEqual(claims['sub'], '3')


@override_settings(RATE_LIMIT_ENABLED=False)
class AuthAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user('jane@example.com', 'Jane', password='secret123')

    def test_register(self):
        response = self.client.post(
            '/api/auth/register/',
            {'name': 'John', 'email': 'john@example.com', 'password': 'secret123'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['user']['role'], 'USER')
        self.assertNotIn('password', response.data['user'])
        self.assertEqual(verify_token(response.data['token']).email, 'john@example.com')

        stored = User.objects.get(email='john@example.com')
        self.assertNotEqual(stored.password, 'secret123')
        self.assertTrue(verify_password('secret123', stored.password))

    def test_register_ignores_role(self):
        response = self.client.post(
            '/api/auth/register/',
            {'name': 'Eve', 'email': 'eve@example.com', 'password': 'secret123', 'role': 'ADMIN'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(User.objects.get(email='eve@example.com').role, User.Role.USER)

    def test_register_duplicate_email(self):
        """Scenario: registering an existing email -> 400, no new row."""
        response = self.client.post(
            '/api/auth/register/',
            {'name': 'Jane 2', 'email': 'Jane@example.com', 'password': 'secret123'},
            format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['detail'], 'Email already in use')
        self.assertEqual(User.objects.count(), 1)

    def test_register_short_password(self):
        response = self.client.post(
            '/api/auth/register/',
            {'name': 'John', 'email': 'john@example.com', 'password': '123'},
            format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Validation Error')
        self.assertIn('password', response.data['detail'])

    def test_login(self):
        response = self.client.post(
            '/api/auth/login/',
            {'email': 'jane@example.com', 'password': 'secret123'},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(verify_token(response.data['token']).id, self.user.id)
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)

    def test_login_failures_look_alike(self):
        wrong_password = self.client.post(
            '/api/auth/login/',
            {'email': 'jane@example.com', 'password': 'nope-nope'},
            format='json',
        )
        unknown_email = self.client.post(
            '/api/auth/login/',
            {'email': 'nobody@example.com', 'password': 'secret123'},
            format='json',
        )
        self.assertEqual(wrong_password.status_code, 401)
        self.assertEqual(unknown_email.status_code, 401)
        self.assertEqual(wrong_password.data, unknown_email.data)

    def test_me_requires_token(self):
        self.assertEqual(self.client.get('/api/auth/me/').status_code, 401)

    def test_me(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(Identity.from_user(self.user))}')
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['user']['email'], 'jane@example.com')

    def test_profile_update_cannot_change_role(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(Identity.from_user(self.user))}')
        response = self.client.patch(
            '/api/auth/me/', {'name': 'Janet', 'role': 'ADMIN'}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.name, 'Janet')
        self.assertEqual(self.user.role, User.Role.USER)


@override_settings(RATE_LIMIT_ENABLED=False)
class UserManagementAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            'admin@example.com', 'Admin', password='secret123', role=User.Role.ADMIN
        )
        self.user = User.objects.create_user('jane@example.com', 'Jane', password='secret123')
        self.as_user(self.admin)

    def as_user(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(Identity.from_user(user))}')

    def test_list_users(self):
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['pagination']['total'], 2)

    def test_users_endpoint_is_admin_only(self):
        self.as_user(self.user)
        self.assertEqual(self.client.get('/api/users/').status_code, 403)
        self.assertEqual(self.client.delete(f'/api/users/{self.admin.id}/').status_code, 403)
        self.assertTrue(User.objects.filter(id=self.admin.id).exists())

    def test_create_user_with_role(self):
        response = self.client.post(
            '/api/users/',
            {'name': 'Ops', 'email': 'ops@example.com', 'password': 'secret123', 'role': 'ADMIN'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['role'], 'ADMIN')

    def test_create_user_requires_fields(self):
        response = self.client.post('/api/users/', {'email': 'ops@example.com'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_create_duplicate_is_conflict(self):
        response = self.client.post(
            '/api/users/',
            {'name': 'Jane', 'email': 'jane@example.com', 'password': 'secret123'},
            format='json',
        )
        self.assertEqual(response.status_code, 409)

    def test_update_user_role(self):
        response = self.client.patch(f'/api/users/{self.user.id}/', {'role': 'ADMIN'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.Role.ADMIN)

    def test_admin_cannot_demote_self(self):
        response = self.client.patch(f'/api/users/{self.admin.id}/', {'role': 'USER'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.admin.refresh_from_db()
        self.assertEqual(self.admin.role, User.Role.ADMIN)

    def test_admin_cannot_delete_self(self):
        response = self.client.delete(f'/api/users/{self.admin.id}/')
        self.assertEqual(response.status_code, 400)

    def test_delete_user(self):
        response = self.client.delete(f'/api/users/{self.user.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(User.objects.filter(id=self.user.id).exists())

    def test_delete_customer_with_orders_is_conflict(self):
        category = Category.objects.create(name='Home')
        lamp = Product.objects.create(name='Lamp', price=Decimal('20.00'), stock=3, category=category)
        create_order(
            self.user.id,
            [{'product_id': lamp.id, 'quantity': 1}],
            {'line1': '1 Main St', 'city': 'Springfield', 'state': 'IL', 'postal_code': '62701', 'country': 'US'},
        )

        response = self.client.delete(f'/api/users/{self.user.id}/')

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['detail'], 'Cannot delete user: they have placed orders')
        self.assertTrue(User.objects.filter(id=self.user.id).exists())
        self.assertEqual(self.user.orders.count(), 1)

    def test_missing_user(self):
        self.assertEqual(self.client.get('/api/users/99999/').status_code, 404)


class CreateAdminCommandTestCase(TestCase):

    def test_creates_admin(self):
        call_command(
            'create_admin', email='root@example.com', password='secret123', name='Root',
            stdout=StringIO(),
        )
        self.assertEqual(User.objects.get(email='root@example.com').role, User.Role.ADMIN)

    def test_promotes_existing_user(self):
        User.objects.create_user('jane@example.com', 'Jane', password='secret123')
        call_command('create_admin', email='jane@example.com', password='secret123', stdout=StringIO())
        self.assertEqual(User.objects.get(email='jane@example.com').role, User.Role.ADMIN)
