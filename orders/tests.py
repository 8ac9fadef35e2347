"""
Tests for order placement and the status lifecycle.

Test Cases:
1. Order placed with sufficient stock; stock deducted
2. Insufficient stock rejects the whole order with no writes
3. Cancellation restores stock exactly once
4. Terminal statuses refuse every transition
5. Order visibility is scoped to the owner unless admin
6. HTTP surface: status codes, auth and admin gating
7. Concurrent placement does not oversell (PostgreSQL only)
"""
import threading
from datetime import timedelta
from decimal import Decimal
from unittest import skipUnless
from unittest.mock import patch

from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.credentials import Identity, issue_token
from accounts.models import User
from catalog.models import Category, Product
from core.exceptions import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PersistenceError,
    ValidationError,
)
from orders import services
from orders.models import Address, Order, OrderItem
from orders.services import create_order, list_orders, update_order_status

SHIPPING = {
    'name': 'Jane Doe',
    'line1': '1 Main Street',
    'city': 'Springfield',
    'state': 'IL',
    'postal_code': '62701',
    'country': 'US',
}


def bearer(user):
    return f'Bearer {issue_token(Identity.from_user(user))}'


class OrderFixtureMixin:
    """Users, a category and three products with known stock."""

    def setUp(self):
        self.customer = User.objects.create_user('jane@example.com', 'Jane', password='secret123')
        self.other = User.objects.create_user('john@example.com', 'John', password='secret123')
        self.admin = User.objects.create_user(
            'admin@example.com', 'Admin', password='secret123', role=User.Role.ADMIN
        )
        self.admin_identity = Identity.from_user(self.admin)

        self.category = Category.objects.create(name='Test Category')
        self.product1 = Product.objects.create(
            name='Test Product 1', price=Decimal('10.00'), stock=100, category=self.category
        )
        self.product2 = Product.objects.create(
            name='Test Product 2', price=Decimal('25.00'), stock=50, category=self.category
        )
        self.product3 = Product.objects.create(
            name='Test Product 3', price=Decimal('15.50'), stock=10, category=self.category
        )

    def place(self, items, user=None):
        return create_order((user or self.customer).id, items, dict(SHIPPING))


class OrderCreationTestCase(OrderFixtureMixin, TestCase):

    def test_order_placed_with_sufficient_stock(self):
        """
        Given: Products with sufficient stock
        When: Creating an order within stock limits
        Then: Order is PENDING, total is server-computed, stock is deducted
        """
        order = self.place([
            {'product_id': self.product1.id, 'quantity': 5},
            {'product_id': self.product2.id, 'quantity': 3},
        ])

        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        # (5 * 10) + (3 * 25) = 125
        self.assertEqual(order.total, Decimal('125.00'))
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.shipping_address.user_id, self.customer.id)

        self.product1.refresh_from_db()
        self.product2.refresh_from_db()
        self.assertEqual(self.product1.stock, 95)
        self.assertEqual(self.product2.stock, 47)

    def test_total_matches_item_subtotals(self):
        order = self.place([
            {'product_id': self.product2.id, 'quantity': 2},
            {'product_id': self.product3.id, 'quantity': 3},
        ])
        self.assertEqual(order.total, sum(item.subtotal for item in order.items.all()))

    def test_items_snapshot_name_and_price(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])

        self.product1.name = 'Renamed'
        self.product1.price = Decimal('99.00')
        self.product1.save()

        item = OrderItem.objects.get(order=order)
        self.assertEqual(item.name, 'Test Product 1')
        self.assertEqual(item.price, Decimal('10.00'))

    def test_client_total_is_not_trusted(self):
        order = create_order(
            self.customer.id,
            [{'product_id': self.product1.id, 'quantity': 2}],
            dict(SHIPPING),
            client_total=Decimal('1.00'),
        )
        self.assertEqual(order.total, Decimal('20.00'))

    def test_fresh_address_per_order(self):
        self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.assertEqual(Address.objects.filter(user=self.customer).count(), 2)

    def test_order_with_exact_stock(self):
        self.place([{'product_id': self.product3.id, 'quantity': 10}])

        self.product3.refresh_from_db()
        self.assertEqual(self.product3.stock, 0)
        self.assertFalse(self.product3.in_stock)

    def test_insufficient_stock_rejects_order(self):
        with self.assertRaises(InsufficientStock) as context:
            self.place([
                {'product_id': self.product1.id, 'quantity': 5},
                {'product_id': self.product3.id, 'quantity': 15},  # Only 10 available
            ])

        self.assertIn('Test Product 3', str(context.exception))
        self.assertEqual(context.exception.shortages[0]['available'], 10)

    def test_no_writes_on_rejection(self):
        """
        Given: Insufficient stock for one item
        When: Order is rejected
        Then: No stock, order, item or address rows change
        """
        with self.assertRaises(InsufficientStock):
            self.place([
                {'product_id': self.product1.id, 'quantity': 5},
                {'product_id': self.product2.id, 'quantity': 10},
                {'product_id': self.product3.id, 'quantity': 20},
            ])

        for product, expected in ((self.product1, 100), (self.product2, 50), (self.product3, 10)):
            product.refresh_from_db()
            self.assertEqual(product.stock, expected)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.assertEqual(Address.objects.count(), 0)

    def test_validation_error_empty_items(self):
        with self.assertRaises(ValidationError) as context:
            self.place([])
        self.assertIn('at least one item', str(context.exception))

    def test_validation_error_invalid_quantity(self):
        with self.assertRaises(ValidationError):
            self.place([{'product_id': self.product1.id, 'quantity': 0}])

    def test_validation_error_duplicate_products(self):
        with self.assertRaises(ValidationError) as context:
            self.place([
                {'product_id': self.product1.id, 'quantity': 5},
                {'product_id': self.product1.id, 'quantity': 3},
            ])
        self.assertIn('duplicate', str(context.exception).lower())

    def test_validation_error_incomplete_address(self):
        address = dict(SHIPPING, postal_code='')
        with self.assertRaises(ValidationError) as context:
            create_order(self.customer.id, [{'product_id': self.product1.id, 'quantity': 1}], address)
        self.assertIn('postal_code', str(context.exception))

    def test_unknown_product(self):
        with self.assertRaises(ValidationError) as context:
            self.place([{'product_id': 99999, 'quantity': 5}])
        self.assertIn('not found', str(context.exception).lower())

    def test_database_failure_surfaces_as_persistence_error(self):
        with patch.object(OrderItem.objects, 'bulk_create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(PersistenceError):
                self.place([{'product_id': self.product1.id, 'quantity': 2}])

        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 100)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Address.objects.count(), 0)


class OrderStatusTestCase(OrderFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.order = self.place([
            {'product_id': self.product1.id, 'quantity': 4},
            {'product_id': self.product3.id, 'quantity': 10},
        ])

    def advance(self, *statuses):
        for new_status in statuses:
            update_order_status(self.order.id, new_status, actor=self.admin_identity)

    def test_forward_path_to_delivered(self):
        self.advance(Order.Status.PROCESSING, Order.Status.SHIPPED, Order.Status.DELIVERED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 96)

    def test_cancel_from_processing_restores_stock(self):
        self.advance(Order.Status.PROCESSING)
        order = update_order_status(self.order.id, Order.Status.CANCELLED, actor=self.admin_identity)

        self.assertEqual(order.status, Order.Status.CANCELLED)
        self.product1.refresh_from_db()
        self.product3.refresh_from_db()
        self.assertEqual(self.product1.stock, 100)
        self.assertEqual(self.product3.stock, 10)
        self.assertTrue(self.product3.in_stock)

    def test_second_cancel_fails_without_double_restore(self):
        self.advance(Order.Status.CANCELLED)

        with self.assertRaises(InvalidTransition):
            self.advance(Order.Status.CANCELLED)

        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 100)

    def test_terminal_statuses_refuse_transitions(self):
        self.advance(Order.Status.PROCESSING, Order.Status.SHIPPED, Order.Status.DELIVERED)
        for new_status in Order.Status.values:
            with self.assertRaises(InvalidTransition):
                self.advance(new_status)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 96)

    def test_delivered_to_pending_is_invalid(self):
        self.advance(Order.Status.PROCESSING, Order.Status.SHIPPED, Order.Status.DELIVERED)
        with self.assertRaises(InvalidTransition) as context:
            self.advance(Order.Status.PENDING)
        self.assertIn('DELIVERED', str(context.exception))

    def test_forward_moves_may_skip_steps(self):
        """
        Given: A PENDING order
        When: Moving straight to SHIPPED, then DELIVERED
        Then: Both moves succeed and stock is untouched
        """
        self.advance(Order.Status.SHIPPED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

        self.advance(Order.Status.DELIVERED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

        self.product1.refresh_from_db()
        self.product3.refresh_from_db()
        self.assertEqual(self.product1.stock, 96)
        self.assertEqual(self.product3.stock, 0)

    def test_pending_straight_to_delivered(self):
        self.advance(Order.Status.DELIVERED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

    def test_backward_and_same_status_moves_are_invalid(self):
        self.advance(Order.Status.SHIPPED)
        for new_status in (Order.Status.PENDING, Order.Status.PROCESSING, Order.Status.SHIPPED):
            with self.assertRaises(InvalidTransition):
                self.advance(new_status)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            self.advance('LOST')

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            update_order_status(99999, Order.Status.PROCESSING, actor=self.admin_identity)


class OrderVisibilityTestCase(OrderFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.own = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.foreign = self.place([{'product_id': self.product2.id, 'quantity': 1}], user=self.other)

    def test_customer_sees_only_own_orders(self):
        identity = Identity.from_user(self.customer)
        orders = list(list_orders(identity, user_id=self.other.id))
        self.assertEqual([o.id for o in orders], [self.own.id])

    def test_admin_sees_all_orders(self):
        orders = list_orders(self.admin_identity)
        self.assertEqual({o.id for o in orders}, {self.own.id, self.foreign.id})

    def test_admin_filters_by_user(self):
        orders = list_orders(self.admin_identity, user_id=self.other.id)
        self.assertEqual([o.id for o in orders], [self.foreign.id])

    def test_foreign_order_is_not_found(self):
        with self.assertRaises(NotFound):
            services.get_order(Identity.from_user(self.customer), self.foreign.id)

    def test_stats_exclude_cancelled_revenue(self):
        update_order_status(self.foreign.id, Order.Status.CANCELLED, actor=self.admin_identity)
        stats = services.order_stats()
        self.assertEqual(stats['total_orders'], 2)
        self.assertEqual(stats['cancelled_orders'], 1)
        self.assertEqual(stats['total_revenue'], '10.00')
        self.assertEqual(stats['avg_order_value'], '10.00')


class OrderAPITestCase(OrderFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def as_user(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=bearer(user))

    def post_order(self, items, **extra):
        body = {'items': items, 'shipping_address': SHIPPING, **extra}
        return self.client.post('/api/orders/', body, format='json')

    def test_create_order(self):
        """Scenario: two units at 10.00 -> 201, total 20.00, stock down by 2."""
        self.as_user(self.customer)
        response = self.post_order(
            [{'product_id': self.product1.id, 'quantity': 2, 'price': '10.00'}],
            total='20.00',
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['total'], '20.00')
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertEqual(response.data['shipping_address']['city'], 'Springfield')
        self.assertEqual(response.data['items'][0]['name'], 'Test Product 1')
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 98)

    def test_checkout_payment_method_spelling(self):
        self.as_user(self.customer)
        response = self.post_order(
            [{'product_id': self.product1.id, 'quantity': 1}],
            payment_method='paypal',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['payment_method'], 'PAYPAL')

    def test_create_requires_token(self):
        response = self.post_order([{'product_id': self.product1.id, 'quantity': 1}])
        self.assertEqual(response.status_code, 401)
        self.assertEqual(Order.objects.count(), 0)

    def test_create_rejects_garbage_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
        response = self.post_order([{'product_id': self.product1.id, 'quantity': 1}])
        self.assertEqual(response.status_code, 401)

    def test_create_missing_items(self):
        self.as_user(self.customer)
        response = self.post_order([])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Validation Error')

    def test_create_missing_address_field(self):
        self.as_user(self.customer)
        response = self.client.post(
            '/api/orders/',
            {
                'items': [{'product_id': self.product1.id, 'quantity': 1}],
                'shipping_address': {k: v for k, v in SHIPPING.items() if k != 'city'},
            },
            format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_create_insufficient_stock(self):
        self.as_user(self.customer)
        response = self.post_order([{'product_id': self.product3.id, 'quantity': 11}])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'Insufficient Stock')

    def test_list_is_scoped_to_caller(self):
        """Scenario: non-admin GET /orders returns only their own orders."""
        own = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.place([{'product_id': self.product2.id, 'quantity': 1}], user=self.other)

        self.as_user(self.customer)
        response = self.client.get('/api/orders/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o['id'] for o in response.data['results']], [own.id])
        self.assertEqual(response.data['pagination']['total'], 1)

    def test_admin_lists_everything(self):
        self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.place([{'product_id': self.product2.id, 'quantity': 1}], user=self.other)

        self.as_user(self.admin)
        response = self.client.get('/api/orders/')
        self.assertEqual(response.data['pagination']['total'], 2)

    def test_owner_can_read_detail(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.as_user(self.customer)
        response = self.client.get(f'/api/orders/{order.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['user_email'], 'jane@example.com')

    def test_other_user_gets_404_on_detail(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.as_user(self.other)
        self.assertEqual(self.client.get(f'/api/orders/{order.id}/').status_code, 404)

    def test_missing_order_404(self):
        self.as_user(self.admin)
        self.assertEqual(self.client.get('/api/orders/99999/').status_code, 404)

    def test_admin_cancels_order(self):
        """Scenario: cancel a PROCESSING order -> 200, stock restored."""
        order = self.place([{'product_id': self.product2.id, 'quantity': 5}])
        update_order_status(order.id, Order.Status.PROCESSING, actor=self.admin_identity)

        self.as_user(self.admin)
        response = self.client.patch(f'/api/orders/{order.id}/', {'status': 'CANCELLED'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'CANCELLED')
        self.product2.refresh_from_db()
        self.assertEqual(self.product2.stock, 50)

    def test_admin_ships_pending_order_directly(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 3}])

        self.as_user(self.admin)
        response = self.client.patch(f'/api/orders/{order.id}/', {'status': 'SHIPPED'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'SHIPPED')
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.stock, 97)

    def test_illegal_transition_is_400(self):
        """Scenario: DELIVERED -> PENDING fails and the order is unchanged."""
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        for new_status in ('PROCESSING', 'SHIPPED', 'DELIVERED'):
            update_order_status(order.id, new_status, actor=self.admin_identity)

        self.as_user(self.admin)
        response = self.client.patch(f'/api/orders/{order.id}/', {'status': 'PENDING'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Invalid Transition')
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.DELIVERED)

    def test_invalid_status_value_is_400(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.as_user(self.admin)
        response = self.client.patch(f'/api/orders/{order.id}/', {'status': 'LOST'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_customer_cannot_change_status(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.as_user(self.customer)

        with patch('orders.services.update_order_status') as update:
            response = self.client.patch(
                f'/api/orders/{order.id}/', {'status': 'CANCELLED'}, format='json'
            )

        self.assertEqual(response.status_code, 403)
        update.assert_not_called()
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)

    def test_admin_deletes_order(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        self.as_user(self.admin)
        response = self.client.delete(f'/api/orders/{order.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Order.objects.filter(id=order.id).exists())
        self.assertFalse(OrderItem.objects.filter(order_id=order.id).exists())

    def test_stats_are_admin_only(self):
        self.as_user(self.customer)
        self.assertEqual(self.client.get('/api/orders/stats/').status_code, 403)
        self.as_user(self.admin)
        response = self.client.get('/api/orders/stats/')
        self.assertEqual(response.status_code, 200)
        self.assertIn('pending_orders', response.data)


class OrderTaskTestCase(OrderFixtureMixin, TestCase):

    def test_daily_report_revenue_has_two_decimals(self):
        from orders.tasks import generate_daily_order_report

        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        Order.objects.filter(id=order.id).update(created_at=timezone.now() - timedelta(days=1))

        stats = generate_daily_order_report()

        self.assertEqual(stats['total_orders'], 1)
        self.assertEqual(stats['total_revenue'], '10.00')

    def test_confirmation_for_pending_order(self):
        from orders.tasks import send_order_confirmation

        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        result = send_order_confirmation(order.id)
        self.assertEqual(result['status'], 'success')

    def test_confirmation_skips_cancelled_order(self):
        from orders.tasks import send_order_confirmation

        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        update_order_status(order.id, Order.Status.CANCELLED, actor=self.admin_identity)
        self.assertEqual(send_order_confirmation(order.id)['status'], 'skipped')

    def test_confirmation_queued_after_commit(self):
        with patch('orders.tasks.send_order_confirmation.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        delay.assert_called_once_with(order.id)

    def test_status_update_queued_after_commit(self):
        order = self.place([{'product_id': self.product1.id, 'quantity': 1}])
        with patch('orders.tasks.send_order_status_update.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                update_order_status(order.id, Order.Status.PROCESSING, actor=self.admin_identity)
        delay.assert_called_once_with(order.id, Order.Status.PENDING)


class OrderModelTestCase(TestCase):
    """Test cases for Order model properties."""

    def test_transition_table(self):
        order = Order(status=Order.Status.PENDING)
        self.assertTrue(order.can_transition_to(Order.Status.PROCESSING))
        self.assertTrue(order.can_transition_to(Order.Status.CANCELLED))
        self.assertTrue(order.can_transition_to(Order.Status.DELIVERED))
        self.assertFalse(order.can_transition_to(Order.Status.PENDING))
        self.assertFalse(order.is_terminal)

        order.status = Order.Status.SHIPPED
        self.assertFalse(order.can_transition_to(Order.Status.PROCESSING))

        order.status = Order.Status.CANCELLED
        self.assertTrue(order.is_terminal)

    def test_order_item_subtotal(self):
        item = OrderItem(quantity=3, price=Decimal('25.50'))
        self.assertEqual(item.subtotal, Decimal('76.50'))


class StaleTokenOrderTestCase(TransactionTestCase):
    """
    A token outlives changes to its account. Uses TransactionTestCase so
    foreign keys are checked at a real commit.
    """

    def setUp(self):
        self.client = APIClient()
        self.customer = User.objects.create_user('gone@example.com', 'Gone', password='secret123')
        category = Category.objects.create(name='Stale Token Category')
        self.product = Product.objects.create(
            name='Desk Lamp', price=Decimal('20.00'), stock=5, category=category
        )
        self.client.credentials(HTTP_AUTHORIZATION=bearer(self.customer))

    def post_order(self):
        return self.client.post(
            '/api/orders/',
            {'items': [{'product_id': self.product.id, 'quantity': 1}], 'shipping_address': SHIPPING},
            format='json',
        )

    def test_deleted_account_cannot_order(self):
        """
        Given: A valid token whose user has since been deleted
        When: Placing an order
        Then: 401, and no order, address or stock change is written
        """
        self.customer.delete()

        response = self.post_order()

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['error'], 'Unauthorized')
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Address.objects.count(), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 5)

    def test_deactivated_account_cannot_order(self):
        User.objects.filter(id=self.customer.id).update(is_active=False)

        response = self.post_order()

        self.assertEqual(response.status_code, 401)
        self.assertEqual(Order.objects.count(), 0)

    def test_active_account_orders(self):
        with patch('orders.services._queue_confirmation'):
            response = self.post_order()
        self.assertEqual(response.status_code, 201)


@skipUnless(connection.vendor == 'postgresql', 'needs row-level locks')
class ConcurrentOrderTestCase(TransactionTestCase):
    """
    Concurrent placement against the same product.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        self.customer = User.objects.create_user('race@example.com', 'Racer', password='secret123')
        category = Category.objects.create(name='Concurrent Test Category')
        # Only 10 units available
        self.product = Product.objects.create(
            name='Limited Stock Product', price=Decimal('50.00'), stock=10, category=category
        )

    @patch('orders.services._queue_confirmation')
    def test_concurrent_orders_no_overselling(self, _queue_confirmation):
        """
        Given: 10 units in stock
        When: Two concurrent orders of 8 units each
        Then: At most one succeeds and stock never goes negative
        """
        results = {}

        def place_order(key):
            try:
                create_order(
                    self.customer.id,
                    [{'product_id': self.product.id, 'quantity': 8}],
                    dict(SHIPPING),
                )
                results[key] = 'placed'
            except InsufficientStock:
                results[key] = 'rejected'
            finally:
                connection.close()

        threads = [threading.Thread(target=place_order, args=(key,)) for key in ('a', 'b')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.product.refresh_from_db()
        placed = sum(1 for r in results.values() if r == 'placed')
        self.assertLessEqual(placed, 1)
        self.assertEqual(self.product.stock, 10 - 8 * placed)
