"""
Tests for catalog browsing and admin-only catalog management.
"""
from decimal import Decimal
from io import StringIO

from django.contrib import admin
from django.core.management import call_command
from django.test import RequestFactory, TestCase
from rest_framework.test import APIClient

from accounts.credentials import Identity, issue_token
from accounts.models import User
from orders.models import Address, Order, OrderItem
from .models import Category, Product


class CatalogFixtureMixin:

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            'admin@example.com', 'Admin', password='secret123', role=User.Role.ADMIN
        )
        self.customer = User.objects.create_user('jane@example.com', 'Jane', password='secret123')

        self.shoes = Category.objects.create(name='Footwear')
        self.bags = Category.objects.create(name='Bags')
        self.boots = Product.objects.create(
            name='Leather Boots', description='Waterproof', price=Decimal('120.00'),
            stock=5, category=self.shoes, featured=True,
        )
        self.sneakers = Product.objects.create(
            name='Canvas Sneakers', description='Lightweight', price=Decimal('45.00'),
            stock=0, category=self.shoes, is_new=False,
        )
        self.tote = Product.objects.create(
            name='Canvas Tote', description='Everyday bag', price=Decimal('30.00'),
            stock=12, category=self.bags,
        )

    def as_user(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(Identity.from_user(user))}')


class ProductModelTestCase(TestCase):

    def test_in_stock_follows_stock(self):
        category = Category.objects.create(name='Home')
        product = Product.objects.create(name='Vase', price=Decimal('9.99'), stock=1, category=category)
        self.assertTrue(product.in_stock)

        product.stock = 0
        product.save(update_fields=['stock'])
        product.refresh_from_db()
        self.assertFalse(product.in_stock)


class ProductBrowseTestCase(CatalogFixtureMixin, TestCase):

    def ids(self, response):
        return [p['id'] for p in response.data['results']]

    def test_list_is_public_and_paginated(self):
        response = self.client.get('/api/products/', {'limit': 2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['pagination'], {
            'total': 3,
            'page': 1,
            'limit': 2,
            'total_pages': 2,
            'has_next_page': True,
            'has_prev_page': False,
        })

    def test_filter_by_category(self):
        response = self.client.get('/api/products/', {'category': self.bags.id})
        self.assertEqual(self.ids(response), [self.tote.id])

    def test_invalid_category_filter(self):
        response = self.client.get('/api/products/', {'category': 'shoes'})
        self.assertEqual(response.status_code, 400)

    def test_flag_filters(self):
        self.assertEqual(self.ids(self.client.get('/api/products/', {'featured': 'true'})), [self.boots.id])
        in_stock = self.ids(self.client.get('/api/products/', {'in_stock': 'true'}))
        self.assertNotIn(self.sneakers.id, in_stock)
        self.assertEqual(len(in_stock), 2)

    def test_search_name_and_description(self):
        response = self.client.get('/api/products/', {'search': 'canvas'})
        self.assertEqual(set(self.ids(response)), {self.sneakers.id, self.tote.id})
        response = self.client.get('/api/products/', {'search': 'waterproof'})
        self.assertEqual(self.ids(response), [self.boots.id])

    def test_sort_by_price(self):
        response = self.client.get('/api/products/', {'sort_by': 'price', 'sort_order': 'asc'})
        self.assertEqual(self.ids(response), [self.tote.id, self.sneakers.id, self.boots.id])

    def test_product_detail(self):
        response = self.client.get(f'/api/products/{self.boots.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['category'], {'id': self.shoes.id, 'name': 'Footwear'})
        self.assertEqual(response.data['price'], '120.00')

    def test_missing_product(self):
        response = self.client.get('/api/products/99999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'Not Found')

    def test_category_list_counts_products(self):
        response = self.client.get('/api/categories/')
        counts = {c['name']: c['product_count'] for c in response.data}
        self.assertEqual(counts, {'Bags': 1, 'Footwear': 2})

    def test_category_detail_lists_products(self):
        response = self.client.get(f'/api/categories/{self.bags.id}/')
        self.assertEqual([p['id'] for p in response.data['products']], [self.tote.id])


class ProductAdminTestCase(CatalogFixtureMixin, TestCase):

    def product_body(self, **overrides):
        body = {
            'name': 'Wool Sweater',
            'description': 'Warm',
            'price': '60.00',
            'stock': 8,
            'category_id': self.shoes.id,
        }
        body.update(overrides)
        return body

    def test_create_requires_admin(self):
        self.assertEqual(self.client.post('/api/products/', self.product_body()).status_code, 401)
        self.as_user(self.customer)
        self.assertEqual(self.client.post('/api/products/', self.product_body()).status_code, 403)
        self.assertFalse(Product.objects.filter(name='Wool Sweater').exists())

    def test_admin_creates_product(self):
        self.as_user(self.admin)
        response = self.client.post('/api/products/', self.product_body())
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['stock'], 8)
        self.assertTrue(response.data['in_stock'])

    def test_create_rejects_negative_price(self):
        self.as_user(self.admin)
        response = self.client.post('/api/products/', self.product_body(price='-1.00'))
        self.assertEqual(response.status_code, 400)

    def test_update_does_not_touch_stock(self):
        self.as_user(self.admin)
        response = self.client.patch(
            f'/api/products/{self.boots.id}/', {'price': '99.00', 'stock': 500}
        )
        self.assertEqual(response.status_code, 200)
        self.boots.refresh_from_db()
        self.assertEqual(self.boots.price, Decimal('99.00'))
        self.assertEqual(self.boots.stock, 5)

    def test_customer_cannot_update(self):
        self.as_user(self.customer)
        response = self.client.patch(f'/api/products/{self.boots.id}/', {'price': '1.00'})
        self.assertEqual(response.status_code, 403)
        self.boots.refresh_from_db()
        self.assertEqual(self.boots.price, Decimal('120.00'))

    def test_delete_product(self):
        self.as_user(self.admin)
        response = self.client.delete(f'/api/products/{self.tote.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Product.objects.filter(id=self.tote.id).exists())

    def test_delete_ordered_product_is_conflict(self):
        address = Address.objects.create(
            user=self.customer, line1='1 Main St', city='Springfield',
            state='IL', postal_code='62701', country='US',
        )
        order = Order.objects.create(user=self.customer, total=Decimal('30.00'), shipping_address=address)
        OrderItem.objects.create(order=order, product=self.tote, name='Canvas Tote', quantity=1, price=Decimal('30.00'))

        self.as_user(self.admin)
        response = self.client.delete(f'/api/products/{self.tote.id}/')
        self.assertEqual(response.status_code, 409)
        self.assertTrue(Product.objects.filter(id=self.tote.id).exists())


class CategoryAdminTestCase(CatalogFixtureMixin, TestCase):

    def test_create_category(self):
        self.as_user(self.admin)
        response = self.client.post('/api/categories/', {'name': 'Jewelry'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['product_count'], 0)

    def test_duplicate_name_is_conflict(self):
        self.as_user(self.admin)
        response = self.client.post('/api/categories/', {'name': 'Bags'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(Category.objects.filter(name='Bags').count(), 1)

    def test_rename_to_existing_name_is_conflict(self):
        self.as_user(self.admin)
        response = self.client.patch(f'/api/categories/{self.bags.id}/', {'name': 'Footwear'})
        self.assertEqual(response.status_code, 409)

    def test_customer_cannot_create(self):
        self.as_user(self.customer)
        self.assertEqual(self.client.post('/api/categories/', {'name': 'Jewelry'}).status_code, 403)

    def test_delete_category_with_products_is_refused(self):
        self.as_user(self.admin)
        response = self.client.delete(f'/api/categories/{self.bags.id}/')
        self.assertEqual(response.status_code, 400)
        self.assertTrue(Category.objects.filter(id=self.bags.id).exists())

    def test_delete_empty_category(self):
        empty = Category.objects.create(name='Empty')
        self.as_user(self.admin)
        self.assertEqual(self.client.delete(f'/api/categories/{empty.id}/').status_code, 200)
        self.assertFalse(Category.objects.filter(id=empty.id).exists())


class ProductAdminSiteTestCase(TestCase):

    def setUp(self):
        self.model_admin = admin.site._registry[Product]
        self.request = RequestFactory().get('/admin/catalog/product/')
        category = Category.objects.create(name='Home')
        self.product = Product.objects.create(name='Vase', price=Decimal('9.99'), stock=4, category=category)

    def test_initial_stock_editable_on_add_form(self):
        readonly = self.model_admin.get_readonly_fields(self.request)
        self.assertNotIn('stock', readonly)
        self.assertIn('in_stock', readonly)

    def test_stock_read_only_on_change_form(self):
        readonly = self.model_admin.get_readonly_fields(self.request, self.product)
        self.assertIn('stock', readonly)
        self.assertIn('in_stock', readonly)


class SeedDataCommandTestCase(TestCase):

    def test_seed_creates_accounts_and_products(self):
        call_command('seed_data', products=10, stdout=StringIO())

        self.assertEqual(Product.objects.count(), 10)
        self.assertTrue(User.objects.filter(email='admin@example.com', role=User.Role.ADMIN).exists())
        for product in Product.objects.all():
            self.assertEqual(product.in_stock, product.stock > 0)
