"""
Management command to seed the database with sample data.

Generates:
- An admin account and a demo shopper account
- Categories
- Products with random prices and stock

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from catalog.models import Category, Product

DEMO_ACCOUNTS = [
    ('Admin User', 'admin@example.com', 'admin123', 'ADMIN'),
    ('Demo User', 'user@example.com', 'user123', 'USER'),
]

CATEGORIES = {
    'Clothing': ['Cotton T-Shirt', 'Denim Jeans', 'Wool Sweater', 'Rain Jacket', 'Linen Shirt'],
    'Accessories': ['Leather Belt', 'Silk Scarf', 'Canvas Tote', 'Sunglasses', 'Wallet'],
    'Footwear': ['Running Shoes', 'Leather Boots', 'Canvas Sneakers', 'Sandals', 'Loafers'],
    'Home': ['Throw Pillow', 'Scented Candle', 'Ceramic Vase', 'Wall Clock', 'Area Rug'],
    'Jewelry': ['Silver Ring', 'Gold Necklace', 'Pearl Earrings', 'Charm Bracelet', 'Watch'],
}

ADJECTIVES = ['Premium', 'Classic', 'Modern', 'Vintage', 'Handmade', 'Essential', 'Limited Edition']
COLORS = ['Black', 'White', 'Navy', 'Gray', 'Brown', 'Olive', 'Cream']


class Command(BaseCommand):
    help = 'Seed the database with demo accounts, categories and products'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing catalog and order data before seeding',
        )
        parser.add_argument(
            '--products',
            type=int,
            default=60,
            help='Number of products to create (default: 60)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            self._create_accounts()
            categories = self._create_categories()
            self._create_products(options['products'], categories)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Delete orders first; their items protect products from deletion."""
        from orders.models import Address, Order

        Order.objects.all().delete()
        Address.objects.all().delete()
        Product.objects.all().delete()
        Category.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing catalog and order data cleared.'))

    def _create_accounts(self):
        User = get_user_model()
        for name, email, password, role in DEMO_ACCOUNTS:
            if User.objects.filter(email=email).exists():
                continue
            User.objects.create_user(email, name, password=password, role=role)
            self.stdout.write(f'  Created {role.lower()} account: {email} / {password}')

    def _create_categories(self):
        categories = []
        for name in CATEGORIES:
            category, created = Category.objects.get_or_create(
                name=name,
                defaults={'description': f'{name} collection'},
            )
            categories.append(category)
            if created:
                self.stdout.write(f'  Created category: {name}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(categories)} categories'))
        return categories

    def _create_products(self, count, categories):
        """Create sample products with realistic data."""
        products = []
        for i in range(count):
            category = random.choice(categories)
            base_name = random.choice(CATEGORIES.get(category.name, ['Product']))
            name = f"{random.choice(ADJECTIVES)} {random.choice(COLORS)} {base_name}"
            stock = random.choice([0, random.randint(1, 10), random.randint(10, 200)])

            products.append(Product(
                name=name,
                description=f"{base_name} from our {category.name.lower()} range.",
                price=Decimal(str(round(random.uniform(5, 500), 2))),
                category=category,
                stock=stock,
                # bulk_create skips save(), so derive the flag here
                in_stock=stock > 0,
                featured=random.random() < 0.2,
                is_new=random.random() < 0.3,
            ))

        Product.objects.bulk_create(products)
        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products
