"""
Catalog Models - categories and the products sold in the storefront.

Models:
    - Category: Product categorization (unique name)
    - Product: Items available for sale, carrying the authoritative stock counter
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Category(models.Model):
    """
    Product category. Cannot be deleted while products reference it.
    """
    name = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique category name"
    )
    description = models.TextField(
        blank=True,
        null=True,
        help_text="Optional category description"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Category'
        verbose_name_plural = 'Categories'
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(models.Model):
    """
    Product entity representing items available for sale.

    ``stock`` is the inventory counter; ``in_stock`` mirrors ``stock > 0``
    and is refreshed whenever an order moves stock.
    """
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    description = models.TextField(
        blank=True,
        default='',
        help_text="Product description"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price"
    )
    stock = models.PositiveIntegerField(
        default=0,
        help_text="Units available for sale"
    )
    in_stock = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether any units are available"
    )
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='products',
        help_text="Product category"
    )
    main_image = models.CharField(max_length=500, blank=True, default='')
    images = models.JSONField(default=list, blank=True, help_text="Additional image URLs")
    featured = models.BooleanField(default=False, db_index=True)
    is_new = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['category', 'in_stock'], name='product_category_stock_idx'),
            models.Index(fields=['price'], name='product_price_idx'),
        ]

    def __str__(self):
        return f"{self.name} (${self.price})"

    def save(self, *args, **kwargs):
        update_fields = kwargs.get('update_fields')
        if update_fields is None or 'stock' in update_fields:
            self.in_stock = self.stock > 0
            if update_fields is not None and 'in_stock' not in update_fields:
                kwargs['update_fields'] = list(update_fields) + ['in_stock']
        super().save(*args, **kwargs)
