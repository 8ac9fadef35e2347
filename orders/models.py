"""
Order Models - Address, Order and OrderItem with status tracking.

Order Status Flow:
    PENDING -> PROCESSING -> SHIPPED -> DELIVERED
    PENDING | PROCESSING | SHIPPED -> CANCELLED
DELIVERED and CANCELLED are terminal.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from catalog.models import Product


class Address(models.Model):
    """
    Shipping address owned by the user who entered it.

    A fresh row is written for every order; orders reference it.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='addresses',
    )
    name = models.CharField(max_length=150, blank=True, default='')
    line1 = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=100)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Address'
        verbose_name_plural = 'Addresses'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.line1}, {self.city}, {self.state} {self.postal_code}, {self.country}"


class Order(models.Model):
    """
    Customer order.

    Status:
        - PENDING: Order placed, stock reserved
        - PROCESSING: Being prepared
        - SHIPPED: Handed to the carrier
        - DELIVERED: Received by the customer (terminal)
        - CANCELLED: Cancelled, stock returned (terminal)
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        PROCESSING = 'PROCESSING', 'Processing'
        SHIPPED = 'SHIPPED', 'Shipped'
        DELIVERED = 'DELIVERED', 'Delivered'
        CANCELLED = 'CANCELLED', 'Cancelled'

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        PAID = 'PAID', 'Paid'
        FAILED = 'FAILED', 'Failed'

    class PaymentMethod(models.TextChoices):
        CREDIT_CARD = 'CREDIT_CARD', 'Credit card'
        PAYPAL = 'PAYPAL', 'PayPal'

    # Forward moves may skip steps; CANCELLED is reachable from any open status.
    TRANSITIONS = {
        Status.PENDING: {Status.PROCESSING, Status.SHIPPED, Status.DELIVERED, Status.CANCELLED},
        Status.PROCESSING: {Status.SHIPPED, Status.DELIVERED, Status.CANCELLED},
        Status.SHIPPED: {Status.DELIVERED, Status.CANCELLED},
        Status.DELIVERED: set(),
        Status.CANCELLED: set(),
    }

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text="Customer who placed the order"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        help_text="Current order status"
    )
    total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of item price x quantity"
    )
    shipping_address = models.ForeignKey(
        Address,
        on_delete=models.PROTECT,
        related_name='orders',
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CREDIT_CARD,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='order_user_status_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} - {self.user_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return not self.TRANSITIONS[self.status]

    def can_transition_to(self, new_status) -> bool:
        return new_status in self.TRANSITIONS[self.status]

    @property
    def item_count(self) -> int:
        return self.items.count()


class OrderItem(models.Model):
    """
    A product line in an order.

    ``name`` and ``price`` are copied from the product when the order is
    placed, so later catalog edits never change past orders.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent order"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,  # Prevent deletion of products with orders
        related_name='order_items',
        help_text="Ordered product"
    )
    name = models.CharField(max_length=200, help_text="Product name at time of order")
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity ordered"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Price per unit at time of order"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.name} @ ${self.price}"

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.price
