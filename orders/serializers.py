"""
Serializers for order models.
"""
from rest_framework import serializers

from .models import Address, Order, OrderItem


class AddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = Address
        fields = ['id', 'name', 'line1', 'city', 'state', 'postal_code', 'country']


class OrderItemSerializer(serializers.ModelSerializer):
    """Order line with its snapshot name and price."""
    product_id = serializers.IntegerField(read_only=True)
    subtotal = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        read_only=True
    )

    class Meta:
        model = OrderItem
        fields = ['id', 'product_id', 'name', 'quantity', 'price', 'subtotal']


class OrderSerializer(serializers.ModelSerializer):
    """
    Full order representation with items and shipping address.
    Expects a queryset with select_related('user', 'shipping_address') and
    prefetch_related('items').
    """
    user_id = serializers.IntegerField(read_only=True)
    user_name = serializers.CharField(source='user.name', read_only=True)
    user_email = serializers.CharField(source='user.email', read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = AddressSerializer(read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'user_id', 'user_name', 'user_email', 'status', 'total',
            'items', 'item_count', 'shipping_address',
            'payment_method', 'payment_status',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_item_count(self, obj):
        # Use prefetched items if available
        return len(obj.items.all())


class OrderItemCreateSerializer(serializers.Serializer):
    """One cart line in an order creation request."""
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        required=False,
        help_text="Price the client displayed; the catalog price is used"
    )


class ShippingAddressSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    line1 = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100)


class PaymentMethodField(serializers.ChoiceField):
    """Accepts 'CREDIT_CARD' as well as the checkout form's 'credit-card'."""

    def __init__(self, **kwargs):
        super().__init__(choices=Order.PaymentMethod.choices, **kwargs)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.strip().upper().replace('-', '_')
        return super().to_internal_value(data)


class OrderCreateSerializer(serializers.Serializer):
    """
    Serializer for creating orders via POST /orders/

    Request format:
    {
        "items": [
            {"product_id": 1, "quantity": 2, "price": "10.00"},
            {"product_id": 3, "quantity": 1}
        ],
        "shipping_address": {
            "name": "Jane Doe", "line1": "1 Main St", "city": "Springfield",
            "state": "IL", "postal_code": "62701", "country": "US"
        },
        "total": "35.00",
        "payment_method": "CREDIT_CARD"
    }
    """
    items = OrderItemCreateSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()
    total = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    payment_method = PaymentMethodField(required=False, default=Order.PaymentMethod.CREDIT_CARD)

    def validate_items(self, value):
        product_ids = [item['product_id'] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError("Duplicate products in order items")
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)

    def to_internal_value(self, data):
        if isinstance(data, dict) and isinstance(data.get('status'), str):
            data = {**data, 'status': data['status'].strip().upper()}
        return super().to_internal_value(data)
