"""
Serializers for catalog models.
Provides data validation and JSON conversion for API endpoints.
"""
from rest_framework import serializers

from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    """Serializer for Category model."""
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        """Use the annotated count when the view provides one."""
        count = getattr(obj, 'num_products', None)
        return count if count is not None else obj.products.count()

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Category name is required")
        return value

    def validate_description(self, value):
        return value or None


class CategoryMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested category representation."""
    class Meta:
        model = Category
        fields = ['id', 'name']


class ProductSerializer(serializers.ModelSerializer):
    """
    Serializer for Product model with nested category.

    ``stock`` can be set when the product is created; afterwards only
    orders move it. ``in_stock`` is always derived.
    """
    category = CategoryMinimalSerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True
    )
    stock = serializers.IntegerField(min_value=0, required=False, default=0)
    images = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        default=list,
    )

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'description', 'price', 'stock', 'in_stock',
            'category', 'category_id', 'main_image', 'images',
            'featured', 'is_new', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'in_stock', 'created_at', 'updated_at']

    def update(self, instance, validated_data):
        validated_data.pop('stock', None)
        return super().update(instance, validated_data)


class ProductMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested representations."""
    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'main_image', 'in_stock']


class CategoryDetailSerializer(CategorySerializer):
    """Category with the products it contains."""
    products = serializers.SerializerMethodField()

    class Meta(CategorySerializer.Meta):
        fields = CategorySerializer.Meta.fields + ['products']

    def get_products(self, obj):
        products = obj.products.order_by('-created_at')
        return ProductMinimalSerializer(products, many=True).data
