"""
Django Admin configuration for catalog models.
"""
from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'product_count', 'created_at']
    search_fields = ['name']
    ordering = ['name']

    def product_count(self, obj):
        return obj.products.count()
    product_count.short_description = 'Products'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'price', 'category', 'stock', 'in_stock', 'featured', 'created_at']
    list_filter = ['category', 'in_stock', 'featured', 'is_new', 'created_at']
    search_fields = ['name', 'description']
    ordering = ['name']
    raw_id_fields = ['category']

    def get_readonly_fields(self, request, obj=None):
        # Initial stock is set on the add form; afterwards only orders move it
        if obj is None:
            return ['in_stock']
        return ['stock', 'in_stock']
