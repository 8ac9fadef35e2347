"""
Django Admin configuration for order models.

Status and stock are changed through the API so the lifecycle rules
apply; the admin site shows orders read-only.
"""
from django.contrib import admin
from .models import Address, Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product', 'name', 'quantity', 'price', 'subtotal']
    can_delete = False

    def subtotal(self, obj):
        return f"${obj.subtotal}"
    subtotal.short_description = 'Subtotal'


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'status', 'payment_status', 'total', 'item_count', 'created_at']
    list_filter = ['status', 'payment_status', 'created_at']
    search_fields = ['id', 'user__email', 'user__name']
    ordering = ['-created_at']
    readonly_fields = [
        'user', 'status', 'total', 'shipping_address',
        'payment_method', 'payment_status', 'created_at', 'updated_at',
    ]
    inlines = [OrderItemInline]

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'line1', 'city', 'country', 'created_at']
    search_fields = ['user__email', 'line1', 'city', 'postal_code']
    raw_id_fields = ['user']
