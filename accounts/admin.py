"""
Django Admin configuration for users.
"""
from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'email', 'role', 'is_active', 'created_at']
    list_filter = ['role', 'is_active', 'created_at']
    search_fields = ['name', 'email']
    ordering = ['-created_at']
    exclude = ['password']
    readonly_fields = ['last_login', 'created_at', 'updated_at']
