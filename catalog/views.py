"""
Catalog API Views with optimized queries.

Implements:
- Category listing/detail (public) and CRUD (admin)
- Product listing with filters, search, sorting and pagination (public)
- Product CRUD (admin)
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from rest_framework import generics, status
from rest_framework.response import Response

from core.access_control import require_admin
from core.exceptions import Conflict, ValidationError
from core.pagination import StorefrontPagination
from .models import Category, Product
from .serializers import CategoryDetailSerializer, CategorySerializer, ProductSerializer

logger = logging.getLogger(__name__)

PRODUCT_SORT_FIELDS = {'created_at', 'price', 'name', 'stock'}


def save_category(serializer):
    """Save a category, turning a duplicate name into a Conflict."""
    name = serializer.validated_data.get('name')
    if name is not None:
        duplicates = Category.objects.filter(name=name)
        if serializer.instance is not None:
            duplicates = duplicates.exclude(pk=serializer.instance.pk)
        if duplicates.exists():
            raise Conflict('A category with this name already exists')
    try:
        with transaction.atomic():
            return serializer.save()
    except IntegrityError as e:
        raise Conflict('A category with this name already exists') from e


# =============================================================================
# Category Views
# =============================================================================

class CategoryListCreateView(generics.ListCreateAPIView):
    """
    GET: List all categories with product counts
    POST: Create a new category (admin)
    """
    serializer_class = CategorySerializer

    def get_queryset(self):
        return Category.objects.annotate(num_products=Count('products')).order_by('name')

    @require_admin
    def post(self, request, identity, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        category = save_category(serializer)
        logger.info(f"Category '{category.name}' created by admin {identity.id}")
        return Response(self.get_serializer(category).data, status=status.HTTP_201_CREATED)


class CategoryDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a category with its products
    PUT/PATCH: Update a category (admin)
    DELETE: Delete a category that has no products (admin)
    """
    queryset = Category.objects.all()

    def get_serializer_class(self):
        if self.request.method == 'GET':
            return CategoryDetailSerializer
        return CategorySerializer

    @require_admin
    def put(self, request, identity, *args, **kwargs):
        return self._update(request, partial=False)

    @require_admin
    def patch(self, request, identity, *args, **kwargs):
        return self._update(request, partial=True)

    def _update(self, request, partial):
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        category = save_category(serializer)
        return Response(self.get_serializer(category).data)

    @require_admin
    def delete(self, request, identity, *args, **kwargs):
        category = self.get_object()
        if category.products.exists():
            raise ValidationError(
                'Cannot delete category: It has associated products. '
                'Please reassign or delete them first.'
            )
        category.delete()
        logger.info(f"Category '{category.name}' deleted by admin {identity.id}")
        return Response({'message': 'Category deleted successfully'})


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(generics.ListCreateAPIView):
    """
    GET: List products with filtering and pagination
    POST: Create a new product (admin)

    Query Parameters (GET):
        - category: Category ID
        - featured, is_new, in_stock: 'true' to restrict
        - search: Keyword in name or description
        - sort_by: created_at | price | name | stock (default created_at)
        - sort_order: asc | desc (default desc)
        - page, limit: Pagination (default limit 12)

    Uses select_related to eliminate N+1 queries.
    """
    serializer_class = ProductSerializer
    pagination_class = StorefrontPagination

    def get_queryset(self):
        queryset = Product.objects.select_related('category')
        params = self.request.query_params

        category_id = params.get('category')
        if category_id:
            if not category_id.isdigit():
                raise ValidationError(f"Invalid category '{category_id}'")
            queryset = queryset.filter(category_id=category_id)

        for flag in ('featured', 'is_new', 'in_stock'):
            if params.get(flag, '').lower() == 'true':
                queryset = queryset.filter(**{flag: True})

        keyword = params.get('search', '').strip()
        if keyword:
            queryset = queryset.filter(
                Q(name__icontains=keyword) |
                Q(description__icontains=keyword)
            )

        sort_by = params.get('sort_by', 'created_at')
        if sort_by not in PRODUCT_SORT_FIELDS:
            sort_by = 'created_at'
        prefix = '' if params.get('sort_order', 'desc').lower() == 'asc' else '-'
        return queryset.order_by(f'{prefix}{sort_by}', f'{prefix}id')

    @require_admin
    def post(self, request, identity, *args, **kwargs):
        response = self.create(request, *args, **kwargs)
        logger.info(f"Product #{response.data['id']} created by admin {identity.id}")
        return response


class ProductDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a product
    PUT/PATCH: Update a product (admin; stock is read-only here)
    DELETE: Delete a product (admin; refused once it appears in orders)
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.select_related('category')

    @require_admin
    def put(self, request, identity, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    @require_admin
    def patch(self, request, identity, *args, **kwargs):
        return self.partial_update(request, *args, **kwargs)

    @require_admin
    def delete(self, request, identity, *args, **kwargs):
        product = self.get_object()
        product.delete()
        logger.info(f"Product #{kwargs.get('pk')} deleted by admin {identity.id}")
        return Response({'message': 'Product deleted successfully'})
