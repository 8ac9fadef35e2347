"""
Order API Views.

Implements:
- GET /orders/ - Own orders (admins: all orders)
- POST /orders/ - Place an order
- GET /orders/{id}/ - Order detail (owner or admin)
- PATCH /orders/{id}/ - Change status (admin)
- DELETE /orders/{id}/ - Delete order (admin)
- GET /orders/stats/ - Order statistics (admin)
"""
import logging

from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.services import get_active_user
from core.access_control import require_admin, require_auth
from core.pagination import StorefrontPagination
from . import services
from .serializers import OrderCreateSerializer, OrderSerializer, OrderStatusSerializer

logger = logging.getLogger(__name__)


class OrderListCreateView(generics.GenericAPIView):
    """
    GET: List orders visible to the caller, paginated

    Query Parameters (GET):
        - status: Filter by status
        - user_id: Filter by customer (admins only)
        - page, limit: Pagination

    POST: Place an order (see OrderCreateSerializer for the body)
    """
    serializer_class = OrderSerializer
    pagination_class = StorefrontPagination

    @require_auth
    def get(self, request, identity):
        queryset = services.list_orders(
            identity,
            status=request.query_params.get('status'),
            user_id=request.query_params.get('user_id'),
        )
        page = self.paginate_queryset(queryset)
        serializer = OrderSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @require_auth
    def post(self, request, identity):
        """
        Returns:
            - 201: Order placed
            - 400: Validation error
            - 401: Token owner deleted or deactivated
            - 409: Insufficient stock
        """
        customer = get_active_user(identity)
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = services.create_order(
            user_id=customer.id,
            items=[
                {'product_id': item['product_id'], 'quantity': item['quantity']}
                for item in data['items']
            ],
            shipping_address=dict(data['shipping_address']),
            payment_method=data['payment_method'],
            client_total=data.get('total'),
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """
    GET: Order with items and shipping address
    PATCH/PUT: {"status": "SHIPPED"} (admin)
    DELETE: Remove the order (admin)
    """

    @require_auth
    def get(self, request, identity, pk):
        order = services.get_order(identity, pk)
        return Response(OrderSerializer(order).data)

    @require_admin
    def patch(self, request, identity, pk):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.update_order_status(pk, serializer.validated_data['status'], actor=identity)
        return Response(OrderSerializer(order).data)

    put = patch

    @require_admin
    def delete(self, request, identity, pk):
        services.delete_order(pk)
        return Response({'message': 'Order deleted successfully'})


class OrderStatsView(APIView):
    """
    GET: Order statistics (admin).

    Query Parameters:
        - user_id: Restrict to one customer (optional)
    """

    @require_admin
    def get(self, request, identity):
        return Response(services.order_stats(user_id=request.query_params.get('user_id')))
