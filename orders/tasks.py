"""
Celery tasks for order notifications.

Tasks:
    - send_order_confirmation: Customer notification after an order is placed
    - send_order_status_update: Customer notification after a status change
    - generate_daily_order_report: Yesterday's order statistics
"""
import logging
from datetime import timedelta
from decimal import Decimal

from celery import shared_task
from django.db.models import Count, Q, Sum
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(ConnectionError,),
    retry_backoff=True
)
def send_order_confirmation(self, order_id: int):
    """
    Notify the customer that their order was placed.

    Only PENDING orders are confirmed; an order that has already moved on
    (or been cancelled) before the worker picked the task up is skipped.

    Returns:
        Dict with confirmation details
    """
    from orders.models import Order

    try:
        order = Order.objects.select_related('user', 'shipping_address').prefetch_related(
            'items'
        ).get(id=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order #{order_id} not found for confirmation")
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    if order.status != Order.Status.PENDING:
        logger.warning(
            f"Order #{order_id} is no longer pending (status: {order.status}), "
            "skipping confirmation"
        )
        return {'status': 'skipped', 'message': f'Order {order_id} is not pending'}

    items_summary = "\n".join(
        f"  - {item.quantity}x {item.name} @ ${item.price}"
        for item in order.items.all()
    )
    logger.info(
        f"ORDER CONFIRMATION #{order.id} for {order.user.email}\n"
        f"Ship to: {order.shipping_address}\n"
        f"Payment: {order.payment_method} ({order.payment_status})\n"
        f"Items:\n{items_summary}\n"
        f"Total: ${order.total}"
    )

    return {
        'status': 'success',
        'order_id': order.id,
        'message': f'Confirmation sent for order {order_id}'
    }


@shared_task
def send_order_status_update(order_id: int, previous_status: str):
    """Notify the customer that their order changed status."""
    from orders.models import Order

    try:
        order = Order.objects.select_related('user').get(id=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order #{order_id} not found for status update")
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    logger.info(
        f"ORDER UPDATE #{order.id} for {order.user.email}: "
        f"{previous_status} -> {order.status}"
    )
    return {
        'status': 'success',
        'order_id': order.id,
        'previous_status': previous_status,
        'current_status': order.status,
    }


@shared_task
def generate_daily_order_report():
    """
    Generate daily order statistics report.

    Can be scheduled via Celery Beat for daily execution.
    """
    from orders.models import Order

    yesterday = timezone.now().date() - timedelta(days=1)

    stats = Order.objects.filter(created_at__date=yesterday).aggregate(
        total_orders=Count('id'),
        cancelled_orders=Count('id', filter=Q(status=Order.Status.CANCELLED)),
        delivered_orders=Count('id', filter=Q(status=Order.Status.DELIVERED)),
        total_revenue=Sum('total', filter=~Q(status=Order.Status.CANCELLED)),
    )
    stats['total_revenue'] = str((stats['total_revenue'] or Decimal('0')).quantize(Decimal('0.01')))

    logger.info(
        f"DAILY ORDER REPORT - {yesterday}: "
        f"{stats['total_orders']} orders, {stats['delivered_orders']} delivered, "
        f"{stats['cancelled_orders']} cancelled, revenue ${stats['total_revenue']}"
    )

    return stats
