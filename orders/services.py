"""
Order Service Layer - order placement and status lifecycle.

Placement (create_order), one transaction:
1. Lock the ordered product rows with select_for_update()
2. Validate ALL items have sufficient stock (fail fast, nothing written)
3. Create the shipping Address, the Order and its OrderItems
4. Deduct stock, then queue the confirmation task after commit

Status changes (update_order_status) follow Order.TRANSITIONS; moving into
CANCELLED returns every item's quantity to stock in the same transaction.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction
from django.db.models import Avg, Count, F, Q, Sum
from django.utils import timezone

from catalog.models import Product
from core.exceptions import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PersistenceError,
    ValidationError,
)
from .models import Address, Order, OrderItem

logger = logging.getLogger(__name__)

ADDRESS_REQUIRED_FIELDS = ('line1', 'city', 'state', 'postal_code', 'country')


def validate_order_items(items: List[Dict]) -> None:
    """
    Validate order items structure.

    Args:
        items: List of dicts with 'product_id' and 'quantity'

    Raises:
        ValidationError: If validation fails
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Order must include at least one item")

    seen_products = set()
    for idx, item in enumerate(items):
        if 'product_id' not in item:
            raise ValidationError(f"Item {idx}: missing 'product_id'")
        if 'quantity' not in item:
            raise ValidationError(f"Item {idx}: missing 'quantity'")

        product_id = item['product_id']
        quantity = item['quantity']

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Item {idx}: quantity must be a positive integer")

        if product_id in seen_products:
            raise ValidationError(f"Item {idx}: duplicate product_id {product_id}")
        seen_products.add(product_id)


def validate_shipping_address(shipping_address: Optional[Dict]) -> None:
    if not shipping_address:
        raise ValidationError("Shipping address is required")
    missing = [
        field for field in ADDRESS_REQUIRED_FIELDS
        if not str(shipping_address.get(field) or '').strip()
    ]
    if missing:
        raise ValidationError(
            f"Complete shipping address is required (missing: {', '.join(missing)})"
        )


def _order_queryset():
    return Order.objects.select_related('user', 'shipping_address').prefetch_related('items')


def create_order(
    user_id: int,
    items: List[Dict],
    shipping_address: Dict,
    payment_method: str = Order.PaymentMethod.CREDIT_CARD,
    client_total: Optional[Decimal] = None,
) -> Order:
    """
    Place an order for ``user_id`` from a cart snapshot.

    All-or-nothing: the address, order, items and stock deductions either
    all commit or none do.

    Args:
        user_id: Customer placing the order
        items: List of dicts with 'product_id' and 'quantity'
        shipping_address: Dict with line1, city, state, postal_code, country (name optional)
        payment_method: One of Order.PaymentMethod
        client_total: Total computed by the client; informational only

    Returns:
        The created Order with items and shipping address loaded

    Raises:
        ValidationError: Malformed items/address, unknown products or payment method
        InsufficientStock: Any item requests more than is in stock
        PersistenceError: The transaction could not commit
    """
    validate_order_items(items)
    validate_shipping_address(shipping_address)
    if payment_method not in Order.PaymentMethod.values:
        raise ValidationError(f"Unknown payment method: {payment_method}")

    product_ids = [item['product_id'] for item in items]

    try:
        with transaction.atomic():
            # Lock product rows, ordered by id to prevent deadlocks
            products = {
                p.id: p
                for p in Product.objects.select_for_update().filter(id__in=product_ids).order_by('id')
            }
            missing_products = set(product_ids) - set(products.keys())
            if missing_products:
                raise ValidationError(
                    f"Products not found: {', '.join(str(p) for p in sorted(missing_products))}"
                )

            # FAIL-FAST: check all stock BEFORE any writes
            shortages = [
                {
                    'product_id': item['product_id'],
                    'name': products[item['product_id']].name,
                    'requested': item['quantity'],
                    'available': products[item['product_id']].stock,
                }
                for item in items
                if products[item['product_id']].stock < item['quantity']
            ]
            if shortages:
                raise InsufficientStock(shortages)

            address = Address.objects.create(
                user_id=user_id,
                name=shipping_address.get('name') or '',
                line1=shipping_address['line1'],
                city=shipping_address['city'],
                state=shipping_address['state'],
                postal_code=shipping_address['postal_code'],
                country=shipping_address['country'],
                is_default=False,
            )

            total = sum(
                (products[item['product_id']].price * item['quantity'] for item in items),
                Decimal('0.00'),
            )
            order = Order.objects.create(
                user_id=user_id,
                status=Order.Status.PENDING,
                payment_status=Order.PaymentStatus.PENDING,
                payment_method=payment_method,
                shipping_address=address,
                total=total,
            )

            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    product=products[item['product_id']],
                    name=products[item['product_id']].name,
                    quantity=item['quantity'],
                    price=products[item['product_id']].price,
                )
                for item in items
            ])

            for item in items:
                product = products[item['product_id']]
                product.stock -= item['quantity']
                product.save(update_fields=['stock', 'in_stock', 'updated_at'])
                logger.debug(
                    f"Order #{order.id}: deducted {item['quantity']} of {product.name}, "
                    f"remaining stock: {product.stock}"
                )
    except DatabaseError as e:
        logger.exception(f"Order placement failed for user {user_id}: {e}")
        raise PersistenceError("Failed to create order") from e

    if client_total is not None and _as_decimal(client_total) != total:
        logger.warning(
            f"Order #{order.id}: client total {client_total} differs from computed total {total}; "
            "using computed total"
        )

    logger.info(
        f"Order #{order.id} placed by user {user_id}: {len(items)} items, total ${total}"
    )

    transaction.on_commit(lambda: _queue_confirmation(order.id))

    return _order_queryset().get(id=order.id)


def _as_decimal(value) -> Optional[Decimal]:
    try:
        return Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        return None


def _money(value) -> str:
    """Aggregate result as a string with exactly two decimal places."""
    return str(_as_decimal(value or 0))


def _queue_confirmation(order_id: int) -> None:
    from .tasks import send_order_confirmation
    try:
        send_order_confirmation.delay(order_id)
        logger.info(f"Triggered confirmation task for order #{order_id}")
    except Exception as e:
        # The order is committed; a lost notification must not fail the request
        logger.error(f"Failed to queue confirmation task for order #{order_id}: {e}")


def _queue_status_update(order_id: int, previous_status: str) -> None:
    from .tasks import send_order_status_update
    try:
        send_order_status_update.delay(order_id, previous_status)
    except Exception as e:
        logger.error(f"Failed to queue status update task for order #{order_id}: {e}")


def restore_stock(order: Order) -> None:
    """Return every item's quantity to stock. Caller owns the transaction."""
    quantities = {}
    for item in order.items.all():
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    # Lock in id order, same as placement
    list(Product.objects.select_for_update().filter(id__in=quantities).order_by('id'))
    now = timezone.now()
    for product_id, quantity in sorted(quantities.items()):
        Product.objects.filter(id=product_id).update(
            stock=F('stock') + quantity,
            in_stock=True,
            updated_at=now,
        )
        logger.info(f"Order #{order.id}: restored {quantity} units of product {product_id}")


def update_order_status(order_id: int, new_status: str, actor) -> Order:
    """
    Move an order to ``new_status``.

    Admin-only; the caller's role is checked at the HTTP boundary.

    Raises:
        ValidationError: ``new_status`` is not an order status
        NotFound: No such order
        InvalidTransition: Order.TRANSITIONS forbids the move
        PersistenceError: The transaction could not commit
    """
    if new_status not in Order.Status.values:
        raise ValidationError(
            f"Invalid status '{new_status}'. Expected one of: {', '.join(Order.Status.values)}"
        )

    try:
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except Order.DoesNotExist:
                raise NotFound(f"Order {order_id} not found")

            previous_status = order.status
            if not order.can_transition_to(new_status):
                raise InvalidTransition(previous_status, new_status)

            if new_status == Order.Status.CANCELLED:
                restore_stock(order)

            order.status = new_status
            order.save(update_fields=['status', 'updated_at'])
    except DatabaseError as e:
        logger.exception(f"Status update failed for order #{order_id}: {e}")
        raise PersistenceError("Failed to update order status") from e

    logger.info(
        f"Order #{order_id}: {previous_status} -> {new_status} by admin {getattr(actor, 'id', actor)}"
    )
    transaction.on_commit(lambda: _queue_status_update(order_id, previous_status))

    return _order_queryset().get(id=order_id)


def _as_id(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid id '{value}'")


def list_orders(identity, status: Optional[str] = None, user_id: Optional[int] = None):
    """
    Orders visible to ``identity``, newest first.

    Non-admins only ever see their own orders; ``user_id`` is honoured for admins only.
    """
    queryset = _order_queryset()
    if identity.is_admin:
        if user_id:
            queryset = queryset.filter(user_id=_as_id(user_id))
    else:
        queryset = queryset.filter(user_id=identity.id)

    if status:
        status = status.upper()
        if status not in Order.Status.values:
            raise ValidationError(f"Invalid status filter '{status}'")
        queryset = queryset.filter(status=status)

    return queryset.order_by('-created_at', '-id')


def get_order(identity, order_id: int) -> Order:
    """Owner or admin; anyone else sees NotFound."""
    try:
        order = _order_queryset().get(id=order_id)
    except Order.DoesNotExist:
        raise NotFound(f"Order {order_id} not found")
    if not identity.is_admin and order.user_id != identity.id:
        raise NotFound(f"Order {order_id} not found")
    return order


def delete_order(order_id: int) -> None:
    """
    Delete an order and its items. Stock is not touched; cancel first to
    return units to stock.
    """
    deleted, _ = Order.objects.filter(id=order_id).delete()
    if not deleted:
        raise NotFound(f"Order {order_id} not found")
    logger.info(f"Order #{order_id} deleted")


def order_stats(user_id: Optional[int] = None) -> Dict:
    """Counts per status and revenue from orders that were not cancelled."""
    queryset = Order.objects.all()
    if user_id:
        queryset = queryset.filter(user_id=_as_id(user_id))

    live = ~Q(status=Order.Status.CANCELLED)
    aggregates = {
        'total_orders': Count('id'),
        'total_revenue': Sum('total', filter=live),
        'avg_order_value': Avg('total', filter=live),
    }
    for value in Order.Status.values:
        aggregates[f'{value.lower()}_orders'] = Count('id', filter=Q(status=value))

    stats = queryset.aggregate(**aggregates)
    stats['total_revenue'] = _money(stats['total_revenue'])
    stats['avg_order_value'] = _money(stats['avg_order_value'])
    return stats
