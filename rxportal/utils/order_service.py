"""
Order Service

FLOW OVERVIEW
- build_cart(items)
  • Resolve each {product_id, size_id, quantity} against the catalog into CartLines,
    merging repeated sizes.
- quote_order(profile, payload)
  • Cart → promo code (or the best auto-apply offer) and reward point discounts →
    OrderTotals, with promo and offer discounts split across the lines they cover.
    Nothing is written.
- create_order(profile, payload, actor)
  • Quote, then pick status by outcome:
      final total 0        → status pending, payment paid
      payment_method credit → credit limit check, status credit_approval_processing,
                              credit_used += final total
      otherwise            → status new, payment pending
  • Write order, items and a "created" activity; redeem points; record promo usage;
    debit the account ledger; award points for paid-for non-credit orders; queue the
    confirmation email. One commit for the whole order.
- cancel_order(order, actor, reason)
  • Shipped, delivered and cancelled orders cannot be cancelled. Releases used credit
    and credits the ledger for the cancelled amount.
- get_order_for(user, order_id)
  • Ownership check: admins see everything, groups see their pharmacies' orders.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Tuple

from ..models import (db, Offer, Order, OrderItem, OrderActivity, ProductSize,
                      RewardsConfig, AccountTransaction)
from .errors import ValidationError, NotFoundError, AuthorizationError
from .money import ZERO, to_decimal, format_money
from .order_calculations import (CartLine, Discount, OrderTotals, merge_cart_item, calculate_subtotal,
                                 calculate_order_totals, check_credit_limit, get_point_value,
                                 reward_points_discount)
from .promo_codes import (validate_promo_code, apply_promo_code, get_auto_apply_offers,
                          calculate_best_discount, calculate_item_discounts, PromoValidationResult)
from .rewards import award_order_points, redeem_points

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('card', 'ach', 'credit', 'manual')
NON_CANCELLABLE = ('shipped', 'delivered', 'cancelled')


def _positive_int(value, label):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number")
    if number <= 0:
        raise ValidationError(f"{label} must be greater than zero")
    return number


def build_cart(items: List[Dict[str, Any]]) -> List[CartLine]:
    if not items:
        raise ValidationError('Order must contain at least one item', 'EMPTY_CART')

    cart: List[CartLine] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index + 1} is invalid")
        quantity = _positive_int(item.get('quantity'), 'Quantity')
        size = db.session.get(ProductSize, item.get('size_id')) if item.get('size_id') else None
        if size is None:
            raise ValidationError(f"Product size {item.get('size_id')} not found", 'PRODUCT_NOT_FOUND')

        product = size.product
        if item.get('product_id') and _positive_int(item['product_id'], 'Product id') != product.id:
            raise ValidationError(f"Size {size.id} does not belong to product {item['product_id']}")
        if not product.is_active:
            raise ValidationError(f"{product.name} is no longer available", 'PRODUCT_INACTIVE')

        merge_cart_item(cart, CartLine(
            product_id=product.id,
            size_id=size.id,
            quantity=quantity,
            unit_price=to_decimal(size.price),
            shipping_cost=to_decimal(size.shipping_cost),
            category_id=product.category_id,
            product_name=product.name,
            size_label=size.label,
            sku=size.sku or product.sku,
        ))
    return cart


def _discounts_for(profile, payload, cart) -> Tuple[List[Discount], PromoValidationResult]:
    discounts = []
    subtotal = calculate_subtotal(cart)

    promo = None
    code = (payload.get('promo_code') or '').strip()
    if code:
        promo = validate_promo_code(code, subtotal, cart, profile=profile)
        if not promo.valid:
            raise ValidationError(promo.message, 'INVALID_PROMO_CODE')
        discounts.append(Discount(
            type='promo',
            name=code.upper(),
            amount=promo.calculated_discount,
            offer_id=promo.offer_id,
            free_shipping=promo.free_shipping,
        ))
    else:
        offer, amount = calculate_best_discount(get_auto_apply_offers(subtotal, cart, profile), subtotal, cart)
        if offer is not None:
            discounts.append(Discount(type='offer', name=offer.title, amount=amount, offer_id=offer.id))

    points = payload.get('reward_points') or 0
    if points:
        try:
            points = int(points)
        except (TypeError, ValueError):
            raise ValidationError('Reward points must be a whole number')
        point_value = get_point_value(RewardsConfig.current())
        rewards = reward_points_discount(points, profile.reward_points or 0, point_value, subtotal)
        if rewards.points_used > 0:
            discounts.append(rewards)

    return discounts, promo


def quote_order(profile, payload: Dict[str, Any]) -> Tuple[List[CartLine], OrderTotals, PromoValidationResult]:
    cart = build_cart(payload.get('items'))
    discounts, promo = _discounts_for(profile, payload, cart)
    totals = calculate_order_totals(cart, profile.tax_percentage or 0,
                                    free_shipping=bool(profile.free_shipping), discounts=discounts)
    for discount in totals.discounts:
        if discount.type in ('promo', 'offer') and discount.offer_id and discount.amount > 0:
            discount.item_discounts = calculate_item_discounts(cart, db.session.get(Offer, discount.offer_id),
                                                               discount.amount)
    return cart, totals, promo


def create_order(profile, payload: Dict[str, Any], actor=None) -> Order:
    actor = actor or profile
    payment_method = payload.get('payment_method') or 'card'
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}", 'INVALID_PAYMENT_METHOD')

    cart, totals, promo = quote_order(profile, payload)
    final_total = totals.final_total

    if final_total == 0:
        status, payment_status = 'pending', 'paid'
    elif payment_method == 'credit':
        check_credit_limit(profile, final_total)
        status, payment_status = 'credit_approval_processing', 'pending'
    else:
        status, payment_status = 'new', 'pending'

    order = Order(
        profile_id=profile.id,
        status=status,
        payment_status=payment_status,
        payment_method=payment_method,
        subtotal=totals.subtotal,
        shipping_cost=totals.shipping,
        tax_amount=totals.tax,
        discount_amount=totals.total_discount,
        total_amount=final_total,
        paid_amount=final_total if payment_status == 'paid' else ZERO,
        promo_code=(payload.get('promo_code') or '').strip().upper() or None,
        discount_details=[d.to_dict() for d in totals.discounts],
        shipping_address=payload.get('shipping_address') or profile.shipping_address or {},
        billing_address=payload.get('billing_address') or profile.billing_address or {},
        po_number=payload.get('po_number'),
        notes=payload.get('notes'),
    )
    for line in cart:
        order.items.append(OrderItem(
            product_id=line.product_id,
            size_id=line.size_id,
            product_name=line.product_name,
            size_label=line.size_label,
            sku=line.sku,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        ))
    order.activities.append(OrderActivity(
        activity_type='created',
        description=f"Order created by {actor.display_name}",
        activity_metadata={'payment_method': payment_method, 'total': float(final_total)},
        performed_by=actor.id,
    ))
    db.session.add(order)
    db.session.flush()

    if payment_method == 'credit' and final_total > 0:
        profile.credit_used = to_decimal(profile.credit_used) + final_total

    for discount in totals.discounts:
        if discount.type == 'rewards' and discount.points_used > 0:
            redeem_points(profile, discount.points_used, order)
        if discount.type in ('promo', 'offer') and discount.offer_id:
            apply_promo_code(discount.offer_id, discount.amount)

    if final_total > 0:
        AccountTransaction.record(
            profile.id,
            f"Order #{order.order_number}",
            debit=final_total,
            reference_type='order',
            reference_id=order.id,
            created_by=actor.id,
        )

    if payment_method != 'credit' and final_total > 0:
        award_order_points(profile, order)

    _queue_confirmation(profile, order)
    db.session.commit()
    logger.info(f"Order {order.order_number} created for {profile.user_id}: {format_money(final_total)} "
                f"({payment_method}, {status})")
    return order


def _queue_confirmation(profile, order):
    from .email_service import email_service

    rows = ''.join(
        f"<tr><td>{item.product_name} ({item.size_label})</td><td>{item.quantity}</td>"
        f"<td>{format_money(item.line_total)}</td></tr>"
        for item in order.items
    )
    html = (
        f"<p>Hi {profile.first_name or profile.display_name},</p>"
        f"<p>Thank you for your order #{order.order_number}.</p>"
        f"<table>{rows}</table>"
        f"<p>Total: <strong>{format_money(order.total_amount)}</strong></p>"
    )
    email_service.queue_email(
        to=profile.email,
        subject=f"Order Confirmation #{order.order_number}",
        html_content=html,
        user_id=profile.id,
        email_type='order_confirmation',
        priority=5,
        metadata={'order_id': order.id},
    )


def cancel_order(order: Order, actor, reason: str = None) -> Order:
    if order.status in NON_CANCELLABLE:
        raise ValidationError(f"Order with status {order.status} cannot be cancelled", 'ORDER_NOT_CANCELLABLE')

    total = to_decimal(order.total_amount)
    profile = order.profile
    if order.payment_method == 'credit' and total > 0:
        profile.credit_used = max(ZERO, to_decimal(profile.credit_used) - total)

    if total > 0:
        AccountTransaction.record(
            profile.id,
            f"Order #{order.order_number} cancelled",
            credit=total,
            reference_type='order',
            reference_id=order.id,
            created_by=actor.id,
        )

    order.status = 'cancelled'
    order.cancel_reason = reason
    order.cancelled_at = datetime.utcnow()
    order.activities.append(OrderActivity(
        activity_type='cancelled',
        description=f"Order cancelled{': ' + reason if reason else ''}",
        performed_by=actor.id,
    ))
    db.session.commit()
    logger.info(f"Order {order.order_number} cancelled by {actor.user_id}")
    return order


def can_access_order(user, order: Order) -> bool:
    if user.is_admin() or order.profile_id == user.id:
        return True
    return user.role == 'group' and order.profile is not None and order.profile.group_id == user.id


def get_order_for(user, order_id) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError('Order not found', 'ORDER_NOT_FOUND')
    if not can_access_order(user, order):
        raise AuthorizationError('You do not have access to this order')
    return order
