"""
Promo Codes and Offers

FLOW OVERVIEW
- validate_promo_code(code, order_amount, cart_items, profile=None, now=None)
  • Case-insensitive lookup of an active offer, then date window, usage limit, minimum order,
    first-order, account-type and product/category restrictions, in that order.
  • Discount: percentage of the applicable amount (capped by max_discount_amount),
    flat (capped by the applicable amount) or free shipping (no monetary discount).
- get_active_offers / get_auto_apply_offers / calculate_best_discount
- calculate_item_discounts(cart_items, offer, total_discount)
  • Pro-rata split of a discount over the lines it applies to.
- apply_promo_code(offer_id, discount_amount)
  • Record one use of the offer after the order is placed.

Validation failures are returned as PromoValidationResult(valid=False, message=...),
never raised, so the checkout can show the message inline.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..models import db, Offer, Order
from .money import ZERO, to_decimal, to_money

logger = logging.getLogger(__name__)


@dataclass
class PromoValidationResult:
    valid: bool
    message: str
    offer_id: Optional[int] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    calculated_discount: Decimal = ZERO
    applicable_amount: Decimal = ZERO

    @property
    def free_shipping(self):
        return self.valid and self.discount_type == 'free_shipping'

    def to_dict(self):
        return {
            'valid': self.valid,
            'message': self.message,
            'offer_id': self.offer_id,
            'discount_type': self.discount_type,
            'discount_value': float(self.discount_value) if self.discount_value is not None else None,
            'max_discount': float(self.max_discount) if self.max_discount is not None else None,
            'calculated_discount': float(self.calculated_discount),
            'applicable_amount': float(self.applicable_amount),
        }


def _matches(item, offer) -> bool:
    ids = offer.applicable_ids or []
    if offer.applicable_to == 'product':
        return item.product_id in ids
    if offer.applicable_to == 'category':
        return item.category_id is not None and item.category_id in ids
    return True


def calculate_applicable_amount(cart_items, offer) -> Decimal:
    return to_money(sum((item.line_total for item in cart_items if _matches(item, offer)), ZERO))


def _discount_for(offer, applicable_amount) -> Decimal:
    value = to_decimal(offer.discount_value)
    if offer.offer_type == 'percentage':
        discount = to_money(applicable_amount * value / 100)
        if offer.max_discount_amount and discount > to_decimal(offer.max_discount_amount):
            discount = to_money(offer.max_discount_amount)
        return discount
    if offer.offer_type == 'flat':
        return to_money(min(value, applicable_amount))
    return ZERO


def _account_type(profile) -> Optional[str]:
    return profile.role if profile is not None else None


def validate_promo_code(code: str, order_amount, cart_items: List, profile=None,
                        now: Optional[datetime] = None) -> PromoValidationResult:
    if not code or not code.strip():
        return PromoValidationResult(False, 'Please enter a promo code')

    offer = Offer.query.filter_by(promo_code=code.strip().upper(), is_active=True).first()
    if offer is None:
        return PromoValidationResult(False, 'Invalid or expired promo code')

    now = now or datetime.utcnow()
    order_amount = to_decimal(order_amount)

    if now < offer.start_date:
        return PromoValidationResult(False, 'This promo code is not yet active')
    if now > offer.end_date:
        return PromoValidationResult(False, 'This promo code has expired')

    if offer.usage_limit and (offer.used_count or 0) >= offer.usage_limit:
        return PromoValidationResult(False, 'This promo code has reached its usage limit')

    if offer.min_order_amount and order_amount < to_decimal(offer.min_order_amount):
        return PromoValidationResult(False, f"Minimum order amount is ${to_decimal(offer.min_order_amount).normalize():f}")

    if offer.applicable_to == 'first_order' and profile is not None:
        previous = (Order.query.filter(Order.profile_id == profile.id,
                                       Order.status != 'cancelled').count())
        if previous > 0:
            return PromoValidationResult(False, 'This offer is only for first orders')

    if offer.applicable_to == 'user_group' and offer.user_groups:
        if _account_type(profile) not in offer.user_groups:
            return PromoValidationResult(False, 'This offer is not available for your account type')

    applicable_amount = order_amount
    if offer.applicable_to in ('product', 'category') and offer.applicable_ids:
        applicable_amount = calculate_applicable_amount(cart_items, offer)
        if applicable_amount == 0:
            return PromoValidationResult(False, 'This offer is not applicable to items in your cart')

    discount = _discount_for(offer, applicable_amount)
    if offer.offer_type == 'free_shipping':
        message = f"{offer.title} applied! Free shipping on this order"
    else:
        message = f"{offer.title} applied! You save ${discount:.2f}"

    return PromoValidationResult(
        valid=True,
        message=message,
        offer_id=offer.id,
        discount_type=offer.offer_type,
        discount_value=to_decimal(offer.discount_value),
        max_discount=to_decimal(offer.max_discount_amount) if offer.max_discount_amount else None,
        calculated_discount=discount,
        applicable_amount=applicable_amount,
    )


def apply_promo_code(offer_id: int, discount_amount) -> bool:
    """Increment usage counters for an offer (caller commits)"""
    offer = db.session.get(Offer, offer_id)
    if offer is None:
        logger.warning(f"apply_promo_code: offer {offer_id} not found")
        return False
    offer.used_count = (offer.used_count or 0) + 1
    offer.total_discount_given = to_money(to_decimal(offer.total_discount_given) + to_decimal(discount_amount))
    offer.total_orders = (offer.total_orders or 0) + 1
    return True


def get_active_offers(now: Optional[datetime] = None) -> List[Offer]:
    now = now or datetime.utcnow()
    return (Offer.query.filter(Offer.is_active.is_(True),
                               Offer.start_date <= now,
                               Offer.end_date >= now)
            .order_by(Offer.discount_value.desc()).all())


def get_auto_apply_offers(order_amount, cart_items: Iterable = (), profile=None,
                          now: Optional[datetime] = None) -> List[Offer]:
    """Active offers without a promo code whose conditions the cart meets"""
    order_amount = to_decimal(order_amount)
    cart_items = list(cart_items)
    product_ids = {item.product_id for item in cart_items}
    category_ids = {item.category_id for item in cart_items if item.category_id is not None}

    eligible = []
    for offer in get_active_offers(now):
        if offer.promo_code:
            continue
        if offer.min_order_amount and order_amount < to_decimal(offer.min_order_amount):
            continue
        if offer.usage_limit and (offer.used_count or 0) >= offer.usage_limit:
            continue
        if offer.applicable_to == 'user_group' and offer.user_groups:
            if _account_type(profile) not in offer.user_groups:
                continue
        ids = set(offer.applicable_ids or [])
        if offer.applicable_to == 'category' and ids and cart_items and not ids & category_ids:
            continue
        if offer.applicable_to == 'product' and ids and cart_items and not ids & product_ids:
            continue
        eligible.append(offer)
    return eligible


def calculate_best_discount(offers: Iterable[Offer], order_amount, cart_items: Iterable = ()):
    """(offer, discount) pair with the largest monetary discount"""
    order_amount = to_decimal(order_amount)
    cart_items = list(cart_items)
    best_offer, best_discount = None, ZERO
    for offer in offers:
        if offer.offer_type not in ('percentage', 'flat'):
            continue
        applicable_amount = order_amount
        if cart_items and offer.applicable_to in ('product', 'category') and offer.applicable_ids:
            applicable_amount = calculate_applicable_amount(cart_items, offer)
        discount = _discount_for(offer, applicable_amount)
        if discount > best_discount:
            best_offer, best_discount = offer, discount
    return best_offer, best_discount


def calculate_item_discounts(cart_items: List, offer, total_discount) -> Dict[int, Decimal]:
    """Split `total_discount` across matching lines in proportion to their totals"""
    total_discount = to_decimal(total_discount)
    if offer.applicable_to in ('product', 'category') and offer.applicable_ids:
        matching = [item for item in cart_items if _matches(item, offer)]
    elif offer.applicable_to == 'all':
        matching = list(cart_items)
    else:
        return {}

    base = sum((item.line_total for item in matching), ZERO)
    if base == 0:
        return {}

    discounts = {}
    for item in matching:
        share = to_money(item.line_total / base * total_discount)
        discounts[item.product_id] = discounts.get(item.product_id, ZERO) + share
    return discounts
