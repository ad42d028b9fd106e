"""
Order Totals

FLOW OVERVIEW
- CartLine / Discount / OrderTotals
  • Plain data carried between the cart, the quote endpoint and order creation.
- merge_cart_item(cart, line)
  • Adding a product size already in the cart increases its quantity.
- calculate_subtotal / calculate_shipping / calculate_tax / calculate_final_total
  • subtotal = Σ unit_price × quantity
  • shipping = highest per-line shipping cost, zero with free shipping
  • tax = subtotal × tax_percentage / 100
  • final total = max(0, subtotal + shipping + tax − discount)
- calculate_order_totals(items, tax_percentage, free_shipping, discounts)
  • One pass over the cart applying every discount; a free-shipping discount zeroes
    shipping before tax/total are computed.
- allocate_discounts(discounts, total)
  • Discounts apply in order until the total is used up. Later lines shrink, and a
    reward points line gives back the points it could not apply.
- check_credit_limit(profile, amount)
  • Credit orders must fit inside credit_limit − credit_used.
- get_point_value / reward_points_discount
  • Reward points → dollars, capped by balance and subtotal.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_FLOOR
from typing import Dict, List, Optional, Iterable

from .errors import ValidationError
from .money import ZERO, to_decimal, to_money, format_money

DISCOUNT_TYPES = ('promo', 'offer', 'rewards', 'redeemed_reward', 'credit_memo')
DEFAULT_POINT_VALUE = Decimal('0.01')


@dataclass
class CartLine:
    product_id: int
    size_id: int
    quantity: int
    unit_price: Decimal
    shipping_cost: Decimal = ZERO
    category_id: Optional[int] = None
    product_name: str = ''
    size_label: str = ''
    sku: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(to_decimal(self.unit_price) * self.quantity)

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'size_id': self.size_id,
            'category_id': self.category_id,
            'product_name': self.product_name,
            'size_label': self.size_label,
            'sku': self.sku,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price),
            'shipping_cost': float(self.shipping_cost),
            'line_total': float(self.line_total),
        }


@dataclass
class Discount:
    type: str
    amount: Decimal = ZERO
    name: str = ''
    offer_id: Optional[int] = None
    points_used: int = 0
    free_shipping: bool = False
    reference_id: Optional[str] = None
    point_value: Optional[Decimal] = None
    item_discounts: Dict[int, Decimal] = field(default_factory=dict)

    def to_dict(self):
        return {
            'type': self.type,
            'name': self.name,
            'amount': float(to_money(self.amount)),
            'offer_id': self.offer_id,
            'points_used': self.points_used,
            'free_shipping': self.free_shipping,
            'reference_id': self.reference_id,
            'item_discounts': {str(k): float(v) for k, v in self.item_discounts.items()},
        }


@dataclass
class OrderTotals:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    total_discount: Decimal = ZERO
    final_total: Decimal = ZERO
    discounts: List[Discount] = field(default_factory=list)

    def to_dict(self):
        return {
            'subtotal': float(self.subtotal),
            'shipping': float(self.shipping),
            'tax': float(self.tax),
            'total': float(self.total),
            'total_discount': float(self.total_discount),
            'final_total': float(self.final_total),
            'discounts': [d.to_dict() for d in self.discounts],
        }


def merge_cart_item(cart: List[CartLine], line: CartLine) -> List[CartLine]:
    """Add a line to the cart, merging with an existing line for the same size"""
    for existing in cart:
        if existing.product_id == line.product_id and existing.size_id == line.size_id:
            existing.quantity += line.quantity
            existing.unit_price = line.unit_price
            return cart
    cart.append(line)
    return cart


def calculate_subtotal(items: Iterable[CartLine]) -> Decimal:
    return to_money(sum((item.line_total for item in items), ZERO))


def calculate_shipping(items: Iterable[CartLine], free_shipping: bool = False) -> Decimal:
    if free_shipping:
        return ZERO
    costs = [to_decimal(item.shipping_cost) for item in items if item.quantity > 0]
    return to_money(max(costs)) if costs else ZERO


def calculate_tax(subtotal, tax_percentage) -> Decimal:
    return to_money(to_decimal(subtotal) * to_decimal(tax_percentage) / 100)


def calculate_final_total(subtotal, shipping, tax, discount=ZERO) -> Decimal:
    total = to_decimal(subtotal) + to_decimal(shipping) + to_decimal(tax) - to_decimal(discount)
    return to_money(max(ZERO, total))


def _whole_points(amount, point_value) -> int:
    return int((to_decimal(amount) / to_decimal(point_value)).to_integral_value(rounding=ROUND_FLOOR))


def allocate_discounts(discounts: List[Discount], total) -> List[Discount]:
    """
    Apply discounts in order against the order total.

    Each discount is reduced to what still fits under the total. A reward points line
    keeps only the whole points whose value fits, so points_used always matches amount.
    """
    remaining = to_money(total)
    applied = []
    for discount in discounts:
        amount = to_money(discount.amount)
        if amount <= remaining:
            applied.append(replace(discount, amount=amount))
        elif discount.type == 'rewards' and discount.point_value:
            points = min(discount.points_used, _whole_points(remaining, discount.point_value))
            amount = to_money(points * to_decimal(discount.point_value))
            applied.append(replace(discount, amount=amount, points_used=points,
                                   name=f"{points} Reward Points"))
        else:
            amount = remaining
            applied.append(replace(discount, amount=amount))
        remaining -= amount
    return applied


def calculate_order_totals(items: List[CartLine], tax_percentage=0, free_shipping: bool = False,
                           discounts: Iterable[Discount] = ()) -> OrderTotals:
    discounts = list(discounts)
    for discount in discounts:
        if discount.type not in DISCOUNT_TYPES:
            raise ValidationError(f"Unknown discount type: {discount.type}")
        if to_decimal(discount.amount) < 0:
            raise ValidationError('Discount amounts cannot be negative')

    ships_free = free_shipping or any(d.free_shipping for d in discounts)
    subtotal = calculate_subtotal(items)
    shipping = calculate_shipping(items, ships_free)
    tax = calculate_tax(subtotal, tax_percentage)
    total = calculate_final_total(subtotal, shipping, tax)

    applied = allocate_discounts(discounts, total)
    total_discount = to_money(sum((d.amount for d in applied), ZERO))

    return OrderTotals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=total,
        total_discount=total_discount,
        final_total=calculate_final_total(subtotal, shipping, tax, total_discount),
        discounts=applied,
    )


def check_credit_limit(profile, amount) -> Decimal:
    """Raise when a credit order would exceed the customer's available credit"""
    available = to_money(to_decimal(profile.credit_limit) - to_decimal(profile.credit_used))
    amount = to_money(amount)
    if amount > available:
        raise ValidationError(
            f"Available credit: {format_money(available)}. Order total: {format_money(amount)}.",
            'CREDIT_LIMIT_EXCEEDED'
        )
    return available


def get_point_value(config) -> Decimal:
    """Dollar value of one reward point (100 points = $1 by default)"""
    if config is None:
        return DEFAULT_POINT_VALUE
    if config.point_redemption_value:
        return to_decimal(config.point_redemption_value)
    if config.points_per_dollar:
        return Decimal(1) / (to_decimal(config.points_per_dollar) * 100)
    return DEFAULT_POINT_VALUE


def reward_points_discount(points_requested: int, points_available: int, point_value: Decimal,
                           subtotal) -> Discount:
    """Redeem up to `points_requested`, limited by the balance and by the subtotal"""
    if points_requested < 0:
        raise ValidationError('Points to redeem cannot be negative')
    if points_requested > points_available:
        raise ValidationError(f"Only {points_available} reward points are available",
                              'INSUFFICIENT_POINTS')

    max_points = _whole_points(subtotal, point_value) if point_value > 0 else 0
    points_used = min(points_requested, max_points)
    return Discount(
        type='rewards',
        name=f"{points_used} Reward Points",
        amount=to_money(points_used * point_value),
        points_used=points_used,
        point_value=point_value,
    )
