"""
Tests for order totals, credit limit checks and reward point redemption.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from rxportal.utils.errors import ValidationError
from rxportal.utils.order_calculations import (
    CartLine, Discount, merge_cart_item, calculate_subtotal, calculate_shipping, calculate_tax,
    calculate_final_total, calculate_order_totals, check_credit_limit, get_point_value,
    reward_points_discount
)


def line(product_id=1, size_id=1, quantity=1, price='10.00', shipping='0.00', category_id=None):
    return CartLine(product_id=product_id, size_id=size_id, quantity=quantity,
                    unit_price=Decimal(price), shipping_cost=Decimal(shipping), category_id=category_id)


class TestCartArithmetic:
    """Test the per-step total calculations"""

    def test_merge_cart_item_increases_quantity(self):
        cart = [line(quantity=2)]
        merge_cart_item(cart, line(quantity=3))
        assert len(cart) == 1
        assert cart[0].quantity == 5

    def test_merge_cart_item_different_size_appends(self):
        cart = [line(size_id=1)]
        merge_cart_item(cart, line(size_id=2))
        assert len(cart) == 2

    def test_subtotal_rounds_to_cents(self):
        items = [line(quantity=3, price='0.333'), line(product_id=2, quantity=1, price='10.10')]
        assert calculate_subtotal(items) == Decimal('11.10')

    def test_shipping_is_highest_line_cost(self):
        items = [line(shipping='5.00'), line(product_id=2, shipping='8.00')]
        assert calculate_shipping(items) == Decimal('8.00')
        assert calculate_shipping(items, free_shipping=True) == Decimal('0.00')
        assert calculate_shipping([]) == Decimal('0.00')

    def test_tax(self):
        assert calculate_tax(Decimal('100.00'), Decimal('8.25')) == Decimal('8.25')
        assert calculate_tax(Decimal('10.05'), 5) == Decimal('0.50')

    def test_final_total_never_negative(self):
        assert calculate_final_total(10, 5, 1, 100) == Decimal('0.00')
        assert calculate_final_total('10.00', '5.00', '0.50', '2.25') == Decimal('13.25')


class TestOrderTotals:
    """Test calculate_order_totals as a whole"""

    def test_totals_with_tax_and_shipping(self):
        items = [line(quantity=2, price='10.00', shipping='5.00'),
                 line(product_id=2, quantity=1, price='15.50', shipping='8.00')]
        totals = calculate_order_totals(items, tax_percentage=Decimal('5'))
        assert totals.subtotal == Decimal('35.50')
        assert totals.shipping == Decimal('8.00')
        assert totals.tax == Decimal('1.78')
        assert totals.total == Decimal('45.28')
        assert totals.final_total == Decimal('45.28')

    def test_free_shipping_discount_zeroes_shipping(self):
        items = [line(price='20.00', shipping='5.00')]
        totals = calculate_order_totals(items, discounts=[Discount(type='promo', free_shipping=True)])
        assert totals.shipping == Decimal('0.00')
        assert totals.final_total == Decimal('20.00')

    def test_discount_capped_at_total(self):
        items = [line(price='20.00')]
        totals = calculate_order_totals(items, discounts=[Discount(type='promo', amount=Decimal('15')),
                                                          Discount(type='rewards', amount=Decimal('10'))])
        assert totals.total_discount == Decimal('20.00')
        assert totals.final_total == Decimal('0.00')

    def test_capped_discounts_shrink_in_order(self):
        """Test that a reward line capped by the total only keeps the points it applies"""
        items = [line(price='15.50')]
        rewards = reward_points_discount(1000, 1000, Decimal('0.01'), Decimal('15.50'))
        totals = calculate_order_totals(items, discounts=[Discount(type='promo', amount=Decimal('10')), rewards])

        promo_line, rewards_line = totals.discounts
        assert promo_line.amount == Decimal('10.00')
        assert rewards_line.amount == Decimal('5.50')
        assert rewards_line.points_used == 550
        assert rewards_line.name == '550 Reward Points'
        assert totals.total_discount == Decimal('15.50')
        assert totals.final_total == Decimal('0.00')

    def test_rejects_unknown_or_negative_discounts(self):
        with pytest.raises(ValidationError):
            calculate_order_totals([line()], discounts=[Discount(type='coupon', amount=Decimal('1'))])
        with pytest.raises(ValidationError):
            calculate_order_totals([line()], discounts=[Discount(type='promo', amount=Decimal('-1'))])

    def test_to_dict_is_json_friendly(self):
        data = calculate_order_totals([line()]).to_dict()
        assert data['subtotal'] == 10.0
        assert data['discounts'] == []


class TestCreditAndPoints:
    """Test credit limit checks and reward point redemption"""

    def test_credit_limit_allows_exact_amount(self):
        profile = SimpleNamespace(credit_limit=Decimal('500.00'), credit_used=Decimal('200.00'))
        assert check_credit_limit(profile, Decimal('300.00')) == Decimal('300.00')

    def test_credit_limit_exceeded(self):
        profile = SimpleNamespace(credit_limit=Decimal('500.00'), credit_used=Decimal('200.00'))
        with pytest.raises(ValidationError) as exc_info:
            check_credit_limit(profile, Decimal('300.01'))
        assert exc_info.value.error_code == 'CREDIT_LIMIT_EXCEEDED'
        assert '$300.00' in exc_info.value.message

    def test_point_value(self):
        assert get_point_value(None) == Decimal('0.01')
        assert get_point_value(SimpleNamespace(point_redemption_value=Decimal('0.02'),
                                               points_per_dollar=1)) == Decimal('0.02')

    def test_points_discount_limited_by_subtotal(self):
        discount = reward_points_discount(5000, 6000, Decimal('0.01'), Decimal('20.00'))
        assert discount.points_used == 2000
        assert discount.amount == Decimal('20.00')
        assert discount.type == 'rewards'

    def test_points_discount_rounds_points_down(self):
        discount = reward_points_discount(1000, 1000, Decimal('0.03'), Decimal('10.01'))
        assert discount.points_used == 333
        assert discount.amount == Decimal('9.99')

    def test_points_discount_requires_balance(self):
        with pytest.raises(ValidationError) as exc_info:
            reward_points_discount(500, 100, Decimal('0.01'), Decimal('20.00'))
        assert exc_info.value.error_code == 'INSUFFICIENT_POINTS'
