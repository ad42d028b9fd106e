"""
Tests for promo code validation, auto-applied offers and discount splitting.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from rxportal.models import Offer, Order
from rxportal.utils.order_calculations import CartLine
from rxportal.utils.promo_codes import (
    validate_promo_code, apply_promo_code, get_auto_apply_offers, calculate_best_discount,
    calculate_item_discounts
)

NOW = datetime(2025, 6, 15, 12, 0, 0)


def make_offer(session, **fields):
    values = {
        'title': 'Summer Sale',
        'offer_type': 'percentage',
        'discount_value': Decimal('10'),
        'start_date': NOW - timedelta(days=1),
        'end_date': NOW + timedelta(days=30),
        'is_active': True,
        'applicable_to': 'all',
    }
    values.update(fields)
    offer = Offer(**values)
    session.add(offer)
    session.commit()
    return offer


def cart():
    return [
        CartLine(product_id=1, size_id=1, quantity=2, unit_price=Decimal('25.00'), category_id=7),
        CartLine(product_id=2, size_id=2, quantity=1, unit_price=Decimal('50.00'), category_id=8),
    ]


class TestValidatePromoCode:
    """Test the ordered promo code checks"""

    def test_percentage_code_is_case_insensitive(self, db_session):
        make_offer(db_session, promo_code='SUMMER10')
        result = validate_promo_code('summer10', Decimal('100.00'), cart(), now=NOW)
        assert result.valid
        assert result.calculated_discount == Decimal('10.00')
        assert 'You save $10.00' in result.message

    def test_empty_and_unknown_codes(self, db_session):
        assert validate_promo_code('  ', 100, cart(), now=NOW).message == 'Please enter a promo code'
        assert not validate_promo_code('NOPE', 100, cart(), now=NOW).valid

    def test_date_window(self, db_session):
        make_offer(db_session, promo_code='LATER', start_date=NOW + timedelta(days=1))
        make_offer(db_session, promo_code='OLD', start_date=NOW - timedelta(days=10),
                   end_date=NOW - timedelta(days=1))
        assert validate_promo_code('LATER', 100, cart(), now=NOW).message == 'This promo code is not yet active'
        assert validate_promo_code('OLD', 100, cart(), now=NOW).message == 'This promo code has expired'

    def test_usage_limit_and_minimum(self, db_session):
        make_offer(db_session, promo_code='USED', usage_limit=5, used_count=5)
        make_offer(db_session, promo_code='BIG', min_order_amount=Decimal('150'))
        assert 'usage limit' in validate_promo_code('USED', 100, cart(), now=NOW).message
        result = validate_promo_code('BIG', 100, cart(), now=NOW)
        assert result.message == 'Minimum order amount is $150'

    def test_percentage_capped_by_max_discount(self, db_session):
        make_offer(db_session, promo_code='CAP', discount_value=Decimal('50'),
                   max_discount_amount=Decimal('20'))
        assert validate_promo_code('CAP', 100, cart(), now=NOW).calculated_discount == Decimal('20.00')

    def test_flat_capped_by_applicable_amount(self, db_session):
        make_offer(db_session, promo_code='FLAT', offer_type='flat', discount_value=Decimal('80'),
                   applicable_to='category', applicable_ids=[7])
        result = validate_promo_code('FLAT', 100, cart(), now=NOW)
        assert result.applicable_amount == Decimal('50.00')
        assert result.calculated_discount == Decimal('50.00')

    def test_category_not_in_cart(self, db_session):
        make_offer(db_session, promo_code='CAT', applicable_to='category', applicable_ids=[99])
        result = validate_promo_code('CAT', 100, cart(), now=NOW)
        assert result.message == 'This offer is not applicable to items in your cart'

    def test_free_shipping(self, db_session):
        make_offer(db_session, promo_code='SHIPFREE', offer_type='free_shipping', discount_value=None)
        result = validate_promo_code('SHIPFREE', 100, cart(), now=NOW)
        assert result.valid
        assert result.free_shipping
        assert result.calculated_discount == Decimal('0.00')

    def test_first_order_only(self, db_session, pharmacy_user):
        make_offer(db_session, promo_code='WELCOME', applicable_to='first_order')
        assert validate_promo_code('WELCOME', 100, cart(), profile=pharmacy_user, now=NOW).valid

        db_session.add(Order(profile_id=pharmacy_user.id, total_amount=Decimal('10')))
        db_session.commit()
        result = validate_promo_code('WELCOME', 100, cart(), profile=pharmacy_user, now=NOW)
        assert result.message == 'This offer is only for first orders'

    def test_account_type_restriction(self, db_session, pharmacy_user, group_user):
        make_offer(db_session, promo_code='GROUPS', applicable_to='user_group', user_groups=['group'])
        assert validate_promo_code('GROUPS', 100, cart(), profile=group_user, now=NOW).valid
        assert not validate_promo_code('GROUPS', 100, cart(), profile=pharmacy_user, now=NOW).valid


class TestOfferHelpers:
    """Test usage tracking and auto-applied offers"""

    def test_apply_promo_code_counts_usage(self, db_session):
        offer = make_offer(db_session, promo_code='COUNT')
        assert apply_promo_code(offer.id, Decimal('12.50'))
        db_session.commit()
        assert offer.used_count == 1
        assert offer.total_orders == 1
        assert offer.total_discount_given == Decimal('12.50')
        assert not apply_promo_code(9999, 1)

    def test_auto_apply_skips_coded_offers(self, db_session):
        make_offer(db_session, title='Coded', promo_code='CODE')
        auto = make_offer(db_session, title='Automatic')
        offers = get_auto_apply_offers(Decimal('100'), cart(), now=NOW)
        assert [o.id for o in offers] == [auto.id]

    def test_best_discount(self, db_session):
        pct = make_offer(db_session, title='Pct', discount_value=Decimal('10'))
        flat = make_offer(db_session, title='Flat', offer_type='flat', discount_value=Decimal('15'))
        offer, discount = calculate_best_discount([pct, flat], Decimal('100'))
        assert offer.id == flat.id
        assert discount == Decimal('15.00')

    def test_best_discount_uses_applicable_amount(self, db_session):
        """Test that scoped offers are priced on the lines they cover"""
        scoped = make_offer(db_session, title='Scoped', discount_value=Decimal('20'),
                            applicable_to='product', applicable_ids=[2])
        flat = make_offer(db_session, title='Flat', offer_type='flat', discount_value=Decimal('12'))
        offer, discount = calculate_best_discount([scoped, flat], Decimal('100'), cart())
        assert offer.id == flat.id
        assert discount == Decimal('12.00')

    def test_item_discounts_pro_rata(self, db_session):
        offer = make_offer(db_session, title='All')
        split = calculate_item_discounts(cart(), offer, Decimal('10.00'))
        assert split == {1: Decimal('5.00'), 2: Decimal('5.00')}
