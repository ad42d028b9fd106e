"""
Tests for reward tiers, point calculation, awarding and redemption.
"""

from decimal import Decimal

import pytest
from rxportal.models import Order, RewardsConfig, RewardTier, RewardTransaction, EmailQueue
from rxportal.utils.errors import ValidationError
from rxportal.utils.rewards import (
    TierInfo, DEFAULT_TIER, get_user_tier, get_next_tier, calculate_order_points,
    award_order_points, redeem_points
)

TIERS = [TierInfo('Bronze', 0, 1.0), TierInfo('Silver', 1000, 1.25), TierInfo('Gold', 5000, 1.5)]


@pytest.fixture
def rewards_program(db_session):
    db_session.add(RewardsConfig(program_enabled=True, points_per_dollar=Decimal('1')))
    db_session.add_all([
        RewardTier(name='Bronze', min_points=0, multiplier=Decimal('1')),
        RewardTier(name='Silver', min_points=1000, multiplier=Decimal('1.25')),
        RewardTier(name='Gold', min_points=5000, multiplier=Decimal('1.5')),
    ])
    db_session.commit()


class TestTiers:
    """Test tier lookup"""

    def test_user_tier(self):
        assert get_user_tier(0, TIERS).name == 'Bronze'
        assert get_user_tier(999, TIERS).name == 'Bronze'
        assert get_user_tier(1000, TIERS).name == 'Silver'
        assert get_user_tier(10000, TIERS).name == 'Gold'

    def test_no_tiers_configured(self):
        assert get_user_tier(500, []) == DEFAULT_TIER
        assert get_next_tier(500, []) is None

    def test_next_tier(self):
        assert get_next_tier(10, TIERS).name == 'Silver'
        assert get_next_tier(5000, TIERS) is None


class TestAwarding:
    """Test point calculation and award bookkeeping"""

    def test_program_disabled_awards_nothing(self, db_session, pharmacy_user):
        assert calculate_order_points(Decimal('100'), pharmacy_user) == 0
        order = Order(profile_id=pharmacy_user.id, total_amount=Decimal('100'))
        assert not award_order_points(pharmacy_user, order).success

    def test_points_use_tier_multiplier(self, db_session, rewards_program, pharmacy_user):
        pharmacy_user.reward_points = 1200
        assert calculate_order_points(Decimal('99.99'), pharmacy_user) == 123

    def test_award_crosses_tier(self, db_session, rewards_program, pharmacy_user):
        pharmacy_user.reward_points = 900
        order = Order(profile_id=pharmacy_user.id, total_amount=Decimal('150.00'))
        db_session.add(order)
        db_session.flush()

        result = award_order_points(pharmacy_user, order)
        db_session.commit()

        assert result.success
        assert result.points_earned == 150
        assert result.new_total == 1050
        assert result.tier_upgrade
        assert result.new_tier.name == 'Silver'
        assert result.points_to_next_tier == 3950
        assert pharmacy_user.reward_tier == 'Silver'
        assert pharmacy_user.lifetime_reward_points == 150

        entry = RewardTransaction.query.filter_by(user_id=pharmacy_user.id).one()
        assert entry.points == 150
        assert entry.transaction_type == 'earn'
        queued = EmailQueue.query.filter_by(email_type='rewards').one()
        assert 'Silver' in queued.html_content


class TestRedemption:
    """Test point redemption"""

    def test_redeem_points(self, db_session, pharmacy_user):
        pharmacy_user.reward_points = 500
        order = Order(profile_id=pharmacy_user.id, total_amount=Decimal('10'))
        db_session.add(order)
        db_session.flush()

        entry = redeem_points(pharmacy_user, 200, order)
        db_session.commit()
        assert pharmacy_user.reward_points == 300
        assert entry.points == -200

    def test_redeem_more_than_balance(self, db_session, pharmacy_user):
        pharmacy_user.reward_points = 50
        order = Order(profile_id=pharmacy_user.id)
        with pytest.raises(ValidationError):
            redeem_points(pharmacy_user, 100, order)
        with pytest.raises(ValidationError):
            redeem_points(pharmacy_user, 0, order)
