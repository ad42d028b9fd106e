"""
Reward Points

FLOW OVERVIEW
- get_user_tier(points, tiers) / get_next_tier(points, tiers)
  • Tiers sorted by min_points; the current tier is the highest one reached (Bronze
    with a 1x multiplier when no tiers are configured).
- calculate_order_points(order_total, profile)
  • floor(floor(total × points_per_dollar) × tier multiplier); 0 when the program is off.
- award_order_points(profile, order)
  • Credit points, move lifetime points and tier, log a RewardTransaction and queue the
    "points earned" email. Returns an AwardResult.
- redeem_points(profile, points, order)
  • Deduct points spent at checkout and log a negative RewardTransaction.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models import db, RewardsConfig, RewardTier, RewardTransaction
from .errors import ValidationError
from .money import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierInfo:
    name: str
    min_points: int = 0
    multiplier: float = 1.0
    benefits: Tuple[str, ...] = ()

    @classmethod
    def from_model(cls, tier):
        return cls(name=tier.name, min_points=tier.min_points or 0,
                   multiplier=float(tier.multiplier or 1), benefits=tuple(tier.benefits or ()))

    def to_dict(self):
        return {'name': self.name, 'min_points': self.min_points,
                'multiplier': self.multiplier, 'benefits': list(self.benefits)}


DEFAULT_TIER = TierInfo(name='Bronze')


@dataclass
class AwardResult:
    success: bool
    points_earned: int = 0
    new_total: int = 0
    old_tier: TierInfo = DEFAULT_TIER
    new_tier: TierInfo = DEFAULT_TIER
    next_tier: Optional[TierInfo] = None
    points_to_next_tier: int = 0

    @property
    def tier_upgrade(self):
        return self.new_tier.name != self.old_tier.name

    def to_dict(self):
        return {
            'success': self.success,
            'points_earned': self.points_earned,
            'new_total': self.new_total,
            'old_tier': self.old_tier.to_dict(),
            'new_tier': self.new_tier.to_dict(),
            'next_tier': self.next_tier.to_dict() if self.next_tier else None,
            'points_to_next_tier': self.points_to_next_tier,
            'tier_upgrade': self.tier_upgrade,
        }


def get_reward_tiers() -> List[TierInfo]:
    return [TierInfo.from_model(t) for t in RewardTier.query.order_by(RewardTier.min_points).all()]


def get_user_tier(points: int, tiers: List[TierInfo]) -> TierInfo:
    for tier in reversed(tiers):
        if points >= tier.min_points:
            return tier
    return tiers[0] if tiers else DEFAULT_TIER


def get_next_tier(points: int, tiers: List[TierInfo]) -> Optional[TierInfo]:
    for tier in tiers:
        if tier.min_points > points:
            return tier
    return None


def _points_for(order_total, points_per_dollar, multiplier) -> int:
    base_points = math.floor(to_decimal(order_total) * to_decimal(points_per_dollar))
    return math.floor(base_points * to_decimal(multiplier))


def calculate_order_points(order_total, profile) -> int:
    config = RewardsConfig.current()
    if config is None or not config.program_enabled:
        return 0
    tier = get_user_tier(profile.reward_points or 0, get_reward_tiers())
    return _points_for(order_total, config.points_per_dollar or 0, tier.multiplier)


def award_order_points(profile, order) -> AwardResult:
    """Credit reward points for a placed order (caller commits)"""
    config = RewardsConfig.current()
    if config is None or not config.program_enabled:
        return AwardResult(success=False)

    tiers = get_reward_tiers()
    current_points = profile.reward_points or 0
    old_tier = get_user_tier(current_points, tiers)
    points_earned = _points_for(order.total_amount, config.points_per_dollar or 0, old_tier.multiplier)

    new_total = current_points + points_earned
    new_tier = get_user_tier(new_total, tiers)
    next_tier = get_next_tier(new_total, tiers)

    profile.reward_points = new_total
    profile.lifetime_reward_points = (profile.lifetime_reward_points or 0) + points_earned
    profile.reward_tier = new_tier.name

    db.session.add(RewardTransaction(
        user_id=profile.id,
        points=points_earned,
        transaction_type='earn',
        description=f"Earned from order #{order.order_number}",
        reference_type='order',
        reference_id=str(order.id),
    ))

    result = AwardResult(
        success=True,
        points_earned=points_earned,
        new_total=new_total,
        old_tier=old_tier,
        new_tier=new_tier,
        next_tier=next_tier,
        points_to_next_tier=(next_tier.min_points - new_total) if next_tier else 0,
    )
    _queue_reward_email(profile, order, result)
    logger.info(f"Awarded {points_earned} points to user {profile.user_id} for order {order.order_number}")
    return result


def redeem_points(profile, points: int, order) -> RewardTransaction:
    """Deduct redeemed points (caller commits)"""
    if points <= 0:
        raise ValidationError('Points to redeem must be positive')
    if points > (profile.reward_points or 0):
        raise ValidationError(f"Only {profile.reward_points or 0} reward points are available",
                              'INSUFFICIENT_POINTS')

    profile.reward_points = (profile.reward_points or 0) - points
    entry = RewardTransaction(
        user_id=profile.id,
        points=-points,
        transaction_type='redeem',
        description=f"Redeemed {points} points for order {order.order_number}",
        reference_type='order',
        reference_id=str(order.id),
    )
    db.session.add(entry)
    return entry


def _queue_reward_email(profile, order, result: AwardResult):
    from .email_service import email_service

    name = profile.first_name or profile.display_name
    lines = [
        f"<p>Hi {name},</p>",
        f"<p>You earned <strong>{result.points_earned}</strong> reward points on order "
        f"#{order.order_number}. Your balance is now {result.new_total} points.</p>",
    ]
    if result.tier_upgrade:
        lines.append(f"<p>Congratulations, you have reached {result.new_tier.name} tier!</p>")
    if result.next_tier:
        lines.append(f"<p>{result.points_to_next_tier} more points to reach {result.next_tier.name}.</p>")

    email_service.queue_email(
        to=profile.email,
        subject=f"You earned {result.points_earned} reward points!",
        html_content=''.join(lines),
        user_id=profile.id,
        email_type='rewards',
    )
