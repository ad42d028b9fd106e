"""
Rewards Models

RewardsConfig (single program settings row), RewardTier and RewardTransaction.
"""

from datetime import datetime
from .database import db


class RewardsConfig(db.Model):
    __tablename__ = 'rewards_config'

    id = db.Column(db.Integer, primary_key=True)
    program_enabled = db.Column(db.Boolean, default=True)
    points_per_dollar = db.Column(db.Numeric(8, 2), default=1)
    point_redemption_value = db.Column(db.Numeric(8, 4))
    referral_bonus = db.Column(db.Integer, default=0)
    review_bonus = db.Column(db.Integer, default=0)
    birthday_bonus = db.Column(db.Integer, default=0)

    @classmethod
    def current(cls):
        return cls.query.order_by(cls.id).first()


class RewardTier(db.Model):
    __tablename__ = 'reward_tiers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(40), unique=True, nullable=False)
    min_points = db.Column(db.Integer, nullable=False, default=0)
    multiplier = db.Column(db.Numeric(4, 2), default=1)
    color = db.Column(db.String(40))
    benefits = db.Column(db.JSON, default=list)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'min_points': self.min_points,
            'multiplier': float(self.multiplier or 1),
            'color': self.color,
            'benefits': self.benefits or [],
        }


class RewardTransaction(db.Model):
    __tablename__ = 'reward_transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    transaction_type = db.Column(db.String(20), nullable=False)  # earn, redeem, adjust
    description = db.Column(db.String(255))
    reference_type = db.Column(db.String(20))
    reference_id = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'points': self.points,
            'transaction_type': self.transaction_type,
            'description': self.description,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
