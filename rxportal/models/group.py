"""
Group Staff Model

Staff members invited by a group account, each with a role, status and a
checklist of permissions.
"""

from datetime import datetime
from .database import db


class GroupStaff(db.Model):
    __tablename__ = 'group_staff'

    PERMISSIONS = ('view_orders', 'manage_orders', 'view_inventory', 'manage_inventory',
                   'view_reports', 'manage_pricing', 'manage_pharmacies')
    ROLES = ('manager', 'staff', 'viewer')
    STATUSES = ('active', 'inactive', 'pending')

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    role = db.Column(db.String(20), default='staff')
    status = db.Column(db.String(20), default='active')
    permissions = db.Column(db.JSON, default=list)
    phone = db.Column(db.String(30))
    notes = db.Column(db.Text)
    last_active = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('group_id', 'email', name='unique_group_staff_email'),
    )

    def has_permission(self, permission):
        return self.status == 'active' and permission in (self.permissions or [])

    def to_dict(self):
        return {
            'id': self.id,
            'group_id': self.group_id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'status': self.status,
            'permissions': self.permissions or [],
            'phone': self.phone,
            'notes': self.notes,
            'last_active': self.last_active.isoformat() if self.last_active else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
