"""
Group Routes

FLOW OVERVIEW
- All endpoints act on one group account: the signed-in group, or for admins the
  group named by ?group_id=<user_id> (or "group_id" in the JSON body).
- Staff: /api/groups/staff [GET, POST], /staff/<id> [PUT, DELETE], /staff/<id>/status [POST]
  • Permissions must come from GroupStaff.PERMISSIONS; email unique within the group.
- Pharmacies: /api/groups/pharmacies [GET, POST], /pharmacies/<user_id> [DELETE]
  • Adding sets the pharmacy's group_id; a pharmacy already in another group is
    rejected unless an admin moves it.
- Orders: /api/groups/orders [GET], /api/groups/stats [GET]
"""

from datetime import datetime

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy import func

from ..models import db, User, Order, GroupStaff
from ..utils.api_utils import get_json_payload, apply_fields, paginate
from ..utils.auth_utils import roles_required, get_current_user
from ..utils.errors import ValidationError, NotFoundError, AuthorizationError, ServiceError
from ..utils.validators import validate_email

groups_bp = Blueprint('groups', __name__)

STAFF_FIELDS = ('name', 'role', 'status', 'permissions', 'phone', 'notes')


def _group():
    user = get_current_user()
    if not user.is_admin():
        return user

    data = request.get_json(silent=True) if request.is_json else None
    public_id = request.args.get('group_id') or (data or {}).get('group_id')
    if not public_id:
        raise ValidationError('group_id is required', 'MISSING_FIELDS', errors={'group_id': 'Required'})
    group = User.query.filter_by(user_id=public_id, role='group').first()
    if group is None:
        raise NotFoundError('Group not found', 'GROUP_NOT_FOUND')
    return group


def _staff_member(group, staff_id):
    staff = db.session.get(GroupStaff, staff_id)
    if staff is None or staff.group_id != group.id:
        raise NotFoundError('Staff member not found', 'STAFF_NOT_FOUND')
    return staff


def _validate_staff(data):
    errors = {}
    if 'name' in data and not str(data.get('name') or '').strip():
        errors['name'] = 'Name is required'
    if 'role' in data and data['role'] not in GroupStaff.ROLES:
        errors['role'] = f"Must be one of {', '.join(GroupStaff.ROLES)}"
    if 'status' in data and data['status'] not in GroupStaff.STATUSES:
        errors['status'] = f"Must be one of {', '.join(GroupStaff.STATUSES)}"
    if 'permissions' in data:
        permissions = data['permissions']
        if not isinstance(permissions, list):
            errors['permissions'] = 'Must be a list'
        else:
            unknown = [p for p in permissions if p not in GroupStaff.PERMISSIONS]
            if unknown:
                errors['permissions'] = f"Unknown permissions: {', '.join(map(str, unknown))}"
    if errors:
        raise ValidationError('Please correct the highlighted fields', errors=errors)


@groups_bp.route('/staff', methods=['GET'])
@roles_required('group', 'admin')
def list_staff():
    group = _group()
    query = GroupStaff.query.filter_by(group_id=group.id)
    if request.args.get('status'):
        query = query.filter(GroupStaff.status == request.args['status'])
    staff = query.order_by(GroupStaff.name.asc()).all()
    return jsonify({'success': True, 'staff': [s.to_dict() for s in staff]})


@groups_bp.route('/staff', methods=['POST'])
@roles_required('group', 'admin')
def add_staff():
    group = _group()
    data = get_json_payload(required=('name', 'email'))
    email_check = validate_email(data['email'])
    if not email_check.is_valid:
        raise ValidationError(email_check.error_message, errors={'email': email_check.error_message})
    _validate_staff(data)

    email = email_check.sanitized_value
    if GroupStaff.query.filter_by(group_id=group.id, email=email).first():
        raise ServiceError('A staff member with this email already exists', 'DUPLICATE_STAFF', 409)

    staff = apply_fields(GroupStaff(group_id=group.id, email=email), data, STAFF_FIELDS)
    staff.name = staff.name.strip()
    db.session.add(staff)
    db.session.commit()
    current_app.logger.info(f"Staff {staff.id} added to group {group.user_id}")
    return jsonify({'success': True, 'staff': staff.to_dict()}), 201


@groups_bp.route('/staff/<int:staff_id>', methods=['PUT'])
@roles_required('group', 'admin')
def update_staff(staff_id):
    staff = _staff_member(_group(), staff_id)
    data = get_json_payload()
    _validate_staff(data)
    apply_fields(staff, data, STAFF_FIELDS)
    db.session.commit()
    return jsonify({'success': True, 'staff': staff.to_dict()})


@groups_bp.route('/staff/<int:staff_id>/status', methods=['POST'])
@roles_required('group', 'admin')
def set_staff_status(staff_id):
    staff = _staff_member(_group(), staff_id)
    data = get_json_payload(required=('status',))
    _validate_staff({'status': data['status']})
    staff.status = data['status']
    db.session.commit()
    return jsonify({'success': True, 'staff': staff.to_dict()})


@groups_bp.route('/staff/<int:staff_id>', methods=['DELETE'])
@roles_required('group', 'admin')
def remove_staff(staff_id):
    staff = _staff_member(_group(), staff_id)
    db.session.delete(staff)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Staff member removed'})


@groups_bp.route('/pharmacies', methods=['GET'])
@roles_required('group', 'admin')
def list_pharmacies():
    group = _group()
    pharmacies = User.query.filter_by(group_id=group.id).order_by(User.company_name.asc()).all()
    return jsonify({'success': True, 'pharmacies': [p.to_dict() for p in pharmacies]})


@groups_bp.route('/pharmacies', methods=['POST'])
@roles_required('group', 'admin')
def add_pharmacy():
    group = _group()
    data = get_json_payload(required=('pharmacy_id',))
    pharmacy = User.query.filter_by(user_id=data['pharmacy_id'], role='pharmacy').first()
    if pharmacy is None:
        raise NotFoundError('Pharmacy not found', 'PHARMACY_NOT_FOUND')
    if pharmacy.group_id not in (None, group.id) and not get_current_user().is_admin():
        raise AuthorizationError('This pharmacy belongs to another group', 'ALREADY_IN_GROUP')

    pharmacy.group_id = group.id
    db.session.commit()
    current_app.logger.info(f"Pharmacy {pharmacy.user_id} added to group {group.user_id}")
    return jsonify({'success': True, 'pharmacy': pharmacy.to_dict()})


@groups_bp.route('/pharmacies/<pharmacy_id>', methods=['DELETE'])
@roles_required('group', 'admin')
def remove_pharmacy(pharmacy_id):
    group = _group()
    pharmacy = User.query.filter_by(user_id=pharmacy_id, group_id=group.id).first()
    if pharmacy is None:
        raise NotFoundError('Pharmacy not found in this group', 'PHARMACY_NOT_FOUND')
    pharmacy.group_id = None
    db.session.commit()
    return jsonify({'success': True, 'message': 'Pharmacy removed from group'})


def _group_orders(group):
    pharmacy_ids = [p.id for p in User.query.filter_by(group_id=group.id).all()]
    return Order.query.filter(Order.profile_id.in_(pharmacy_ids + [group.id]))


@groups_bp.route('/orders', methods=['GET'])
@roles_required('group', 'admin')
def group_orders():
    group = _group()
    query = _group_orders(group)
    if request.args.get('pharmacy_id'):
        pharmacy = User.query.filter_by(user_id=request.args['pharmacy_id'], group_id=group.id).first()
        if pharmacy is None:
            raise NotFoundError('Pharmacy not found in this group', 'PHARMACY_NOT_FOUND')
        query = query.filter(Order.profile_id == pharmacy.id)
    if request.args.get('status'):
        query = query.filter(Order.status == request.args['status'])
    page = paginate(query.order_by(Order.created_at.desc(), Order.id.desc()),
                    lambda order: order.to_dict(include_items=False))
    return jsonify({'success': True, **page})


@groups_bp.route('/stats', methods=['GET'])
@roles_required('group', 'admin')
def group_stats():
    group = _group()
    orders = _group_orders(group).filter(Order.status != 'cancelled').all()
    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    staff_counts = dict(db.session.query(GroupStaff.status, func.count(GroupStaff.id))
                        .filter(GroupStaff.group_id == group.id)
                        .group_by(GroupStaff.status).all())

    return jsonify({'success': True, 'stats': {
        'total_pharmacies': User.query.filter_by(group_id=group.id).count(),
        'total_orders': len(orders),
        'pending_orders': sum(1 for o in orders if o.status in ('new', 'pending', 'processing')),
        'total_revenue': float(sum((o.total_amount or 0) for o in orders)),
        'this_month_revenue': float(sum((o.total_amount or 0) for o in orders
                                        if o.created_at and o.created_at >= month_start)),
        'outstanding_balance': float(sum(((o.total_amount or 0) - (o.paid_amount or 0)) for o in orders
                                         if o.payment_status != 'paid')),
        'staff_count': sum(staff_counts.values()),
        'active_staff': staff_counts.get('active', 0),
    }})
