"""
Order Routes

FLOW OVERVIEW
- /api/orders/quote [POST]
  • Cart, promo code and reward points → totals. Nothing is written.
- /api/orders [POST]
  • Create an order for the caller. Admins (and groups, for their own pharmacies) may
    order on behalf of a profile by passing its user_id as `profile_id`.
- /api/orders [GET]
  • Caller's orders; groups also see their pharmacies' orders, admins see all.
    ?status= filter and page/per_page pagination.
- /api/orders/<id> [GET], /api/orders/<id>/cancel [POST]
- /api/orders/<id>/invoice [GET]
  • Invoice PDF attachment.
- /api/orders/<id>/payment-summary [GET]
  • Paid amount and balance due. Read only.
- /api/orders/<id>/payment-summary/backfill [POST] (admin)
  • Records a legacy payment row for a paid order without transactions.
"""

from io import BytesIO

from flask import Blueprint, jsonify, request, send_file

from ..models import Order, User
from ..utils.api_utils import get_json_payload, paginate
from ..utils.auth_utils import login_required, admin_required, get_current_user
from ..utils.errors import AuthorizationError, NotFoundError
from ..utils.order_service import quote_order, create_order, cancel_order, get_order_for
from ..utils.payment_summary import calculate_payment_summary, ensure_payment_transaction_exists
from ..utils.pdf_generator import InvoicePDFGenerator

orders_bp = Blueprint('orders', __name__)


def _ordering_profile(user, data):
    """The profile an order is placed for: the caller unless an allowed profile_id is given"""
    public_id = data.get('profile_id')
    if not public_id or public_id == user.user_id:
        return user

    profile = User.query.filter_by(user_id=public_id).first()
    if profile is None:
        raise NotFoundError('Customer not found', 'USER_NOT_FOUND')
    if user.is_admin() or (user.role == 'group' and profile.group_id == user.id):
        return profile
    raise AuthorizationError('You cannot place orders for this customer')


@orders_bp.route('/quote', methods=['POST'])
@login_required
def quote():
    data = get_json_payload(required=('items',))
    profile = _ordering_profile(get_current_user(), data)
    _, totals, promo = quote_order(profile, data)
    return jsonify({
        'success': True,
        'totals': totals.to_dict(),
        'promo': promo.to_dict() if promo else None,
        'available_credit': float(profile.available_credit),
        'reward_points': profile.reward_points or 0,
    })


@orders_bp.route('', methods=['POST'])
@login_required
def place_order():
    data = get_json_payload(required=('items',))
    user = get_current_user()
    profile = _ordering_profile(user, data)
    order = create_order(profile, data, actor=user)
    return jsonify({'success': True, 'message': 'Order placed successfully',
                    'order': order.to_dict()}), 201


@orders_bp.route('', methods=['GET'])
@login_required
def list_orders():
    user = get_current_user()
    query = Order.query
    if user.role == 'group':
        pharmacy_ids = [p.id for p in user.pharmacies] + [user.id]
        query = query.filter(Order.profile_id.in_(pharmacy_ids))
    elif not user.is_admin():
        query = query.filter(Order.profile_id == user.id)

    status = request.args.get('status')
    if status:
        query = query.filter(Order.status == status)

    page = paginate(query.order_by(Order.created_at.desc(), Order.id.desc()),
                    lambda order: order.to_dict(include_items=False))
    return jsonify({'success': True, **page})


@orders_bp.route('/<int:order_id>', methods=['GET'])
@login_required
def get_order(order_id):
    order = get_order_for(get_current_user(), order_id)
    data = order.to_dict()
    data['activities'] = [activity.to_dict() for activity in order.activities]
    data['payment_summary'] = calculate_payment_summary(order).to_dict()
    return jsonify({'success': True, 'order': data})


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@login_required
def cancel(order_id):
    user = get_current_user()
    order = get_order_for(user, order_id)
    data = request.get_json(silent=True) or {}
    cancel_order(order, user, data.get('reason'))
    return jsonify({'success': True, 'message': 'Order cancelled', 'order': order.to_dict()})


@orders_bp.route('/<int:order_id>/invoice', methods=['GET'])
@login_required
def invoice(order_id):
    order = get_order_for(get_current_user(), order_id)
    content = InvoicePDFGenerator().create_pdf(order)
    return send_file(BytesIO(content), mimetype='application/pdf', as_attachment=True,
                     download_name=f"invoice_{order.order_number}.pdf")


@orders_bp.route('/<int:order_id>/payment-summary', methods=['GET'])
@login_required
def payment_summary(order_id):
    order = get_order_for(get_current_user(), order_id)
    summary = calculate_payment_summary(order)
    return jsonify({'success': True, 'order_id': order.id, 'total_amount': float(order.total_amount or 0),
                    'summary': summary.to_dict()})


@orders_bp.route('/<int:order_id>/payment-summary/backfill', methods=['POST'])
@admin_required
def backfill_payment(order_id):
    order = get_order_for(get_current_user(), order_id)
    created = ensure_payment_transaction_exists(order)
    return jsonify({'success': True, 'order_id': order.id, 'created': created,
                    'summary': calculate_payment_summary(order).to_dict()})
