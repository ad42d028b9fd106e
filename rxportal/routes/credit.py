"""
Credit Terms Routes (pharmacy side)

FLOW OVERVIEW
- /api/credit-terms/pending [GET]
  • Open offers for the signed-in pharmacy.
- /api/credit-terms/<id>/view [POST]
- /api/credit-terms/<id>/accept [POST]
  • {signed_name, signed_title?} → credit line created, profile credit limit updated.
- /api/credit-terms/<id>/reject [POST]
  • {reason?}
"""

from flask import Blueprint, jsonify, request

from ..models import db, SentCreditTerms
from ..utils.auth_utils import login_required, get_current_user
from ..utils.credit_terms import pending_terms_for, view_terms, accept_terms, reject_terms
from ..utils.errors import NotFoundError

credit_bp = Blueprint('credit', __name__)


def _own_terms(terms_id):
    terms = db.session.get(SentCreditTerms, terms_id)
    if terms is None or terms.user_id != get_current_user().id:
        raise NotFoundError('Credit terms not found', 'TERMS_NOT_FOUND')
    return terms


@credit_bp.route('/pending', methods=['GET'])
@login_required
def pending():
    terms = pending_terms_for(get_current_user())
    return jsonify({'success': True, 'terms': [t.to_dict() for t in terms]})


@credit_bp.route('/<int:terms_id>/view', methods=['POST'])
@login_required
def view(terms_id):
    terms = view_terms(_own_terms(terms_id))
    return jsonify({'success': True, 'terms': terms.to_dict()})


@credit_bp.route('/<int:terms_id>/accept', methods=['POST'])
@login_required
def accept(terms_id):
    terms = _own_terms(terms_id)
    data = request.get_json(silent=True) or {}
    line = accept_terms(terms, data.get('signed_name'), data.get('signed_title'))
    return jsonify({
        'success': True,
        'message': 'Credit terms accepted',
        'terms': terms.to_dict(),
        'credit_limit': float(line.credit_limit),
        'net_terms': line.net_terms,
    })


@credit_bp.route('/<int:terms_id>/reject', methods=['POST'])
@login_required
def reject(terms_id):
    data = request.get_json(silent=True) or {}
    terms = reject_terms(_own_terms(terms_id), data.get('reason'))
    return jsonify({'success': True, 'message': 'Credit terms rejected', 'terms': terms.to_dict()})
