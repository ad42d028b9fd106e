"""
Tests for credit term offers: sending, expiry, acceptance and rejection.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from rxportal.models import EmailQueue, UserCreditLine
from rxportal.utils.credit_terms import (send_credit_terms, pending_terms_for, view_terms, accept_terms,
                                         reject_terms)
from rxportal.utils.errors import ValidationError


@pytest.fixture
def offer(db_session, pharmacy_user, admin_user):
    return send_credit_terms(pharmacy_user, admin_user, '5000', net_terms=45, interest_rate='1.5',
                             message='Thanks for your business')


class TestSendTerms:
    """Test offer creation"""

    def test_offer_is_pending_and_emailed(self, offer, pharmacy_user):
        assert offer.status == 'pending'
        assert offer.credit_limit == Decimal('5000.00')
        assert offer.expires_at > datetime.utcnow() + timedelta(days=29)
        queued = EmailQueue.query.filter_by(email_type='credit_terms').one()
        assert queued.email == pharmacy_user.email
        assert '$5,000.00' in queued.html_content

    def test_invalid_offers(self, db_session, pharmacy_user, admin_user):
        for kwargs in ({'credit_limit': '0'}, {'credit_limit': 'lots'},
                       {'credit_limit': '100', 'net_terms': 20},
                       {'credit_limit': '100', 'interest_rate': 150}):
            with pytest.raises(ValidationError):
                send_credit_terms(pharmacy_user, admin_user, **kwargs)


class TestRespond:
    """Test the pharmacy's responses"""

    def test_view_then_accept(self, offer, pharmacy_user):
        view_terms(offer)
        assert offer.status == 'viewed'
        assert offer.viewed_at is not None

        pharmacy_user.credit_used = Decimal('250.00')
        line = accept_terms(offer, ' Jane Pharmacist ', 'Owner')

        assert offer.status == 'accepted'
        assert offer.user_signed_name == 'Jane Pharmacist'
        assert pharmacy_user.credit_limit == Decimal('5000.00')
        assert pharmacy_user.payment_terms == 'net_45'
        assert pharmacy_user.credit_used == Decimal('250.00')
        assert line.net_terms == 45
        assert UserCreditLine.query.count() == 1

    def test_signature_required(self, offer):
        with pytest.raises(ValidationError) as exc_info:
            accept_terms(offer, '  ')
        assert exc_info.value.error_code == 'SIGNATURE_REQUIRED'
        assert offer.status == 'pending'

    def test_reject_closes_offer(self, offer):
        reject_terms(offer, 'Not needed')
        assert offer.rejection_reason == 'Not needed'
        with pytest.raises(ValidationError) as exc_info:
            accept_terms(offer, 'Jane')
        assert exc_info.value.error_code == 'TERMS_CLOSED'

    def test_expired_offers_drop_out(self, db_session, offer, pharmacy_user):
        assert pending_terms_for(pharmacy_user) == [offer]
        offer.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert pending_terms_for(pharmacy_user) == []
        assert offer.status == 'expired'
