import pytest
from rxportal.models import User, PasswordResetToken, LaunchPasswordReset
from rxportal.utils.auth_utils import (hash_password, verify_password, generate_jwt_token,
                                       verify_jwt_token, authenticate_user)

from conftest import TEST_PASSWORD


@pytest.fixture
def outbox(app, db_session):
    with app.extensions['mail'].record_messages() as messages:
        yield messages


class TestPasswordsAndTokens:
    """Test hashing and access token helpers"""

    def test_hash_and_verify(self, app_context):
        password_hash = hash_password('Secret123')
        assert password_hash.startswith('$2')
        assert verify_password('Secret123', password_hash)
        assert not verify_password('secret123', password_hash)
        assert not verify_password('Secret123', 'not-a-hash')

    def test_jwt_round_trip(self, app, pharmacy_user):
        token = generate_jwt_token(pharmacy_user)
        assert verify_jwt_token(token) == pharmacy_user.user_id
        assert verify_jwt_token(token + 'x') is None

    def test_inactive_users_cannot_authenticate(self, db_session, pharmacy_user):
        assert authenticate_user('PHARMACY@example.com', TEST_PASSWORD) is pharmacy_user
        pharmacy_user.status = 'suspended'
        db_session.commit()
        assert authenticate_user(pharmacy_user.email, TEST_PASSWORD) is None


class TestRegisterAndLogin:
    """Test account creation and sign-in"""

    def test_register(self, client, db_session):
        """Test that a new pharmacy account is created"""
        response = client.post('/auth/register', json={
            'email': 'New@Example.com', 'password': 'Welcome123', 'company_name': 'Corner Drug',
        })
        assert response.status_code == 201
        data = response.get_json()
        assert data['user']['email'] == 'new@example.com'
        assert data['user']['role'] == 'pharmacy'
        assert User.query.filter_by(email='new@example.com').one().company_name == 'Corner Drug'

    def test_register_rejections(self, client, pharmacy_user):
        """Test duplicate, weak and incomplete registrations"""
        response = client.post('/auth/register', json={'email': pharmacy_user.email, 'password': 'Welcome123'})
        assert response.status_code == 409

        response = client.post('/auth/register', json={'email': 'weak@example.com', 'password': 'password'})
        assert response.status_code == 400
        assert 'password' in response.get_json()['errors']

        response = client.post('/auth/register', json={'email': 'x@example.com'})
        assert response.get_json()['error_code'] == 'MISSING_FIELDS'

        response = client.post('/auth/register', data='not json', content_type='application/json')
        assert response.get_json()['error_code'] == 'INVALID_JSON'

    def test_login_and_me(self, client, pharmacy_user):
        """Test that login returns a usable bearer token and sets the session"""
        response = client.post('/auth/login', json={'email': pharmacy_user.email, 'password': TEST_PASSWORD})
        assert response.status_code == 200
        token = response.get_json()['access_token']

        with client.session_transaction() as sess:
            assert sess['user_id'] == pharmacy_user.user_id

        response = client.get('/auth/me', headers={'Authorization': f"Bearer {token}"})
        assert response.get_json()['user']['user_id'] == pharmacy_user.user_id

        client.post('/auth/logout')
        assert client.get('/auth/me').status_code == 401

    def test_login_wrong_password(self, client, pharmacy_user):
        response = client.post('/auth/login', json={'email': pharmacy_user.email, 'password': 'Wrong123'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid email or password.'


class TestPasswordReset:
    """Test forgot-password and reset-password flows"""

    def test_forgot_password_unknown_email(self, client, outbox):
        """Test that unknown accounts get the same response and no email"""
        response = client.post('/auth/forgot-password', json={'email': 'nobody@example.com'})
        assert response.status_code == 200
        assert response.get_json()['success']
        assert outbox == []

    def test_forgot_password_sends_link(self, client, outbox, pharmacy_user):
        response = client.post('/auth/forgot-password', json={'email': pharmacy_user.email})
        assert response.status_code == 200

        token = PasswordResetToken.query.filter_by(user_id=pharmacy_user.id).one()
        assert len(outbox) == 1
        assert f"http://localhost:3000/reset-password/{token.token}" in outbox[0].html

    def test_reset_password(self, client, db_session, pharmacy_user):
        """Test that a valid token changes the password once"""
        token = PasswordResetToken(pharmacy_user.id)
        db_session.add(token)
        db_session.commit()

        payload = {'password': 'BrandNew123', 'confirm_password': 'BrandNew123'}
        response = client.post(f"/auth/reset-password/{token.token}", json=payload)
        assert response.status_code == 200
        assert verify_password('BrandNew123', pharmacy_user.password_hash)
        assert token.used

        response = client.post(f"/auth/reset-password/{token.token}", json=payload)
        assert response.get_json()['error_code'] == 'INVALID_TOKEN'

    def test_reset_password_mismatch(self, client, db_session, pharmacy_user):
        response = client.post('/auth/reset-password/anything',
                               json={'password': 'BrandNew123', 'confirm_password': 'BrandNew124'})
        assert response.status_code == 400
        assert 'confirm_password' in response.get_json()['errors']

    def test_reset_completes_launch_reset(self, client, db_session, pharmacy_user):
        """Test that a launch campaign reset is tracked as completed"""
        pharmacy_user.password_reset_required = True
        token = PasswordResetToken(pharmacy_user.id, expires_in_hours=72)
        db_session.add(token)
        db_session.commit()

        client.post(f"/auth/reset-password/{token.token}",
                    json={'password': 'BrandNew123', 'confirm_password': 'BrandNew123', 'accept_terms': True})

        reset = LaunchPasswordReset.query.filter_by(profile_id=pharmacy_user.id).one()
        assert reset.completed
        assert not pharmacy_user.password_reset_required
