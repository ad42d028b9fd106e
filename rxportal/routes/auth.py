"""
Authentication Routes

FLOW OVERVIEW
- /auth/register [POST]
  • Validate email and password strength → create pharmacy profile (active) → 201.
- /auth/login [POST]
  • Authenticate → set session → return user plus a bearer access token.
- /auth/logout [POST]
  • Clear session.
- /auth/forgot-password [POST]
  • Generate a reset token and email the link. Same response whether or not the
    account exists.
- /auth/reset-password/<token> [POST]
  • Validate token and new password → update hash → mark the launch reset completed
    (a failure there is logged and ignored).
- /auth/me [GET]
  • Current user's profile.
"""

from flask import Blueprint, jsonify, session, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, User, PasswordResetToken
from ..utils.api_utils import get_json_payload
from ..utils.auth_utils import (
    create_user, authenticate_user, generate_jwt_token, hash_password,
    create_password_reset, get_current_user, login_required
)
from ..utils.email_service import email_service
from ..utils.errors import ServiceError, ValidationError
from ..utils.launch_reset import mark_completed
from ..utils.validators import validate_email, validate_password_strength, sanitize_input

auth_bp = Blueprint('auth', __name__)

PROFILE_FIELDS = ('first_name', 'last_name', 'company_name', 'phone')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Pharmacy sign-up"""
    data = get_json_payload(required=('email', 'password'))

    email_check = validate_email(data['email'])
    if not email_check.is_valid:
        raise ValidationError(email_check.error_message, errors={'email': email_check.error_message})

    password_check = validate_password_strength(data['password'])
    if not password_check.is_valid:
        raise ValidationError(password_check.error_message, errors={'password': password_check.error_message})

    email = email_check.sanitized_value
    if User.query.filter_by(email=email).first():
        return jsonify({'success': False, 'error': 'User with this email already exists'}), 409

    profile = {field: sanitize_input(data[field], 200) for field in PROFILE_FIELDS if data.get(field)}
    for address in ('billing_address', 'shipping_address'):
        if isinstance(data.get(address), dict):
            profile[address] = data[address]

    try:
        user = create_user(email, data['password'], role='pharmacy', **profile)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Registration failed for {email}: {e}")
        return jsonify({'success': False, 'error': 'Registration failed. Please try again.'}), 500

    current_app.logger.info(f"Registered new pharmacy account {user.user_id}")
    return jsonify({'success': True, 'message': 'Registration successful.',
                    'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json_payload(required=('email', 'password'))
    user = authenticate_user(data['email'], data['password'])
    if user is None:
        return jsonify({'success': False, 'error': 'Invalid email or password.'}), 401

    session['user_id'] = user.user_id
    session['user_email'] = user.email
    user.update_last_login()

    return jsonify({
        'success': True,
        'user': user.to_dict(),
        'access_token': generate_jwt_token(user),
        'password_reset_required': bool(user.password_reset_required),
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True, 'message': 'You have been logged out successfully.'})


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = get_json_payload(required=('email',))
    email = data['email'].strip().lower()
    message = 'If an account with that email exists, password reset instructions have been sent.'

    user = User.query.filter_by(email=email).first()
    if user is None or not user.is_active():
        return jsonify({'success': True, 'message': message})

    reset_token, link = create_password_reset(user)
    html = (f"<p>Hello {user.first_name or user.display_name},</p>"
            f"<p>Click the link below to reset your password. It expires in one hour.</p>"
            f"<p><a href=\"{link}\">Reset your password</a></p>")
    sent, detail = email_service.send_email(user.email, 'Reset your password', html,
                                            email_type='password_reset')
    if not sent:
        current_app.logger.error(f"Password reset email to {user.email} failed: {detail}")
        return jsonify({'success': False,
                        'error': 'Failed to send password reset email. Please try again.'}), 502

    return jsonify({'success': True, 'message': message})


@auth_bp.route('/reset-password/<token>', methods=['POST'])
def reset_password(token):
    data = get_json_payload(required=('password', 'confirm_password'))
    password = data['password']
    if password != data['confirm_password']:
        raise ValidationError('Passwords do not match.', errors={'confirm_password': 'Passwords do not match'})

    password_check = validate_password_strength(password)
    if not password_check.is_valid:
        raise ValidationError(password_check.error_message, errors={'password': password_check.error_message})

    reset_token = PasswordResetToken.query.filter_by(token=token).first()
    if reset_token is None or not reset_token.is_valid():
        raise ValidationError('Invalid or expired reset token.', 'INVALID_TOKEN')

    user = db.session.get(User, reset_token.user_id)
    user.password_hash = hash_password(password)
    reset_token.used = True
    db.session.commit()

    if user.password_reset_required:
        action = 'both' if data.get('accept_terms') else 'password_reset'
        try:
            mark_completed(user.email, action)
        except (ServiceError, SQLAlchemyError) as e:
            db.session.rollback()
            current_app.logger.warning(f"Could not mark launch reset completed for {user.email}: {e}")

    return jsonify({'success': True,
                    'message': 'Password has been reset successfully. You can now log in with your new password.'})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'user': get_current_user().to_dict()})
