"""
Authentication Utilities

FLOW OVERVIEW
- hash_password / verify_password
  • bcrypt; cost factor from BCRYPT_ROUNDS.
- generate_jwt_token / verify_jwt_token
  • HS256 access tokens carrying the public user_id and role.
- get_current_user()
  • Resolve the caller from the Flask session or an `Authorization: Bearer` token.
- login_required / roles_required(*roles)
  • Route decorators returning JSON 401/403.
- create_user / authenticate_user / create_password_reset
"""

from datetime import datetime, timedelta
from functools import wraps

import bcrypt
import jwt
from flask import current_app, jsonify, request, session

from ..models import db, User, PasswordResetToken


def hash_password(password):
    """Hash a password using bcrypt (BCRYPT_ROUNDS, default 12)"""
    salt = bcrypt.gensalt(rounds=current_app.config.get('BCRYPT_ROUNDS', 12))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password, password_hash):
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_jwt_token(user):
    """Generate a signed access token for a user"""
    now = datetime.utcnow()
    payload = {
        'sub': user.user_id,
        'role': user.role,
        'iat': now,
        'exp': now + timedelta(seconds=current_app.config.get('JWT_ACCESS_TOKEN_EXPIRES', 3600)),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm='HS256')


def verify_jwt_token(token):
    """Return the public user_id from a valid token, else None"""
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        current_app.logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError:
        return None
    return payload.get('sub')


def get_current_user():
    """The authenticated, active user for this request, or None"""
    public_id = session.get('user_id')
    if not public_id:
        auth_header = (request.headers.get('Authorization') or '').strip()
        if auth_header.lower().startswith('bearer '):
            public_id = verify_jwt_token(auth_header.split(' ', 1)[1].strip())

    user = None
    if public_id:
        user = User.query.filter_by(user_id=public_id).first()
        if user and not user.is_active():
            user = None

    return user


def login_required(f):
    """Decorator to require an authenticated user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'success': False, 'error': 'Unauthorized. Please log in.'}), 401
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Decorator to require one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return jsonify({'success': False, 'error': 'Unauthorized. Please log in.'}), 401
            if user.role not in roles:
                return jsonify({'success': False, 'error': 'Access denied'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = roles_required('admin')


def create_user(email, password, **profile):
    """Create and commit a new user with a bcrypt password hash"""
    user = User(email=email, password_hash=hash_password(password), **profile)
    db.session.add(user)
    db.session.commit()
    return user


def authenticate_user(email, password):
    """Return the active user matching the credentials, else None"""
    user = User.query.filter_by(email=(email or '').strip().lower()).first()
    if user and user.is_active() and verify_password(password, user.password_hash):
        return user
    return None


def create_password_reset(user, expires_in_hours=1):
    """Create a reset token and return it with the front-end reset link"""
    reset_token = PasswordResetToken(user.id, expires_in_hours=expires_in_hours)
    db.session.add(reset_token)
    db.session.commit()
    base_url = current_app.config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
    return reset_token, f"{base_url}/reset-password/{reset_token.token}"
