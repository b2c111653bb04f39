"""
Password hashing, signed session tokens and the login/logout/registration flow.

Tokens are HS256 JWTs signed with ``JWT_SECRET``. Every issued token is also
stored in the ``user_sessions`` table so a logout (or an admin deactivating an
account) takes effect before the token itself expires.
"""
import calendar
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import bcrypt
from flask import current_app
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, User, UserSession, Staff, Student, Parent, USER_TYPES
from results import ok, fail

PERMISSIONS = (
    'manage_students',
    'manage_staff',
    'manage_academics',
    'manage_exams',
    'manage_fees',
    'manage_attendance',
    'manage_report_cards',
)

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything beyond this

REFERENCE_MODELS = {
    'admin': Staff,
    'staff': Staff,
    'student': Student,
    'parent': Parent,
}


@dataclass
class AuthUser:
    id: int
    email: str
    user_type: str
    reference_id: int
    name: str
    role: str
    permissions: dict = field(default_factory=dict)

    @property
    def is_admin(self):
        return self.user_type == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'user_type': self.user_type,
            'reference_id': self.reference_id,
            'name': self.name,
            'role': self.role,
            'permissions': dict(self.permissions),
        }


# Passwords
def hash_password(password):
    rounds = current_app.config.get('BCRYPT_ROUNDS', 10)
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_password(password, password_hash):
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash or a password bcrypt refuses to process
        return False


def validate_password(password):
    """Return an error message for an unacceptable password, else None."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        return f'Password must be at most {MAX_PASSWORD_BYTES} bytes'
    return None


# Tokens
def _timestamp(value):
    return calendar.timegm(value.utctimetuple())


def generate_token(user_id):
    """Sign a session token for ``user_id``; returns ``(token, expires_at)``."""
    now = datetime.utcnow().replace(microsecond=0)
    expires_at = now + timedelta(days=current_app.config['AUTH_TOKEN_LIFETIME_DAYS'])
    claims = {
        'sub': str(user_id),
        'iat': _timestamp(now),
        'exp': _timestamp(expires_at),
        'jti': uuid.uuid4().hex,
    }
    token = jwt.encode(claims, current_app.config['JWT_SECRET'],
                       algorithm=current_app.config['JWT_ALGORITHM'])
    return token, expires_at


def decode_token(token):
    """Return the user id carried by a valid token, or None."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, current_app.config['JWT_SECRET'],
                            algorithms=[current_app.config['JWT_ALGORITHM']])
    except JWTError:
        return None
    try:
        return int(claims.get('sub'))
    except (TypeError, ValueError):
        return None


# Users
def _load_reference(user_type, reference_id):
    model = REFERENCE_MODELS.get(user_type)
    if model is None:
        return None
    return db.session.get(model, reference_id)


def build_auth_user(user):
    record = _load_reference(user.user_type, user.reference_id)
    name = record.full_name if record is not None else user.email
    role = user.user_type
    permissions = {}
    if isinstance(record, Staff):
        role = record.role or user.user_type
        permissions = dict(record.permissions or {})
    return AuthUser(
        id=user.id,
        email=user.email,
        user_type=user.user_type,
        reference_id=user.reference_id,
        name=name,
        role=role,
        permissions=permissions,
    )


def has_permission(user, permission):
    if user is None:
        return False
    if user.user_type == 'admin':
        return True
    if user.user_type == 'staff':
        return user.permissions.get(permission) is True
    return False


def login(email, password):
    # JSON bodies can carry numbers or nulls here
    if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
        return fail('Email and password are required')

    email = email.strip().lower()
    try:
        user = User.query.filter_by(email=email).first()
        if not user:
            current_app.logger.info("Login failed for unknown email %s", email)
            return fail('Invalid email or password')
        if not user.is_active:
            current_app.logger.info("Login refused for deactivated account %s", email)
            return fail('Account is deactivated')
        if not verify_password(password, user.password):
            current_app.logger.info("Login failed for %s: wrong password", email)
            return fail('Invalid email or password')

        token, expires_at = generate_token(user.id)
        db.session.add(UserSession(user_id=user.id, token=token, expires_at=expires_at))
        user.last_login = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Login failed for %s", email)
        return fail('Login failed. Please try again.')

    current_app.logger.info("User %s logged in", user.id)
    return ok({'user': build_auth_user(user), 'token': token, 'expires_at': expires_at}, 'Login successful')


def register(email, password, user_type, reference_id, is_active=True, commit=True):
    if not email or not password or not user_type or not reference_id:
        return fail('All fields are required')
    if user_type not in USER_TYPES:
        return fail('Invalid user type')

    password_error = validate_password(password)
    if password_error:
        return fail(password_error)

    email = email.strip().lower()
    try:
        reference_id = int(reference_id)
    except (TypeError, ValueError):
        return fail('Invalid reference')

    try:
        if User.query.filter_by(email=email).first():
            return fail('Email already registered')
        if _load_reference(user_type, reference_id) is None:
            return fail(f'Referenced {user_type} record not found')
        if User.query.filter_by(user_type=user_type, reference_id=reference_id).first():
            return fail('An account already exists for this record')

        user = User(
            email=email,
            password=hash_password(password),
            user_type=user_type,
            reference_id=reference_id,
            is_active=is_active,
        )
        db.session.add(user)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Registration failed for %s", email)
        return fail('Registration failed. Please try again.')

    current_app.logger.info("Registered %s account %s", user_type, email)
    return ok(user.to_dict(), 'Registration successful')


def logout(token):
    if not token:
        return ok(message='Logged out')
    try:
        UserSession.query.filter_by(token=token).delete()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete session on logout")
        return fail('Logout failed')
    current_app.logger.info("Session closed")
    return ok(message='Logged out')


def get_current_user(token):
    """Resolve a cookie token to ``(AuthUser | None, clear_cookie)``."""
    if not token:
        return None, False

    user_id = decode_token(token)
    if user_id is None:
        current_app.logger.warning("Rejected session token with invalid signature or expiry")
        return None, True

    user_session = UserSession.query.filter_by(token=token).first()
    if user_session is None:
        current_app.logger.warning("Rejected session token with no stored session")
        return None, True

    if user_session.is_expired():
        db.session.delete(user_session)
        db.session.commit()
        current_app.logger.info("Removed expired session for user %s", user_session.user_id)
        return None, True

    user = db.session.get(User, user_id)
    if user is None or not user.is_active or user.id != user_session.user_id:
        return None, True

    return build_auth_user(user), False


def purge_expired_sessions(now=None):
    now = now or datetime.utcnow()
    count = UserSession.query.filter(UserSession.expires_at < now).delete()
    db.session.commit()
    if count:
        current_app.logger.info("Purged %d expired sessions", count)
    return count
