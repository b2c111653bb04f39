"""Tests for password hashing, tokens and the login/session flow."""
from datetime import datetime, timedelta

from jose import jwt

import auth_service
from app_models import db, User, UserSession


class TestPasswords:
    """Tests for hash_password / verify_password / validate_password."""

    def test_hash_round_trip(self, app):
        """A hashed password verifies, a different one does not."""
        hashed = auth_service.hash_password('correct horse')
        assert hashed != 'correct horse'
        assert auth_service.verify_password('correct horse', hashed)
        assert not auth_service.verify_password('wrong horse', hashed)

    def test_verify_rejects_malformed_hash(self, app):
        """A stored value that is not a bcrypt hash never verifies."""
        assert not auth_service.verify_password('anything', 'not-a-hash')
        assert not auth_service.verify_password('', 'not-a-hash')

    def test_validate_password_lengths(self, app):
        """Short and over-long passwords are rejected."""
        assert auth_service.validate_password('abc') is not None
        assert auth_service.validate_password('x' * 80) is not None
        assert auth_service.validate_password('long enough') is None


class TestTokens:
    """Tests for generate_token / decode_token."""

    def test_token_carries_user_id(self, app):
        """The subject claim round-trips to the user id."""
        token, expires_at = auth_service.generate_token(42)
        assert auth_service.decode_token(token) == 42
        assert expires_at > datetime.utcnow()

    def test_tampered_token_is_rejected(self, app):
        """A token signed with another secret does not decode."""
        forged = jwt.encode({'sub': '1'}, 'some-other-secret', algorithm='HS256')
        assert auth_service.decode_token(forged) is None
        assert auth_service.decode_token('garbage') is None
        assert auth_service.decode_token(None) is None


class TestRegister:
    """Tests for register()."""

    def test_register_student_account(self, app, make_student):
        """A student account links to its student record."""
        student = make_student()
        result = auth_service.register('Kid@School.Test', 'pupil-pass', 'student', student.id)
        assert result['success']
        assert result['data']['email'] == 'kid@school.test'
        assert result['data']['user_type'] == 'student'

    def test_register_rejects_duplicate_email(self, app, make_student):
        """An email can only be registered once."""
        first, second = make_student(), make_student()
        auth_service.register('same@school.test', 'pupil-pass', 'student', first.id)
        result = auth_service.register('same@school.test', 'pupil-pass', 'student', second.id)
        assert not result['success']
        assert result['error'] == 'Email already registered'

    def test_register_rejects_second_account_for_record(self, app, make_student):
        """A record can only own one account."""
        student = make_student()
        auth_service.register('one@school.test', 'pupil-pass', 'student', student.id)
        result = auth_service.register('two@school.test', 'pupil-pass', 'student', student.id)
        assert not result['success']
        assert result['error'] == 'An account already exists for this record'

    def test_register_requires_existing_record(self, app):
        """The referenced record must exist."""
        result = auth_service.register('ghost@school.test', 'pupil-pass', 'parent', 999)
        assert not result['success']
        assert result['error'] == 'Referenced parent record not found'

    def test_register_rejects_unknown_user_type(self, app):
        """Only the four known user types are accepted."""
        result = auth_service.register('x@school.test', 'pupil-pass', 'janitor', 1)
        assert result == {'success': False, 'error': 'Invalid user type'}


class TestLogin:
    """Tests for login() / logout() / get_current_user()."""

    def test_login_creates_session(self, app, make_account):
        """A successful login stores the issued token."""
        email = make_account('admin')
        result = auth_service.login(email, 'secret-pass-1')
        assert result['success']
        token = result['data']['token']
        assert UserSession.query.filter_by(token=token).count() == 1
        assert result['data']['user'].user_type == 'admin'

    def test_login_failures_share_a_message(self, app, make_account):
        """Unknown email and wrong password give the same error."""
        email = make_account('admin')
        assert auth_service.login('nobody@school.test', 'secret-pass-1')['error'] == 'Invalid email or password'
        assert auth_service.login(email, 'wrong-password')['error'] == 'Invalid email or password'

    def test_login_requires_both_fields(self, app):
        """Missing credentials are rejected before any lookup."""
        assert auth_service.login('', '')['error'] == 'Email and password are required'

    def test_non_string_credentials_rejected(self, app, make_account):
        """Numbers, nulls and blank emails count as missing credentials."""
        email = make_account('admin')
        for bad_email, bad_password in ((123, 'secret-pass-1'), (email, 12345678), (None, None), ('   ', 'x')):
            assert auth_service.login(bad_email, bad_password)['error'] == 'Email and password are required'

    def test_deactivated_account_cannot_log_in(self, app, make_account):
        """Inactive users are refused."""
        email = make_account('staff')
        User.query.filter_by(email=email).update({'is_active': False})
        db.session.commit()
        assert auth_service.login(email, 'secret-pass-1')['error'] == 'Account is deactivated'

    def test_logout_invalidates_token(self, app, make_account):
        """After logout the token no longer resolves to a user."""
        email = make_account('admin')
        token = auth_service.login(email, 'secret-pass-1')['data']['token']
        user, clear = auth_service.get_current_user(token)
        assert user is not None and not clear

        auth_service.logout(token)
        user, clear = auth_service.get_current_user(token)
        assert user is None
        assert clear

    def test_expired_session_is_removed(self, app, make_account):
        """An expired stored session is deleted and the cookie cleared."""
        email = make_account('admin')
        token = auth_service.login(email, 'secret-pass-1')['data']['token']
        UserSession.query.filter_by(token=token).update(
            {'expires_at': datetime.utcnow() - timedelta(minutes=1)})
        db.session.commit()

        user, clear = auth_service.get_current_user(token)
        assert user is None
        assert clear
        assert UserSession.query.filter_by(token=token).count() == 0

    def test_purge_expired_sessions(self, app, make_account):
        """Only sessions past their expiry are purged."""
        email = make_account('admin')
        auth_service.login(email, 'secret-pass-1')
        auth_service.login(email, 'secret-pass-1')
        first = UserSession.query.order_by(UserSession.id).first()
        first.expires_at = datetime.utcnow() - timedelta(days=1)
        db.session.commit()
        assert auth_service.purge_expired_sessions() == 1
        assert UserSession.query.count() == 1


class TestPermissions:
    """Tests for has_permission()."""

    def test_admin_has_every_permission(self, app, make_account):
        """Admins pass every permission check."""
        user = auth_service.login(make_account('admin'), 'secret-pass-1')['data']['user']
        assert all(auth_service.has_permission(user, name) for name in auth_service.PERMISSIONS)

    def test_staff_needs_explicit_flag(self, app, make_account):
        """Staff only get the permissions set on their record."""
        email = make_account('staff', permissions={'manage_attendance': True})
        user = auth_service.login(email, 'secret-pass-1')['data']['user']
        assert auth_service.has_permission(user, 'manage_attendance')
        assert not auth_service.has_permission(user, 'manage_fees')

    def test_students_and_parents_have_none(self, app, make_student, make_account):
        """Student accounts never hold management permissions."""
        email = make_account('student', reference=make_student())
        user = auth_service.login(email, 'secret-pass-1')['data']['user']
        assert not auth_service.has_permission(user, 'manage_students')
        assert not auth_service.has_permission(None, 'manage_students')
