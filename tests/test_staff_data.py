"""Tests for staff members, their accounts and teacher profiles."""
from app_models import db, Staff, User, SchoolClass
import auth_service
import staff_data

STAFF = {
    'name': 'Nomsa',
    'surname': 'Khumalo',
    'email': 'Nomsa@School.Test',
    'phone': '0110000001',
    'position': 'Bursar',
    'department': 'Finance',
    'role': 'finance',
}


class TestCreateStaff:
    """Tests for create_staff() / create_staff_with_user()."""

    def test_staff_numbers_and_email(self, app):
        """Staff numbers are generated and emails lower-cased."""
        result = staff_data.create_staff(dict(STAFF))
        assert result['success']
        assert result['data']['staff_number'] == 'STF0001'
        assert result['data']['email'] == 'nomsa@school.test'

    def test_missing_fields_listed(self, app):
        """The error names every missing field."""
        result = staff_data.create_staff({'name': 'Only'})
        assert result['error'].startswith('Missing required fields: surname, email')

    def test_duplicate_email_rejected(self, app):
        """Emails are unique regardless of case."""
        staff_data.create_staff(dict(STAFF))
        result = staff_data.create_staff(dict(STAFF, email='NOMSA@school.test'))
        assert result['error'] == 'A staff member with this email already exists'

    def test_unknown_permissions_dropped(self, app):
        """Only known permission names are stored."""
        result = staff_data.create_staff(dict(STAFF, permissions={'manage_fees': 1, 'launch_rockets': True}))
        permissions = result['data']['permissions']
        assert permissions['manage_fees'] is True
        assert 'launch_rockets' not in permissions
        assert permissions['manage_students'] is False

    def test_with_user_creates_login(self, app):
        """The staff row and its account are created together."""
        result = staff_data.create_staff_with_user(dict(STAFF), 'bursar-pass')
        assert result['success']
        user = User.query.filter_by(email='nomsa@school.test').one()
        assert user.user_type == 'staff'
        assert user.reference_id == result['data']['id']
        assert auth_service.login('nomsa@school.test', 'bursar-pass')['success']

    def test_admin_role_gets_admin_account(self, app):
        """Staff with the admin role get an admin account."""
        staff_data.create_staff_with_user(dict(STAFF, role='admin'), 'admin-pass')
        assert User.query.one().user_type == 'admin'

    def test_weak_password_creates_nothing(self, app):
        """A rejected password leaves no staff row behind."""
        result = staff_data.create_staff_with_user(dict(STAFF), '123')
        assert not result['success']
        assert Staff.query.count() == 0


class TestUpdateAndDeactivate:
    """Tests for update_staff() / deactivate_staff() / delete_staff()."""

    def test_email_change_follows_to_account(self, app):
        """Changing a staff email updates the login email."""
        staff_id = staff_data.create_staff_with_user(dict(STAFF), 'bursar-pass')['data']['id']
        result = staff_data.update_staff(staff_id, {'email': 'bursar@school.test'})
        assert result['success']
        assert User.query.one().email == 'bursar@school.test'

    def test_deactivate_blocks_login(self, app):
        """A deactivated staff member can no longer sign in."""
        staff_id = staff_data.create_staff_with_user(dict(STAFF), 'bursar-pass')['data']['id']
        assert staff_data.deactivate_staff(staff_id)['success']
        db.session.expire_all()
        assert auth_service.login('nomsa@school.test', 'bursar-pass')['error'] == 'Account is deactivated'

    def test_delete_refused_with_account(self, app):
        """Staff with a login must be deactivated, not deleted."""
        staff_id = staff_data.create_staff_with_user(dict(STAFF), 'bursar-pass')['data']['id']
        result = staff_data.delete_staff(staff_id)
        assert 'Deactivate them instead' in result['error']

    def test_delete_plain_staff(self, app, make_staff):
        """Staff without account or teacher profile can be deleted."""
        staff = make_staff()
        assert staff_data.delete_staff(staff.id)['success']
        assert Staff.query.count() == 0

    def test_statistics(self, app, make_staff):
        """Counts are grouped by department and role."""
        make_staff(department='Finance', role='finance')
        make_staff(department='Academics')
        inactive = make_staff(department='Academics')
        staff_data.deactivate_staff(inactive.id)

        stats = staff_data.get_staff_statistics()
        assert stats['total'] == 3
        assert stats['active'] == 2
        assert stats['inactive'] == 1
        assert stats['by_department'] == {'Academics': 2, 'Finance': 1}
        assert stats['by_role'] == {'finance': 1, 'teacher': 2}


class TestTeachers:
    """Tests for teacher profiles."""

    def test_create_and_search(self, app, make_teacher):
        """Teachers are searchable by specialisation."""
        make_teacher(specialization='Mathematics')
        make_teacher(specialization='History')
        assert len(staff_data.get_teachers(search='math')) == 1

    def test_staff_link_is_unique(self, app, make_staff, make_teacher):
        """A staff member has at most one teacher profile."""
        staff = make_staff()
        make_teacher(staff_id=staff.id)
        result = staff_data.create_teacher({'name': 'A', 'surname': 'B', 'email': 'ab@school.test',
                                            'staff_id': staff.id})
        assert result['error'] == 'This staff member already has a teacher profile'

    def test_delete_teacher_clears_class_teacher(self, app, make_teacher, make_class):
        """Removing a teacher unassigns them from their classes."""
        teacher = make_teacher()
        school_class = make_class(class_teacher_id=teacher.id)
        assert staff_data.delete_teacher(teacher.id)['success']
        db.session.expire_all()
        refreshed = db.session.get(SchoolClass, school_class.id)
        assert refreshed.class_teacher_id is None
        assert refreshed.teachers == []
