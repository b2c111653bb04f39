"""Staff records, their login accounts, and teacher profiles."""
from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

import auth_service
from app_models import db, Staff, Teacher, SchoolClass, User
from data_helpers import clean, missing_fields, parse_date, parse_int, optional_id
from results import ok, fail

STAFF_REQUIRED = ('name', 'surname', 'email', 'phone', 'position', 'department', 'role')
STAFF_FIELDS = ('name', 'surname', 'email', 'phone', 'address', 'gender', 'position',
                'department', 'employment_type', 'role')
TEACHER_FIELDS = ('name', 'surname', 'email', 'phone', 'qualification', 'specialization')


def generate_staff_number():
    existing_numbers = set()
    for (number,) in db.session.query(Staff.staff_number).all():
        if number and number.startswith('STF') and number[3:].isdigit():
            existing_numbers.add(int(number[3:]))
    next_number = max(existing_numbers) + 1 if existing_numbers else 1
    return f"STF{next_number:04d}"


def normalize_permissions(permissions):
    """Keep only known permission names, as booleans."""
    permissions = permissions or {}
    return {name: bool(permissions.get(name)) for name in auth_service.PERMISSIONS}


def _validate_staff(data, staff_id=None):
    missing = missing_fields(data, STAFF_REQUIRED)
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    query = Staff.query.filter(func.lower(Staff.email) == clean(data['email']).lower())
    if staff_id:
        query = query.filter(Staff.id != staff_id)
    if query.first():
        return 'A staff member with this email already exists'
    return None


def _apply_staff(staff, data):
    for name in STAFF_FIELDS:
        if name in data:
            setattr(staff, name, clean(data.get(name)))
    staff.email = staff.email.lower() if staff.email else staff.email
    if 'permissions' in data:
        staff.permissions = normalize_permissions(data.get('permissions'))
    if 'access_level' in data and data.get('access_level') not in (None, ''):
        staff.access_level = parse_int(data.get('access_level'))
    if 'hire_date' in data:
        staff.hire_date = parse_date(data.get('hire_date'))
    if 'is_active' in data:
        staff.is_active = bool(data.get('is_active'))


def _build_staff(data):
    error = _validate_staff(data)
    if error:
        return None, error
    staff = Staff(staff_number=clean(data.get('staff_number')) or generate_staff_number(),
                  permissions={}, is_active=True)
    _apply_staff(staff, data)
    if staff.employment_type is None:
        staff.employment_type = 'full_time'
    db.session.add(staff)
    db.session.flush()
    return staff, None


def create_staff(data):
    try:
        staff, error = _build_staff(data)
        if error:
            return fail(error)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid date or number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member")
        return fail('Failed to create staff member')

    current_app.logger.info("Created staff member %s", staff.staff_number)
    return ok(staff.to_dict(), f'Staff member {staff.full_name} added successfully!')


def create_staff_with_user(data, password):
    """Create the staff row and its login account together."""
    password_error = auth_service.validate_password(password)
    if password_error:
        return fail(password_error)
    try:
        staff, error = _build_staff(data)
        if error:
            db.session.rollback()
            return fail(error)
        user_type = 'admin' if staff.role == 'admin' else 'staff'
        result = auth_service.register(staff.email, password, user_type, staff.id, commit=False)
        if not result['success']:
            db.session.rollback()
            return result
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid date or number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member with account")
        return fail('Failed to create staff member')

    current_app.logger.info("Created staff member %s with %s account", staff.staff_number, user_type)
    return ok(staff.to_dict(), f'Staff member {staff.full_name} and login account created successfully!')


def get_staff(search=None, department=None, role=None, active_only=False):
    query = Staff.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Staff.name.ilike(pattern),
            Staff.surname.ilike(pattern),
            Staff.email.ilike(pattern),
            Staff.staff_number.ilike(pattern),
        ))
    if department:
        query = query.filter(Staff.department == department)
    if role:
        query = query.filter(Staff.role == role)
    if active_only:
        query = query.filter(Staff.is_active.is_(True))
    return query.order_by(Staff.surname, Staff.name).all()


def get_staff_member(staff_id):
    return db.session.get(Staff, staff_id)


def update_staff(staff_id, data):
    staff = get_staff_member(staff_id)
    if not staff:
        return fail('Staff member not found')
    merged = staff.to_dict()
    merged.update(data)
    try:
        error = _validate_staff(merged, staff_id=staff.id)
        if error:
            return fail(error)
        old_email = staff.email
        _apply_staff(staff, data)
        if staff.email != old_email:
            user = User.query.filter(User.user_type.in_(('staff', 'admin')),
                                     User.reference_id == staff.id).first()
            if user:
                user.email = staff.email
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid date or number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update staff member %s", staff_id)
        return fail('Failed to update staff member')
    return ok(staff.to_dict(), 'Staff member updated successfully!')


def deactivate_staff(staff_id):
    staff = get_staff_member(staff_id)
    if not staff:
        return fail('Staff member not found')
    try:
        staff.is_active = False
        User.query.filter(User.user_type.in_(('staff', 'admin')),
                          User.reference_id == staff.id).update({'is_active': False},
                                                                synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate staff member %s", staff_id)
        return fail('Failed to deactivate staff member')
    current_app.logger.info("Deactivated staff member %s", staff.staff_number)
    return ok(staff.to_dict(), f'Staff member {staff.full_name} deactivated')


def delete_staff(staff_id):
    staff = get_staff_member(staff_id)
    if not staff:
        return fail('Staff member not found')
    if User.query.filter(User.user_type.in_(('staff', 'admin')), User.reference_id == staff.id).first():
        return fail('Cannot delete a staff member with a login account. Deactivate them instead.')
    if Teacher.query.filter_by(staff_id=staff.id).first():
        return fail('Cannot delete a staff member with a teacher profile. Remove the teacher profile first.')
    try:
        db.session.delete(staff)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete staff member %s", staff_id)
        return fail('Failed to delete staff member')
    return ok(message='Staff member deleted successfully!')


def get_staff_statistics():
    total = Staff.query.count()
    active = Staff.query.filter(Staff.is_active.is_(True)).count()
    by_department = dict(db.session.query(Staff.department, func.count(Staff.id))
                         .group_by(Staff.department).order_by(Staff.department).all())
    by_role = dict(db.session.query(Staff.role, func.count(Staff.id))
                   .group_by(Staff.role).order_by(Staff.role).all())
    return {
        'total': total,
        'active': active,
        'inactive': total - active,
        'by_department': by_department,
        'by_role': by_role,
    }


# Teachers
def _validate_teacher(data, teacher_id=None):
    if missing_fields(data, ('name', 'surname', 'email')):
        return 'Name, surname and email are required'
    staff_id = optional_id(data.get('staff_id'))
    if staff_id:
        if db.session.get(Staff, staff_id) is None:
            return 'Selected staff member does not exist'
        query = Teacher.query.filter_by(staff_id=staff_id)
        if teacher_id:
            query = query.filter(Teacher.id != teacher_id)
        if query.first():
            return 'This staff member already has a teacher profile'
    return None


def _apply_teacher(teacher, data):
    for name in TEACHER_FIELDS:
        if name in data:
            setattr(teacher, name, clean(data.get(name)))
    if 'staff_id' in data:
        teacher.staff_id = optional_id(data.get('staff_id'))
    if 'experience' in data:
        teacher.experience = parse_int(data.get('experience')) or 0


def create_teacher(data):
    try:
        error = _validate_teacher(data)
        if error:
            return fail(error)
        teacher = Teacher(experience=0)
        _apply_teacher(teacher, data)
        db.session.add(teacher)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create teacher")
        return fail('Failed to create teacher')
    return ok(teacher.to_dict(), f'Teacher {teacher.full_name} added successfully!')


def get_teachers(search=None):
    query = Teacher.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Teacher.name.ilike(pattern),
            Teacher.surname.ilike(pattern),
            Teacher.email.ilike(pattern),
            Teacher.specialization.ilike(pattern),
        ))
    return query.order_by(Teacher.surname, Teacher.name).all()


def get_teacher(teacher_id):
    return db.session.get(Teacher, teacher_id)


def update_teacher(teacher_id, data):
    teacher = get_teacher(teacher_id)
    if not teacher:
        return fail('Teacher not found')
    merged = teacher.to_dict()
    merged.update(data)
    try:
        error = _validate_teacher(merged, teacher_id=teacher.id)
        if error:
            return fail(error)
        _apply_teacher(teacher, data)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update teacher %s", teacher_id)
        return fail('Failed to update teacher')
    return ok(teacher.to_dict(), 'Teacher updated successfully!')


def delete_teacher(teacher_id):
    teacher = get_teacher(teacher_id)
    if not teacher:
        return fail('Teacher not found')
    try:
        SchoolClass.query.filter_by(class_teacher_id=teacher.id).update({'class_teacher_id': None},
                                                                        synchronize_session=False)
        teacher.classes = []
        teacher.subjects = []
        db.session.delete(teacher)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete teacher %s", teacher_id)
        return fail('Failed to delete teacher')
    return ok(message='Teacher deleted successfully!')
