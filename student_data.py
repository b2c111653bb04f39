"""Students, their medical information, and parents/guardians."""
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from app_models import (db, Student, StudentMedicalInfo, Parent, ParentStudent, SchoolClass,
                        ExamResult, StudentAttendance, StudentFee, FeePayment, ReportCard, User)
from data_helpers import clean, missing_fields, parse_date, optional_id
from results import ok, fail

STUDENT_FIELDS = ('name', 'surname', 'preferred_name', 'sex', 'email', 'phone', 'address')
MEDICAL_FIELDS = ('family_doctor', 'doctor_phone', 'medical_conditions', 'allergies',
                  'medications', 'notes')
PARENT_FIELDS = ('title', 'name', 'surname', 'email', 'phone', 'occupation', 'address')


def generate_admission_number():
    """Generate the next sequential admission number"""
    existing_numbers = set()
    for (number,) in db.session.query(Student.admission_number).all():
        if number and number.isdigit():
            existing_numbers.add(int(number))

    if not existing_numbers:
        return "0001"

    next_number = max(existing_numbers) + 1
    return f"{next_number:04d}"  # 0001, 0002, ...


def _validate_student(data, student_id=None):
    missing = missing_fields(data, ('name', 'surname'))
    if missing:
        return 'Name and surname are required'

    admission_number = clean(data.get('admission_number'))
    if admission_number:
        query = Student.query.filter_by(admission_number=admission_number)
        if student_id:
            query = query.filter(Student.id != student_id)
        if query.first():
            return 'Admission number already exists. Please use a different number.'

    class_id = optional_id(data.get('class_id'))
    if class_id and db.session.get(SchoolClass, class_id) is None:
        return 'Selected class does not exist'
    return None


def _apply_student(student, data):
    for name in STUDENT_FIELDS:
        if name in data:
            setattr(student, name, clean(data.get(name)))
    if student.email:
        student.email = student.email.lower()
    if 'class_id' in data:
        student.class_id = optional_id(data.get('class_id'))
    if 'date_of_birth' in data:
        student.date_of_birth = parse_date(data.get('date_of_birth'))
    if 'enrolment_date' in data:
        student.enrolment_date = parse_date(data.get('enrolment_date'))
    if 'is_active' in data:
        student.is_active = bool(data.get('is_active'))


def _apply_medical(info, data):
    for name in MEDICAL_FIELDS:
        if name in data:
            setattr(info, name, clean(data.get(name)))
    if 'immunisation_up_to_date' in data:
        info.immunisation_up_to_date = bool(data.get('immunisation_up_to_date'))


def build_student(data, medical=None):
    """Validate and add a student (and medical info) to the session without committing."""
    try:
        error = _validate_student(data)
    except ValueError:
        return None, 'Invalid date or number supplied'
    if error:
        return None, error

    student = Student(admission_number=clean(data.get('admission_number')) or generate_admission_number())
    try:
        _apply_student(student, data)
    except ValueError:
        return None, 'Invalid date or number supplied'
    if student.is_active is None:
        student.is_active = True
    db.session.add(student)

    if medical and any(clean(value) not in (None, False) for value in medical.values()):
        info = StudentMedicalInfo()
        _apply_medical(info, medical)
        student.medical_info = info
    db.session.flush()
    return student, None


def create_student(data, medical=None):
    try:
        student, error = build_student(data, medical)
        if error:
            return fail(error)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create student")
        return fail('Failed to create student')

    current_app.logger.info("Created student %s (%s)", student.id, student.admission_number)
    return ok(student.to_dict(), f'Student added successfully with admission number: {student.admission_number}')


def get_students(search=None, class_id=None, active_only=False):
    query = Student.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Student.name.ilike(pattern),
            Student.surname.ilike(pattern),
            Student.admission_number.ilike(pattern),
        ))
    if class_id:
        query = query.filter(Student.class_id == class_id)
    if active_only:
        query = query.filter(Student.is_active.is_(True))
    return query.order_by(Student.surname, Student.name).all()


def get_student(student_id):
    return db.session.get(Student, student_id)


def get_student_by_admission_number(number):
    return Student.query.filter_by(admission_number=clean(number)).first()


def update_student(student_id, data):
    student = get_student(student_id)
    if not student:
        return fail('Student not found')

    merged = {'name': student.name, 'surname': student.surname}
    merged.update(data)
    try:
        error = _validate_student(merged, student_id=student.id)
        if error:
            return fail(error)
        admission_number = clean(data.get('admission_number'))
        if admission_number:
            student.admission_number = admission_number
        _apply_student(student, data)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid date or number supplied')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update student %s", student_id)
        return fail('Failed to update student')

    return ok(student.to_dict(), 'Student details updated successfully!')


def delete_student(student_id):
    student = get_student(student_id)
    if not student:
        return fail('Student not found')

    has_payments = (db.session.query(FeePayment.id)
                    .join(StudentFee, FeePayment.student_fee_id == StudentFee.id)
                    .filter(StudentFee.student_id == student.id).first())
    if has_payments:
        return fail('Cannot delete a student with recorded fee payments. Deactivate the student instead.')

    try:
        ExamResult.query.filter_by(student_id=student.id).delete()
        StudentAttendance.query.filter_by(student_id=student.id).delete()
        for fee in StudentFee.query.filter_by(student_id=student.id).all():
            db.session.delete(fee)
        for card in ReportCard.query.filter_by(student_id=student.id).all():
            db.session.delete(card)
        User.query.filter_by(user_type='student', reference_id=student.id).delete()
        name = student.full_name
        db.session.delete(student)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete student %s", student_id)
        return fail('Failed to delete student')

    current_app.logger.info("Deleted student %s", student_id)
    return ok(message=f'Student {name} deleted successfully!')


def upsert_medical_info(student_id, data):
    student = get_student(student_id)
    if not student:
        return fail('Student not found')
    try:
        info = student.medical_info or StudentMedicalInfo(student_id=student.id)
        _apply_medical(info, data)
        db.session.add(info)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to save medical info for student %s", student_id)
        return fail('Failed to save medical information')
    return ok(info.to_dict(), 'Medical information saved')


# Parents
def _validate_parent(data):
    if missing_fields(data, ('name', 'surname')):
        return 'Name and surname are required'
    if not clean(data.get('phone')) and not clean(data.get('email')):
        return 'A phone number or email address is required'
    return None


def _apply_parent(parent, data):
    for name in PARENT_FIELDS:
        if name in data:
            setattr(parent, name, clean(data.get(name)))
    if parent.email:
        parent.email = parent.email.lower()


def build_parent(data):
    error = _validate_parent(data)
    if error:
        return None, error
    parent = Parent()
    _apply_parent(parent, data)
    db.session.add(parent)
    db.session.flush()
    return parent, None


def create_parent(data):
    try:
        parent, error = build_parent(data)
        if error:
            return fail(error)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create parent")
        return fail('Failed to create parent')
    return ok(parent.to_dict(), 'Parent added successfully!')


def get_parents(search=None):
    query = Parent.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Parent.name.ilike(pattern),
            Parent.surname.ilike(pattern),
            Parent.email.ilike(pattern),
            Parent.phone.ilike(pattern),
        ))
    return query.order_by(Parent.surname, Parent.name).all()


def get_parent(parent_id):
    return db.session.get(Parent, parent_id)


def update_parent(parent_id, data):
    parent = get_parent(parent_id)
    if not parent:
        return fail('Parent not found')
    merged = parent.to_dict()
    merged.update(data)
    error = _validate_parent(merged)
    if error:
        return fail(error)
    try:
        _apply_parent(parent, data)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update parent %s", parent_id)
        return fail('Failed to update parent')
    return ok(parent.to_dict(), 'Parent details updated successfully!')


def delete_parent(parent_id):
    parent = get_parent(parent_id)
    if not parent:
        return fail('Parent not found')
    try:
        User.query.filter_by(user_type='parent', reference_id=parent.id).delete()
        db.session.delete(parent)  # links cascade
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete parent %s", parent_id)
        return fail('Failed to delete parent')
    return ok(message='Parent deleted successfully!')


def link_student_to_parent(parent_id, student_id, relationship, is_primary_contact=False,
                           emergency_contact=False, authorized_to_pickup=True, commit=True):
    if not clean(relationship):
        return fail('Relationship is required')
    if db.session.get(Parent, parent_id) is None:
        return fail('Parent not found')
    if db.session.get(Student, student_id) is None:
        return fail('Student not found')
    if ParentStudent.query.filter_by(parent_id=parent_id, student_id=student_id).first():
        return fail('This parent is already linked to the student')

    try:
        link = ParentStudent(
            parent_id=parent_id,
            student_id=student_id,
            relationship=clean(relationship),
            is_primary_contact=bool(is_primary_contact),
            emergency_contact=bool(emergency_contact),
            authorized_to_pickup=bool(authorized_to_pickup),
        )
        db.session.add(link)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to link parent %s to student %s", parent_id, student_id)
        return fail('Failed to link parent and student')
    return ok({'id': link.id}, 'Parent linked to student')


def unlink_student_from_parent(parent_id, student_id):
    link = ParentStudent.query.filter_by(parent_id=parent_id, student_id=student_id).first()
    if not link:
        return fail('Link not found')
    try:
        db.session.delete(link)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to unlink parent %s from student %s", parent_id, student_id)
        return fail('Failed to unlink parent and student')
    return ok(message='Parent unlinked from student')


def get_parents_for_student(student_id):
    rows = (db.session.query(Parent, ParentStudent)
            .join(ParentStudent, ParentStudent.parent_id == Parent.id)
            .filter(ParentStudent.student_id == student_id)
            .order_by(ParentStudent.is_primary_contact.desc(), Parent.surname)
            .all())
    return [
        {
            'parent': parent,
            'relationship': link.relationship,
            'is_primary_contact': link.is_primary_contact,
            'emergency_contact': link.emergency_contact,
            'authorized_to_pickup': link.authorized_to_pickup,
        }
        for parent, link in rows
    ]


def get_children_for_parent(parent_id):
    return (Student.query
            .join(ParentStudent, ParentStudent.student_id == Student.id)
            .filter(ParentStudent.parent_id == parent_id)
            .order_by(Student.surname, Student.name)
            .all())
