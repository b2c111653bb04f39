"""Classes, subjects and the teachers assigned to them."""
from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from app_models import (db, SchoolClass, Subject, Teacher, Student, Exam, StudentAttendance, ReportCard,
                        FeeStructure)
from data_helpers import clean, missing_fields, optional_id
from results import ok, fail


def _teachers_for(ids):
    """Return ``(teachers, error)`` for a list of teacher ids."""
    ids = [int(i) for i in (ids or []) if i not in (None, '', 0, '0')]
    if not ids:
        return [], None
    teachers = Teacher.query.filter(Teacher.id.in_(ids)).all()
    if len(teachers) != len(set(ids)):
        return None, 'One or more selected teachers do not exist'
    return teachers, None


# Classes
def check_duplicate_class(name, section, exclude_id=None):
    query = SchoolClass.query.filter(func.lower(SchoolClass.name) == name.lower(),
                                     func.lower(SchoolClass.section) == section.lower())
    if exclude_id:
        query = query.filter(SchoolClass.id != exclude_id)
    return query.first() is not None


def _apply_class(school_class, data):
    teachers, error = _teachers_for(data.get('teacher_ids'))
    if error:
        return error
    class_teacher_id = optional_id(data.get('class_teacher_id'))
    class_teacher = None
    if class_teacher_id:
        class_teacher = db.session.get(Teacher, class_teacher_id)
        if class_teacher is None:
            return 'Selected class teacher does not exist'

    school_class.name = clean(data['name'])
    school_class.section = clean(data['section'])
    school_class.class_teacher_id = class_teacher_id
    if class_teacher is not None and class_teacher not in teachers:
        teachers.append(class_teacher)
    school_class.teachers = teachers
    return None


def create_class(data):
    if missing_fields(data, ('name', 'section')):
        return fail('Class name and section are required')
    if check_duplicate_class(clean(data['name']), clean(data['section'])):
        return fail('A class with this name and section already exists')
    try:
        school_class = SchoolClass()
        error = _apply_class(school_class, data)
        if error:
            return fail(error)
        db.session.add(school_class)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid teacher selection')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create class")
        return fail('Failed to create class')
    current_app.logger.info("Created class %s", school_class.display_name)
    return ok(school_class.to_dict(), f'Class {school_class.display_name} created successfully!')


def get_classes(search=None, section=None):
    query = SchoolClass.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(SchoolClass.name.ilike(pattern), SchoolClass.section.ilike(pattern)))
    if section:
        query = query.filter(SchoolClass.section == section)
    return query.order_by(SchoolClass.name, SchoolClass.section).all()


def get_class(class_id):
    return db.session.get(SchoolClass, class_id)


def get_classes_with_student_count():
    rows = (db.session.query(SchoolClass, func.count(Student.id))
            .outerjoin(Student, Student.class_id == SchoolClass.id)
            .group_by(SchoolClass.id)
            .order_by(SchoolClass.name, SchoolClass.section)
            .all())
    return [{'class': school_class, 'student_count': count} for school_class, count in rows]


def update_class(class_id, data):
    school_class = get_class(class_id)
    if not school_class:
        return fail('Class not found')
    if missing_fields(data, ('name', 'section')):
        return fail('Class name and section are required')
    if check_duplicate_class(clean(data['name']), clean(data['section']), exclude_id=school_class.id):
        return fail('A class with this name and section already exists')
    try:
        error = _apply_class(school_class, data)
        if error:
            db.session.rollback()
            return fail(error)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid teacher selection')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update class %s", class_id)
        return fail('Failed to update class')
    return ok(school_class.to_dict(), 'Class updated successfully!')


def delete_class(class_id):
    school_class = get_class(class_id)
    if not school_class:
        return fail('Class not found')
    if Student.query.filter_by(class_id=school_class.id).first():
        return fail('Cannot delete class with assigned students. Please reassign students first.')
    if Exam.query.filter_by(class_id=school_class.id).first():
        return fail('Cannot delete class with exams. Please delete its exams first.')
    if StudentAttendance.query.filter_by(class_id=school_class.id).first():
        return fail('Cannot delete class with attendance records. Please delete its attendance first.')
    if ReportCard.query.filter_by(class_id=school_class.id).first():
        return fail('Cannot delete class with report cards on record.')
    if FeeStructure.query.filter_by(class_id=school_class.id).first():
        return fail('Cannot delete class with fee structures. Please delete or reassign its fee structures first.')
    try:
        for subject in list(school_class.subjects):
            db.session.delete(subject)
        school_class.teachers = []
        db.session.delete(school_class)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete class %s", class_id)
        return fail('Failed to delete class')
    return ok(message='Class deleted successfully!')


def assign_teacher_to_class(class_id, teacher_id):
    school_class = get_class(class_id)
    teacher = db.session.get(Teacher, teacher_id)
    if not school_class or not teacher:
        return fail('Class or teacher not found')
    if teacher in school_class.teachers:
        return fail('Teacher is already assigned to this class')
    try:
        school_class.teachers.append(teacher)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to assign teacher %s to class %s", teacher_id, class_id)
        return fail('Failed to assign teacher')
    return ok(school_class.to_dict(), f'{teacher.full_name} assigned to {school_class.display_name}')


def remove_teacher_from_class(class_id, teacher_id):
    school_class = get_class(class_id)
    teacher = db.session.get(Teacher, teacher_id)
    if not school_class or not teacher:
        return fail('Class or teacher not found')
    if teacher not in school_class.teachers and school_class.class_teacher_id != teacher.id:
        return fail('Teacher is not assigned to this class')
    try:
        if teacher in school_class.teachers:
            school_class.teachers.remove(teacher)
        if school_class.class_teacher_id == teacher.id:
            school_class.class_teacher_id = None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to remove teacher %s from class %s", teacher_id, class_id)
        return fail('Failed to remove teacher')
    return ok(school_class.to_dict(), f'{teacher.full_name} removed from {school_class.display_name}')


# Subjects
def check_duplicate_subject(name, class_id, exclude_id=None):
    query = Subject.query.filter(func.lower(Subject.name) == name.lower(), Subject.class_id == class_id)
    if exclude_id:
        query = query.filter(Subject.id != exclude_id)
    return query.first() is not None


def _validate_subject(data, subject_id=None):
    if missing_fields(data, ('name',)) or not optional_id(data.get('class_id')):
        return 'Subject name and class are required'
    class_id = optional_id(data.get('class_id'))
    if db.session.get(SchoolClass, class_id) is None:
        return 'Selected class does not exist'
    if check_duplicate_subject(clean(data['name']), class_id, exclude_id=subject_id):
        return 'This subject already exists for the selected class'
    return None


def _apply_subject(subject, data):
    teachers, error = _teachers_for(data.get('teacher_ids'))
    if error:
        return error
    subject.name = clean(data['name'])
    subject.code = clean(data.get('code'))
    subject.description = clean(data.get('description'))
    subject.class_id = optional_id(data.get('class_id'))
    subject.teachers = teachers
    return None


def create_subject(data):
    try:
        error = _validate_subject(data)
        if error:
            return fail(error)
        subject = Subject()
        error = _apply_subject(subject, data)
        if error:
            return fail(error)
        db.session.add(subject)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid class or teacher selection')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create subject")
        return fail('Failed to create subject')
    return ok(subject.to_dict(), f'Subject {subject.name} created successfully!')


def get_subjects(search=None, class_id=None):
    query = Subject.query
    search = clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Subject.name.ilike(pattern), Subject.code.ilike(pattern)))
    if class_id:
        query = query.filter(Subject.class_id == class_id)
    return query.order_by(Subject.name).all()


def get_subject(subject_id):
    return db.session.get(Subject, subject_id)


def update_subject(subject_id, data):
    subject = get_subject(subject_id)
    if not subject:
        return fail('Subject not found')
    try:
        error = _validate_subject(data, subject_id=subject.id)
        if error:
            return fail(error)
        error = _apply_subject(subject, data)
        if error:
            db.session.rollback()
            return fail(error)
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid class or teacher selection')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update subject %s", subject_id)
        return fail('Failed to update subject')
    return ok(subject.to_dict(), 'Subject updated successfully!')


def delete_subject(subject_id):
    subject = get_subject(subject_id)
    if not subject:
        return fail('Subject not found')
    if Exam.query.filter_by(subject_id=subject.id).first():
        return fail('Cannot delete subject with exams. Please delete its exams first.')
    try:
        subject.teachers = []
        db.session.delete(subject)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete subject %s", subject_id)
        return fail('Failed to delete subject')
    return ok(message='Subject deleted successfully!')
