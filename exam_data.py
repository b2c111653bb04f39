"""Exams, results entry and result statistics."""
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, Exam, ExamResult, SchoolClass, Subject, Student
from data_helpers import clean, missing_fields, parse_date, parse_time, parse_int, parse_float, optional_id
from grading import active_grade_scale, grade_for_percentage, percentage
from results import ok, fail

EXAM_REQUIRED = ('name', 'exam_date', 'class_id', 'academic_year', 'term')


def _exam_values(data):
    """Coerce and validate exam input; returns ``(values, error)``."""
    if missing_fields(data, EXAM_REQUIRED):
        return None, 'Name, exam date, class, academic year and term are required'
    try:
        values = {
            'name': clean(data['name']),
            'description': clean(data.get('description')),
            'exam_date': parse_date(data['exam_date']),
            'start_time': parse_time(data.get('start_time')),
            'end_time': parse_time(data.get('end_time')),
            'class_id': optional_id(data['class_id']),
            'subject_id': optional_id(data.get('subject_id')),
            'academic_year': clean(data['academic_year']),
            'term': parse_int(data['term']),
            'total_marks': parse_int(data.get('total_marks')),
            'passing_marks': parse_int(data.get('passing_marks')),
            'weightage': parse_int(data.get('weightage')),
        }
    except ValueError:
        return None, 'Invalid date, time or number supplied'

    values['total_marks'] = 100 if values['total_marks'] is None else values['total_marks']
    values['passing_marks'] = 40 if values['passing_marks'] is None else values['passing_marks']
    values['weightage'] = 100 if values['weightage'] is None else values['weightage']

    if values['term'] not in (1, 2, 3):
        return None, 'Term must be 1, 2 or 3'
    if values['total_marks'] <= 0:
        return None, 'Total marks must be greater than zero'
    if not 0 <= values['passing_marks'] <= values['total_marks']:
        return None, 'Passing marks must be between 0 and the total marks'
    if not 1 <= values['weightage'] <= 100:
        return None, 'Weightage must be between 1 and 100'
    if values['start_time'] and values['end_time'] and values['end_time'] <= values['start_time']:
        return None, 'End time must be after start time'
    if not values['class_id'] or db.session.get(SchoolClass, values['class_id']) is None:
        return None, 'Selected class does not exist'
    if values['subject_id']:
        subject = db.session.get(Subject, values['subject_id'])
        if subject is None or subject.class_id != values['class_id']:
            return None, 'Selected subject does not belong to the class'
    return values, None


def _is_duplicate(values, exclude_id=None):
    query = Exam.query.filter_by(name=values['name'], class_id=values['class_id'],
                                 subject_id=values['subject_id'], academic_year=values['academic_year'])
    if exclude_id:
        query = query.filter(Exam.id != exclude_id)
    return query.first() is not None


def create_exam(data):
    values, error = _exam_values(data)
    if error:
        return fail(error)
    if _is_duplicate(values):
        return fail('An exam with this name already exists for the class, subject and academic year')
    try:
        exam = Exam(**values)
        db.session.add(exam)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create exam")
        return fail('Failed to create exam')
    current_app.logger.info("Created exam %s for class %s", exam.id, exam.class_id)
    return ok(exam.to_dict(), f'Exam {exam.name} created successfully!')


def get_exams(class_id=None, subject_id=None, academic_year=None, term=None):
    query = (Exam.query
             .join(SchoolClass, Exam.class_id == SchoolClass.id)
             .outerjoin(Subject, Exam.subject_id == Subject.id))
    if class_id:
        query = query.filter(Exam.class_id == class_id)
    if subject_id:
        query = query.filter(Exam.subject_id == subject_id)
    if academic_year:
        query = query.filter(Exam.academic_year == academic_year)
    if term:
        query = query.filter(Exam.term == term)
    return query.order_by(Exam.exam_date.desc(), Exam.id.desc()).all()


def get_exam(exam_id):
    return db.session.get(Exam, exam_id)


def get_upcoming_exams(today, limit=5):
    return (Exam.query.filter(Exam.exam_date >= today)
            .order_by(Exam.exam_date, Exam.start_time).limit(limit).all())


def _regrade_results(exam, old_total):
    """Re-derive status after a marks change; grades are redone unless they were set by hand."""
    scale = active_grade_scale()
    for result in exam.results:
        derived, _ = grade_for_percentage(percentage(result.marks_obtained, old_total), scale)
        if not result.grade or result.grade == derived:
            result.grade, _ = grade_for_percentage(percentage(result.marks_obtained, exam.total_marks), scale)
        result.status = 'passed' if result.marks_obtained >= exam.passing_marks else 'failed'


def update_exam(exam_id, data):
    exam = get_exam(exam_id)
    if not exam:
        return fail('Exam not found')
    values, error = _exam_values(data)
    if error:
        return fail(error)
    if _is_duplicate(values, exclude_id=exam.id):
        return fail('An exam with this name already exists for the class, subject and academic year')
    highest = (db.session.query(func.max(ExamResult.marks_obtained))
               .filter(ExamResult.exam_id == exam.id).scalar())
    if highest is not None and values['total_marks'] < highest:
        return fail(f'Total marks cannot be below the highest recorded mark ({highest:g})')
    try:
        old_total = exam.total_marks
        for name, value in values.items():
            setattr(exam, name, value)
        _regrade_results(exam, old_total)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update exam %s", exam_id)
        return fail('Failed to update exam')
    return ok(exam.to_dict(), 'Exam updated successfully!')


def delete_exam(exam_id):
    exam = get_exam(exam_id)
    if not exam:
        return fail('Exam not found')
    try:
        db.session.delete(exam)  # results cascade
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete exam %s", exam_id)
        return fail('Failed to delete exam')
    return ok(message='Exam deleted successfully!')


def _save_result(exam, student_id, marks_obtained, comments=None, grade=None):
    try:
        student_id = parse_int(student_id)
    except (TypeError, ValueError):
        return None, 'Student not found'
    student = db.session.get(Student, student_id) if student_id is not None else None
    if student is None:
        return None, 'Student not found'
    if student.class_id != exam.class_id:
        return None, f'{student.full_name} is not in the class for this exam'
    try:
        marks = parse_float(marks_obtained)
    except ValueError:
        return None, 'Marks must be a number'
    if marks is None:
        return None, 'Marks are required'
    if not 0 <= marks <= exam.total_marks:
        return None, f'Marks must be between 0 and {exam.total_marks}'

    if not clean(grade):
        grade, _ = grade_for_percentage(percentage(marks, exam.total_marks))

    result = ExamResult.query.filter_by(exam_id=exam.id, student_id=student.id).first()
    if result is None:
        result = ExamResult(exam_id=exam.id, student_id=student.id)
        db.session.add(result)
    result.marks_obtained = marks
    result.grade = clean(grade)
    result.status = 'passed' if marks >= exam.passing_marks else 'failed'
    result.comments = clean(comments)
    return result, None


def record_exam_result(exam_id, student_id, marks_obtained, comments=None, grade=None):
    exam = get_exam(exam_id)
    if not exam:
        return fail('Exam not found')
    try:
        result, error = _save_result(exam, student_id, marks_obtained, comments, grade)
        if error:
            return fail(error)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record result for exam %s student %s", exam_id, student_id)
        return fail('Failed to record exam result')
    return ok(result.to_dict(), 'Exam result saved')


def record_exam_results_bulk(exam_id, entries):
    """Save many results; rows that fail validation are reported, the rest are kept."""
    exam = get_exam(exam_id)
    if not exam:
        return fail('Exam not found')

    saved = 0
    errors = {}
    try:
        for entry in entries:
            student_id = entry.get('student_id')
            if entry.get('marks_obtained') in (None, ''):
                continue
            result, error = _save_result(exam, student_id, entry.get('marks_obtained'),
                                         entry.get('comments'), entry.get('grade'))
            if error:
                # keyed by the id as sent, in string form
                errors[str(student_id)] = error
            else:
                saved += 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record results for exam %s", exam_id)
        return fail('Failed to record exam results')

    message = f'{saved} result(s) saved'
    if errors:
        message += f', {len(errors)} failed'
    return ok({'saved': saved, 'failed': len(errors), 'errors': errors}, message)


def get_exam_results(exam_id):
    return (ExamResult.query
            .join(Student, ExamResult.student_id == Student.id)
            .filter(ExamResult.exam_id == exam_id)
            .order_by(Student.surname, Student.name)
            .all())


def get_exam_statistics(exam_id):
    exam = get_exam(exam_id)
    if not exam:
        return fail('Exam not found')

    count, average, highest, lowest = (db.session.query(
        func.count(ExamResult.id),
        func.avg(ExamResult.marks_obtained),
        func.max(ExamResult.marks_obtained),
        func.min(ExamResult.marks_obtained),
    ).filter(ExamResult.exam_id == exam.id).one())

    by_status = dict(db.session.query(ExamResult.status, func.count(ExamResult.id))
                     .filter(ExamResult.exam_id == exam.id)
                     .group_by(ExamResult.status).all())
    grade_distribution = dict(db.session.query(ExamResult.grade, func.count(ExamResult.id))
                              .filter(ExamResult.exam_id == exam.id)
                              .group_by(ExamResult.grade).order_by(ExamResult.grade).all())

    passed = by_status.get('passed', 0)
    return ok({
        'count': count,
        'average': round(average, 2) if average is not None else None,
        'average_percentage': percentage(average, exam.total_marks) if average is not None else None,
        'highest': highest,
        'lowest': lowest,
        'passed': passed,
        'failed': by_status.get('failed', 0),
        'pass_rate': round(passed / count * 100, 2) if count else 0.0,
        'grade_distribution': grade_distribution,
    })


def get_students_for_exam(exam_id):
    exam = get_exam(exam_id)
    if not exam:
        return []
    results = {r.student_id: r for r in ExamResult.query.filter_by(exam_id=exam.id).all()}
    students = (Student.query.filter_by(class_id=exam.class_id)
                .order_by(Student.surname, Student.name).all())
    return [{'student': student, 'result': results.get(student.id)} for student in students]
