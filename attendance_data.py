"""Daily student attendance, class rosters and attendance reports."""
import calendar
from datetime import date

from flask import current_app
from sqlalchemy import case, extract, func
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, StudentAttendance, Student, SchoolClass, ATTENDANCE_STATUSES
from data_helpers import clean, parse_date, parse_int, optional_id
from results import ok, fail

NOT_RECORDED = 'not_recorded'
ATTENDANCE_WEIGHTS = {'present': 1.0, 'late': 1.0, 'half-day': 0.5, 'absent': 0.0}


def _find_record(student_id, on_date, subject_id):
    query = StudentAttendance.query.filter_by(student_id=student_id, date=on_date)
    if subject_id:
        query = query.filter(StudentAttendance.subject_id == subject_id)
    else:
        query = query.filter(StudentAttendance.subject_id.is_(None))
    return query.first()


def _upsert(student, on_date, status, subject_id=None, period=None, remarks=None, recorded_by=None):
    """Returns ``(record, created)``."""
    record = _find_record(student.id, on_date, subject_id)
    created = record is None
    if created:
        record = StudentAttendance(student_id=student.id, date=on_date, subject_id=subject_id)
        db.session.add(record)
    record.class_id = student.class_id
    record.status = status
    record.period = period
    record.remarks = clean(remarks)
    record.recorded_by = recorded_by
    return record, created


def mark_attendance(data):
    try:
        student_id = parse_int(data.get('student_id'))
        on_date = parse_date(data.get('date'))
        subject_id = optional_id(data.get('subject_id'))
        period = parse_int(data.get('period'))
    except ValueError:
        return fail('Invalid student, date or period')
    status = data.get('status')
    if not student_id or not on_date:
        return fail('Student and date are required')
    if status not in ATTENDANCE_STATUSES:
        return fail('Invalid attendance status')

    student = db.session.get(Student, student_id)
    if student is None:
        return fail('Student not found')
    if student.class_id is None:
        return fail('Student is not assigned to a class')

    try:
        record, created = _upsert(student, on_date, status, subject_id, period,
                                  data.get('remarks'), data.get('recorded_by'))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to mark attendance for student %s", student_id)
        return fail('Failed to mark attendance')
    return ok(record.to_dict(), 'Attendance recorded' if created else 'Attendance updated')


def mark_class_attendance(class_id, on_date, entries, recorded_by=None):
    """``entries`` is a list of ``{"student_id", "status", "remarks"}``."""
    school_class = db.session.get(SchoolClass, class_id)
    if not school_class:
        return fail('Class not found')
    try:
        on_date = parse_date(on_date)
    except ValueError:
        return fail('Invalid date')
    if on_date is None:
        return fail('Date is required')

    roster = {s.id: s for s in Student.query.filter_by(class_id=school_class.id).all()}
    created = 0
    updated = 0
    skipped = 0
    errors = {}
    try:
        for entry in entries:
            status = entry.get('status')
            if status in (None, '', NOT_RECORDED):
                skipped += 1
                continue
            student_id = parse_int(entry.get('student_id'))
            student = roster.get(student_id)
            if student is None:
                errors[student_id] = 'Student is not in this class'
                continue
            if status not in ATTENDANCE_STATUSES:
                errors[student_id] = 'Invalid attendance status'
                continue
            _, was_created = _upsert(student, on_date, status, optional_id(entry.get('subject_id')),
                                     remarks=entry.get('remarks'), recorded_by=recorded_by)
            if was_created:
                created += 1
            else:
                updated += 1
        db.session.commit()
    except (SQLAlchemyError, ValueError):
        db.session.rollback()
        current_app.logger.exception("Failed to mark attendance for class %s on %s", class_id, on_date)
        return fail('Failed to mark attendance')

    current_app.logger.info("Attendance for class %s on %s: %d created, %d updated",
                            class_id, on_date, created, updated)
    return ok({'created': created, 'updated': updated, 'skipped': skipped, 'errors': errors},
              f'Attendance saved: {created} new, {updated} updated')


def get_attendance_records(filters=None):
    filters = filters or {}
    query = (StudentAttendance.query
             .join(Student, StudentAttendance.student_id == Student.id)
             .join(SchoolClass, StudentAttendance.class_id == SchoolClass.id))
    if filters.get('student_id'):
        query = query.filter(StudentAttendance.student_id == filters['student_id'])
    if filters.get('class_id'):
        query = query.filter(StudentAttendance.class_id == filters['class_id'])
    if filters.get('status'):
        query = query.filter(StudentAttendance.status == filters['status'])
    if filters.get('subject_id'):
        query = query.filter(StudentAttendance.subject_id == filters['subject_id'])
    if filters.get('start_date'):
        query = query.filter(StudentAttendance.date >= parse_date(filters['start_date']))
    if filters.get('end_date'):
        query = query.filter(StudentAttendance.date <= parse_date(filters['end_date']))
    if filters.get('month') and filters.get('year'):
        query = query.filter(extract('month', StudentAttendance.date) == int(filters['month']),
                             extract('year', StudentAttendance.date) == int(filters['year']))
    return query.order_by(StudentAttendance.date.desc(), Student.surname, Student.name).all()


def get_class_attendance_for_date(class_id, on_date):
    on_date = parse_date(on_date)
    students = Student.query.filter_by(class_id=class_id).order_by(Student.surname, Student.name).all()
    records = {
        r.student_id: r for r in StudentAttendance.query.filter(
            StudentAttendance.class_id == class_id,
            StudentAttendance.date == on_date,
            StudentAttendance.subject_id.is_(None),
        ).all()
    }
    roster = []
    for student in students:
        record = records.get(student.id)
        roster.append({
            'student': student,
            'status': record.status if record else NOT_RECORDED,
            'remarks': record.remarks if record else None,
            'record_id': record.id if record else None,
        })
    return roster


def _status_sum(status):
    return func.sum(case((StudentAttendance.status == status, 1), else_=0))


def get_monthly_attendance_report(month, year, class_id=None):
    query = (db.session.query(
        StudentAttendance.date,
        SchoolClass.id,
        SchoolClass.name,
        SchoolClass.section,
        func.count(StudentAttendance.id),
        _status_sum('present'),
        _status_sum('absent'),
        _status_sum('late'),
        _status_sum('half-day'),
    ).join(SchoolClass, StudentAttendance.class_id == SchoolClass.id)
        .filter(extract('month', StudentAttendance.date) == int(month),
                extract('year', StudentAttendance.date) == int(year)))
    if class_id:
        query = query.filter(StudentAttendance.class_id == class_id)
    rows = (query.group_by(StudentAttendance.date, SchoolClass.id, SchoolClass.name, SchoolClass.section)
            .order_by(StudentAttendance.date, SchoolClass.name, SchoolClass.section)
            .all())

    report = []
    for day, cid, name, section, total, present, absent, late, half_day in rows:
        attended = present + late + half_day * 0.5
        report.append({
            'date': day,
            'class_id': cid,
            'class_name': f"{name} ({section})",
            'total': total,
            'present': present,
            'absent': absent,
            'late': late,
            'half_day': half_day,
            'attendance_percentage': round(attended / total * 100, 2) if total else 0.0,
        })
    return report


def _month_bounds(today):
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def get_attendance_stats(class_id=None, start=None, end=None):
    start = parse_date(start)
    end = parse_date(end)
    if start is None or end is None:
        month_start, month_end = _month_bounds(date.today())
        start = start or month_start
        end = end or month_end

    query = (db.session.query(StudentAttendance.status, func.count(StudentAttendance.id))
             .filter(StudentAttendance.date >= start, StudentAttendance.date <= end))
    if class_id:
        query = query.filter(StudentAttendance.class_id == class_id)
    counts = dict(query.group_by(StudentAttendance.status).all())
    counts = {status: counts.get(status, 0) for status in ATTENDANCE_STATUSES}
    total_records = sum(counts.values())

    students = Student.query.filter(Student.is_active.is_(True))
    if class_id:
        students = students.filter(Student.class_id == class_id)

    attended = sum(ATTENDANCE_WEIGHTS[status] * count for status, count in counts.items())
    return {
        'start': start,
        'end': end,
        'total_students': students.count(),
        'total_records': total_records,
        'present': counts['present'],
        'absent': counts['absent'],
        'late': counts['late'],
        'half_day': counts['half-day'],
        'attendance_percentage': round(attended / total_records * 100, 2) if total_records else 0.0,
    }


def attendance_percentage_for_student(student_id, start=None, end=None):
    query = StudentAttendance.query.filter_by(student_id=student_id)
    if start:
        query = query.filter(StudentAttendance.date >= parse_date(start))
    if end:
        query = query.filter(StudentAttendance.date <= parse_date(end))
    records = query.all()
    if not records:
        return None
    attended = sum(ATTENDANCE_WEIGHTS.get(record.status, 0.0) for record in records)
    return round(attended / len(records) * 100, 2)


def get_attendance_record(record_id):
    return db.session.get(StudentAttendance, record_id)


def update_attendance(record_id, data):
    record = get_attendance_record(record_id)
    if not record:
        return fail('Attendance record not found')
    status = data.get('status', record.status)
    if status not in ATTENDANCE_STATUSES:
        return fail('Invalid attendance status')
    try:
        record.status = status
        if 'remarks' in data:
            record.remarks = clean(data.get('remarks'))
        if 'period' in data:
            record.period = parse_int(data.get('period'))
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return fail('Invalid period')
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update attendance record %s", record_id)
        return fail('Failed to update attendance')
    return ok(record.to_dict(), 'Attendance updated')


def delete_attendance(record_id):
    record = get_attendance_record(record_id)
    if not record:
        return fail('Attendance record not found')
    try:
        db.session.delete(record)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete attendance record %s", record_id)
        return fail('Failed to delete attendance')
    return ok(message='Attendance record deleted')
