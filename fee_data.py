"""Fee structures, student fee assignments, payments and the fee dashboard."""
from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app_models import (db, FeeStructure, StudentFee, FeePayment, Student, SchoolClass,
                        FEE_FREQUENCIES, FEE_STATUSES, PAYMENT_METHODS)
from data_helpers import clean, parse_date, parse_int, parse_float, optional_id
from results import ok, fail


# Fee structures
def _fee_structure_values(data):
    if not clean(data.get('name')):
        return None, 'Fee name is required'
    try:
        values = {
            'name': clean(data['name']),
            'class_id': optional_id(data.get('class_id')),
            'amount': parse_float(data.get('amount')),
            'frequency': clean(data.get('frequency')) or 'termly',
            'due_day': parse_int(data.get('due_day')),
            'description': clean(data.get('description')),
        }
    except ValueError:
        return None, 'Invalid amount or due day'

    if values['amount'] is None or values['amount'] <= 0:
        return None, 'Amount must be greater than zero'
    if values['frequency'] not in FEE_FREQUENCIES:
        return None, 'Frequency must be monthly, termly or yearly'
    if values['due_day'] is not None and not 1 <= values['due_day'] <= 31:
        return None, 'Due day must be between 1 and 31'
    if values['class_id'] and db.session.get(SchoolClass, values['class_id']) is None:
        return None, 'Selected class does not exist'
    return values, None


def create_fee_structure(data):
    values, error = _fee_structure_values(data)
    if error:
        return fail(error)
    try:
        structure = FeeStructure(is_active=True, **values)
        db.session.add(structure)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create fee structure")
        return fail('Failed to create fee structure')
    return ok(structure.to_dict(), f'Fee structure {structure.name} created successfully!')


def update_fee_structure(structure_id, data):
    structure = get_fee_structure(structure_id)
    if not structure:
        return fail('Fee structure not found')
    values, error = _fee_structure_values(data)
    if error:
        return fail(error)
    try:
        for name, value in values.items():
            setattr(structure, name, value)
        if 'is_active' in data:
            structure.is_active = bool(data.get('is_active'))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update fee structure %s", structure_id)
        return fail('Failed to update fee structure')
    return ok(structure.to_dict(), 'Fee structure updated successfully!')


def get_fee_structures(active_only=False):
    query = FeeStructure.query
    if active_only:
        query = query.filter(FeeStructure.is_active.is_(True))
    return query.order_by(FeeStructure.name).all()


def get_fee_structure(structure_id):
    return db.session.get(FeeStructure, structure_id)


def delete_fee_structure(structure_id):
    structure = get_fee_structure(structure_id)
    if not structure:
        return fail('Fee structure not found')
    try:
        if StudentFee.query.filter_by(fee_structure_id=structure.id).first():
            structure.is_active = False
            db.session.commit()
            return ok(structure.to_dict(),
                      f'Fee structure "{structure.name}" is billed to students and was deactivated instead')
        db.session.delete(structure)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete fee structure %s", structure_id)
        return fail('Failed to delete fee structure')
    return ok(message=f'Fee structure "{structure.name}" deleted successfully!')


# Student fees
def fee_status(amount_due, amount_paid, due_date, today=None):
    today = today or date.today()
    amount_paid = amount_paid or 0
    if amount_paid >= amount_due:
        return 'paid'
    if due_date and due_date < today:
        return 'overdue'
    if amount_paid > 0:
        return 'partial'
    return 'pending'


def assign_fee_structure(fee_structure_id, academic_year, term, due_date, student_ids=None):
    structure = get_fee_structure(fee_structure_id)
    if not structure:
        return fail('Fee structure not found')
    if not structure.is_active:
        return fail('Fee structure is not active')
    if not clean(academic_year):
        return fail('Academic year is required')
    try:
        due_date = parse_date(due_date)
        term = parse_int(term) or None  # 0 means the whole year
    except ValueError:
        return fail('Invalid due date or term')
    if due_date is None:
        return fail('Due date is required')
    try:
        student_ids = [int(i) for i in student_ids or ()]
    except (TypeError, ValueError):
        return fail('Invalid student selection')

    if student_ids:
        students = Student.query.filter(Student.id.in_(student_ids)).all()
    else:
        query = Student.query.filter(Student.is_active.is_(True))
        if structure.class_id:
            query = query.filter(Student.class_id == structure.class_id)
        students = query.all()

    already_billed = {
        student_id for (student_id,) in db.session.query(StudentFee.student_id).filter_by(
            fee_structure_id=structure.id, academic_year=clean(academic_year), term=term)
    }

    created = 0
    skipped = 0
    try:
        for student in students:
            if student.id in already_billed:
                skipped += 1
                continue
            db.session.add(StudentFee(
                student_id=student.id,
                fee_structure_id=structure.id,
                academic_year=clean(academic_year),
                term=term,
                amount_due=structure.amount,
                amount_paid=0.0,
                due_date=due_date,
                status=fee_status(structure.amount, 0.0, due_date),
            ))
            created += 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to assign fee structure %s", fee_structure_id)
        return fail('Failed to assign fee structure')

    current_app.logger.info("Assigned fee structure %s to %d students (%d skipped)",
                            structure.id, created, skipped)
    return ok({'created': created, 'skipped': skipped},
              f'Fee assigned to {created} student(s), {skipped} already billed')


def generate_receipt_number():
    """Generate next receipt number in payment order (0001 for first payment, etc.)"""
    last_payment = FeePayment.query.order_by(FeePayment.id.desc()).first()
    if last_payment and last_payment.receipt_no.isdigit():
        next_number = int(last_payment.receipt_no) + 1
    else:
        next_number = 1
    return f"{next_number:04d}"


def record_payment(student_fee_id, amount, payment_date, payment_method,
                   reference_number=None, received_by=None, notes=None):
    student_fee = get_student_fee(student_fee_id)
    if not student_fee:
        return fail('Student fee not found')
    try:
        amount = parse_float(amount)
        payment_date = parse_date(payment_date) or date.today()
    except ValueError:
        return fail('Invalid amount or payment date')
    if amount is None or amount <= 0:
        return fail('Payment amount must be greater than zero')
    if round(amount, 2) > student_fee.balance:
        return fail(f'Payment amount exceeds the outstanding balance of {student_fee.balance:,.2f}')
    if payment_method not in PAYMENT_METHODS:
        return fail('Invalid payment method')

    try:
        payment = FeePayment(
            student_fee_id=student_fee.id,
            receipt_no=generate_receipt_number(),
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            reference_number=clean(reference_number),
            received_by=received_by,
            notes=clean(notes),
        )
        db.session.add(payment)
        student_fee.amount_paid = round((student_fee.amount_paid or 0) + amount, 2)
        student_fee.status = fee_status(student_fee.amount_due, student_fee.amount_paid, student_fee.due_date)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment for student fee %s", student_fee_id)
        return fail('Failed to record payment')

    current_app.logger.info("Recorded payment %s of %.2f for student fee %s",
                            payment.receipt_no, amount, student_fee.id)
    return ok(payment.to_dict(), f'Payment recorded. Receipt number: {payment.receipt_no}')


def get_student_fees(student_id=None, status=None, class_id=None):
    query = StudentFee.query.join(Student, StudentFee.student_id == Student.id)
    if student_id:
        query = query.filter(StudentFee.student_id == student_id)
    if status:
        query = query.filter(StudentFee.status == status)
    if class_id:
        query = query.filter(Student.class_id == class_id)
    return query.order_by(StudentFee.due_date.desc(), Student.surname, Student.name).all()


def get_student_fee(student_fee_id):
    return db.session.get(StudentFee, student_fee_id)


def get_payments(student_id=None, start=None, end=None):
    query = FeePayment.query.join(StudentFee, FeePayment.student_fee_id == StudentFee.id)
    if student_id:
        query = query.filter(StudentFee.student_id == student_id)
    if start:
        query = query.filter(FeePayment.payment_date >= parse_date(start))
    if end:
        query = query.filter(FeePayment.payment_date <= parse_date(end))
    return query.order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).all()


def get_payment(payment_id):
    return db.session.get(FeePayment, payment_id)


def refresh_overdue_fees(today=None):
    today = today or date.today()
    count = (StudentFee.query
             .filter(StudentFee.status.in_(('pending', 'partial')), StudentFee.due_date < today)
             .update({'status': 'overdue'}, synchronize_session=False))
    db.session.commit()
    if count:
        current_app.logger.info("Marked %d student fees overdue", count)
    return count


def get_fee_dashboard():
    expected, collected = db.session.query(
        func.coalesce(func.sum(StudentFee.amount_due), 0.0),
        func.coalesce(func.sum(StudentFee.amount_paid), 0.0),
    ).one()
    expected = float(expected)
    collected = float(collected)

    status_counts = dict(db.session.query(StudentFee.status, func.count(StudentFee.id))
                         .group_by(StudentFee.status).all())

    class_rows = (db.session.query(
        SchoolClass.id,
        SchoolClass.name,
        SchoolClass.section,
        func.count(StudentFee.id),
        func.coalesce(func.sum(StudentFee.amount_due), 0.0),
        func.coalesce(func.sum(StudentFee.amount_paid), 0.0),
    ).join(Student, Student.class_id == SchoolClass.id)
        .join(StudentFee, StudentFee.student_id == Student.id)
        .group_by(SchoolClass.id, SchoolClass.name, SchoolClass.section)
        .order_by(SchoolClass.name, SchoolClass.section)
        .all())

    by_class = []
    for class_id, name, section, fee_count, due, paid in class_rows:
        by_class.append({
            'class_id': class_id,
            'class_name': f"{name} ({section})",
            'fees': fee_count,
            'expected': float(due),
            'collected': float(paid),
            'outstanding': round(float(due) - float(paid), 2),
        })

    recent_payments = FeePayment.query.order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).limit(5).all()

    return {
        'expected': round(expected, 2),
        'collected': round(collected, 2),
        'outstanding': round(expected - collected, 2),
        'collection_rate': round(collected / expected * 100, 2) if expected else 0.0,
        'status_counts': {status: status_counts.get(status, 0) for status in FEE_STATUSES},
        'by_class': by_class,
        'recent_payments': recent_payments,
    }
