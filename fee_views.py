from datetime import date

from flask import Blueprint, Response, abort, jsonify, redirect, render_template, request, url_for

import exports
import fee_data
from app_models import FEE_STATUSES
from auth import permission_required, current_staff_id
from data_helpers import parse_date
from forms import FeeStructureForm, AssignFeeForm, PaymentForm, form_payload, class_choices, fee_structure_choices
from results import flash_result
from term_data import get_current_term

fees_bp = Blueprint('fees', __name__)


def _or_404(record):
    if record is None:
        abort(404)
    return record


@fees_bp.route('/fees')
@permission_required('manage_fees')
def dashboard():
    return render_template('fees/dashboard.html', fees=fee_data.get_fee_dashboard())


# Fee structures
@fees_bp.route('/fees/structures')
@permission_required('manage_fees')
def list_structures():
    return render_template('fees/structures.html', structures=fee_data.get_fee_structures())


@fees_bp.route('/fees/structures/add', methods=['GET', 'POST'])
@permission_required('manage_fees')
def add_structure():
    form = FeeStructureForm()
    form.class_id.choices = class_choices()
    if form.validate_on_submit():
        if flash_result(fee_data.create_fee_structure(form_payload(form))):
            return redirect(url_for('fees.list_structures'))
    return render_template('form_page.html', form=form, title='Add Fee Structure',
                           cancel_url=url_for('fees.list_structures'))


@fees_bp.route('/fees/structures/<int:structure_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_fees')
def edit_structure(structure_id):
    structure = _or_404(fee_data.get_fee_structure(structure_id))
    form = FeeStructureForm(obj=structure)
    form.class_id.choices = class_choices()
    if request.method == 'GET':
        form.class_id.data = structure.class_id or 0
    if form.validate_on_submit():
        if flash_result(fee_data.update_fee_structure(structure.id, form_payload(form))):
            return redirect(url_for('fees.list_structures'))
    return render_template('form_page.html', form=form, title=f'Edit {structure.name}',
                           cancel_url=url_for('fees.list_structures'))


@fees_bp.route('/fees/structures/<int:structure_id>/delete', methods=['POST'])
@permission_required('manage_fees')
def delete_structure(structure_id):
    flash_result(fee_data.delete_fee_structure(structure_id))
    return redirect(url_for('fees.list_structures'))


@fees_bp.route('/fees/assign', methods=['GET', 'POST'])
@permission_required('manage_fees')
def assign_fee():
    form = AssignFeeForm()
    form.fee_structure_id.choices = fee_structure_choices()
    if request.method == 'GET':
        current = get_current_term()
        if current:
            form.academic_year.data = current.academic_year
            form.term.data = current.term
        form.fee_structure_id.data = request.args.get('structure_id', 0, type=int)
    if form.validate_on_submit():
        result = fee_data.assign_fee_structure(form.fee_structure_id.data, form.academic_year.data,
                                               form.term.data, form.due_date.data)
        if flash_result(result):
            return redirect(url_for('fees.student_fees'))
    return render_template('form_page.html', form=form, title='Assign Fee to Students',
                           cancel_url=url_for('fees.list_structures'))


# Student fees and payments
@fees_bp.route('/fees/students')
@permission_required('manage_fees')
def student_fees():
    status = request.args.get('status') or None
    if status not in FEE_STATUSES:
        status = None
    class_id = request.args.get('class_id', type=int)
    return render_template('fees/student_fees.html', status=status, class_id=class_id,
                           statuses=FEE_STATUSES, classes=class_choices(include_none=False)[1:],
                           student_fees=fee_data.get_student_fees(status=status, class_id=class_id))


@fees_bp.route('/fees/students/<int:student_fee_id>/pay', methods=['GET', 'POST'])
@permission_required('manage_fees')
def record_payment(student_fee_id):
    student_fee = _or_404(fee_data.get_student_fee(student_fee_id))
    form = PaymentForm()
    if request.method == 'GET':
        form.amount.data = student_fee.balance
        form.payment_date.data = date.today()
    if form.validate_on_submit():
        result = fee_data.record_payment(
            student_fee.id,
            form.amount.data,
            form.payment_date.data,
            form.payment_method.data,
            reference_number=form.reference_number.data,
            received_by=current_staff_id(),
            notes=form.notes.data,
        )
        if flash_result(result):
            return redirect(url_for('fees.receipt', payment_id=result['data']['id']))
    return render_template('fees/payment.html', form=form, student_fee=student_fee)


@fees_bp.route('/fees/payments')
@permission_required('manage_fees')
def list_payments():
    start = request.args.get('start') or None
    end = request.args.get('end') or None
    try:
        payments = fee_data.get_payments(start=parse_date(start), end=parse_date(end))
    except ValueError:
        abort(400)
    return render_template('fees/payments.html', payments=payments, start=start, end=end)


@fees_bp.route('/fees/payments/export')
@permission_required('manage_fees')
def export_payments():
    export_format = request.args.get('format', 'csv')
    if export_format not in exports.EXPORT_FORMATS:
        abort(400)
    try:
        payments = fee_data.get_payments(start=parse_date(request.args.get('start') or None),
                                         end=parse_date(request.args.get('end') or None))
    except ValueError:
        abort(400)
    content, filename, mimetype = exports.export_payments(export_format, payments)
    return Response(content, mimetype=mimetype,
                    headers={'Content-Disposition': f'attachment; filename={filename}'})


@fees_bp.route('/fees/payments/<int:payment_id>/receipt')
@permission_required('manage_fees')
def receipt(payment_id):
    payment = _or_404(fee_data.get_payment(payment_id))
    return render_template('fees/receipt.html', payment=payment, student_fee=payment.student_fee)


# JSON API
@fees_bp.route('/api/fees/dashboard')
@permission_required('manage_fees')
def api_dashboard():
    fees = fee_data.get_fee_dashboard()
    fees['recent_payments'] = [payment.to_dict() for payment in fees['recent_payments']]
    return jsonify({'success': True, 'data': fees})
