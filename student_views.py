from flask import Blueprint, Response, abort, flash, jsonify, redirect, render_template, request, url_for

import exports
import student_data
from auth import permission_required
from forms import (StudentForm, MedicalInfoForm, ParentForm, LinkStudentForm, form_payload,
                   class_choices, student_choices)

students_bp = Blueprint('students', __name__)


def _student_or_404(student_id):
    student = student_data.get_student(student_id)
    if student is None:
        abort(404)
    return student


def _parent_or_404(parent_id):
    parent = student_data.get_parent(parent_id)
    if parent is None:
        abort(404)
    return parent


@students_bp.route('/students')
@permission_required('manage_students')
def list_students():
    search_query = request.args.get('search', '').strip()
    class_id = request.args.get('class_id', type=int)
    students = student_data.get_students(search=search_query, class_id=class_id)
    return render_template('students/list.html', students=students, search_query=search_query,
                           class_id=class_id, classes=class_choices(include_none=False)[1:])


@students_bp.route('/students/export')
@permission_required('manage_students')
def export_students():
    export_format = request.args.get('format', 'csv')
    if export_format not in exports.EXPORT_FORMATS:
        abort(400)
    content, filename, mimetype = exports.export_students(export_format)
    return Response(content, mimetype=mimetype,
                    headers={'Content-Disposition': f'attachment; filename={filename}'})


@students_bp.route('/students/add', methods=['GET', 'POST'])
@permission_required('manage_students')
def add_student():
    form = StudentForm()
    form.class_id.choices = class_choices()
    if request.method == 'GET':
        form.admission_number.data = student_data.generate_admission_number()

    if form.validate_on_submit():
        result = student_data.create_student(form_payload(form))
        if result['success']:
            flash(result['message'], 'success')
            return redirect(url_for('students.view_student', student_id=result['data']['id']))
        flash(result['error'], 'error')

    return render_template('form_page.html', form=form, title='Add Student',
                           cancel_url=url_for('students.list_students'))


@students_bp.route('/students/<int:student_id>')
@permission_required('manage_students')
def view_student(student_id):
    student = _student_or_404(student_id)
    return render_template('students/detail.html', student=student,
                           parents=student_data.get_parents_for_student(student.id))


@students_bp.route('/students/<int:student_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_students')
def edit_student(student_id):
    student = _student_or_404(student_id)
    form = StudentForm(obj=student)
    form.class_id.choices = class_choices()
    if request.method == 'GET':
        form.class_id.data = student.class_id or 0

    if form.validate_on_submit():
        result = student_data.update_student(student.id, form_payload(form))
        if result['success']:
            flash(result['message'], 'success')
            return redirect(url_for('students.view_student', student_id=student.id))
        flash(result['error'], 'error')

    return render_template('form_page.html', form=form, title=f'Edit {student.full_name}',
                           cancel_url=url_for('students.view_student', student_id=student.id))


@students_bp.route('/students/<int:student_id>/delete', methods=['POST'])
@permission_required('manage_students')
def delete_student(student_id):
    result = student_data.delete_student(student_id)
    if result['success']:
        flash(result['message'], 'success')
        return redirect(url_for('students.list_students'))
    flash(result['error'], 'error')
    return redirect(url_for('students.view_student', student_id=student_id))


@students_bp.route('/students/<int:student_id>/medical', methods=['GET', 'POST'])
@permission_required('manage_students')
def medical_info(student_id):
    student = _student_or_404(student_id)
    form = MedicalInfoForm(obj=student.medical_info)
    if form.validate_on_submit():
        result = student_data.upsert_medical_info(student.id, form_payload(form))
        if result['success']:
            flash(result['message'], 'success')
            return redirect(url_for('students.view_student', student_id=student.id))
        flash(result['error'], 'error')
    return render_template('form_page.html', form=form, title=f'Medical Information - {student.full_name}',
                           cancel_url=url_for('students.view_student', student_id=student.id))


# Parents
@students_bp.route('/parents')
@permission_required('manage_students')
def list_parents():
    search_query = request.args.get('search', '').strip()
    return render_template('parents/list.html', parents=student_data.get_parents(search_query),
                           search_query=search_query)


@students_bp.route('/parents/add', methods=['GET', 'POST'])
@permission_required('manage_students')
def add_parent():
    form = ParentForm()
    if form.validate_on_submit():
        result = student_data.create_parent(form_payload(form))
        if result['success']:
            flash(result['message'], 'success')
            return redirect(url_for('students.view_parent', parent_id=result['data']['id']))
        flash(result['error'], 'error')
    return render_template('form_page.html', form=form, title='Add Parent / Guardian',
                           cancel_url=url_for('students.list_parents'))


@students_bp.route('/parents/<int:parent_id>', methods=['GET', 'POST'])
@permission_required('manage_students')
def view_parent(parent_id):
    parent = _parent_or_404(parent_id)
    link_form = LinkStudentForm()
    link_form.student_id.choices = student_choices()
    if link_form.validate_on_submit():
        result = student_data.link_student_to_parent(
            parent.id, link_form.student_id.data, link_form.relationship.data,
            is_primary_contact=link_form.is_primary_contact.data,
            emergency_contact=link_form.emergency_contact.data,
            authorized_to_pickup=link_form.authorized_to_pickup.data,
        )
        flash(result['message'] if result['success'] else result['error'],
              'success' if result['success'] else 'error')
        return redirect(url_for('students.view_parent', parent_id=parent.id))
    return render_template('parents/detail.html', parent=parent, link_form=link_form)


@students_bp.route('/parents/<int:parent_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_students')
def edit_parent(parent_id):
    parent = _parent_or_404(parent_id)
    form = ParentForm(obj=parent)
    if form.validate_on_submit():
        result = student_data.update_parent(parent.id, form_payload(form))
        if result['success']:
            flash(result['message'], 'success')
            return redirect(url_for('students.view_parent', parent_id=parent.id))
        flash(result['error'], 'error')
    return render_template('form_page.html', form=form, title=f'Edit {parent.full_name}',
                           cancel_url=url_for('students.view_parent', parent_id=parent.id))


@students_bp.route('/parents/<int:parent_id>/delete', methods=['POST'])
@permission_required('manage_students')
def delete_parent(parent_id):
    result = student_data.delete_parent(parent_id)
    flash(result['message'] if result['success'] else result['error'],
          'success' if result['success'] else 'error')
    return redirect(url_for('students.list_parents'))


@students_bp.route('/parents/<int:parent_id>/unlink/<int:student_id>', methods=['POST'])
@permission_required('manage_students')
def unlink_student(parent_id, student_id):
    result = student_data.unlink_student_from_parent(parent_id, student_id)
    flash(result['message'] if result['success'] else result['error'],
          'success' if result['success'] else 'error')
    if request.form.get('return_to') == 'student':
        return redirect(url_for('students.view_student', student_id=student_id))
    return redirect(url_for('students.view_parent', parent_id=parent_id))


# JSON API
@students_bp.route('/api/students')
@permission_required('manage_students')
def api_students():
    students = student_data.get_students(search=request.args.get('search'),
                                         class_id=request.args.get('class_id', type=int))
    return jsonify({'success': True, 'data': [s.to_dict() for s in students]})


@students_bp.route('/api/students/next-admission-number')
@permission_required('manage_students')
def api_next_admission_number():
    """API endpoint to generate a new admission number"""
    return jsonify({'admission_number': student_data.generate_admission_number()})
