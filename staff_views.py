from flask import Blueprint, abort, redirect, render_template, request, url_for

import staff_data
from auth import permission_required
from forms import StaffForm, TeacherForm, form_payload, staff_choices
from results import flash_result

staff_bp = Blueprint('staff', __name__)


def _staff_or_404(staff_id):
    staff = staff_data.get_staff_member(staff_id)
    if staff is None:
        abort(404)
    return staff


def _teacher_or_404(teacher_id):
    teacher = staff_data.get_teacher(teacher_id)
    if teacher is None:
        abort(404)
    return teacher


@staff_bp.route('/staff')
@permission_required('manage_staff')
def list_staff():
    search_query = request.args.get('search', '').strip()
    department = request.args.get('department') or None
    role = request.args.get('role') or None
    staff = staff_data.get_staff(search=search_query, department=department, role=role)
    return render_template('staff/list.html', staff=staff, search_query=search_query,
                           statistics=staff_data.get_staff_statistics())


@staff_bp.route('/staff/statistics')
@permission_required('manage_staff')
def staff_statistics():
    return render_template('staff/statistics.html', statistics=staff_data.get_staff_statistics())


@staff_bp.route('/staff/add', methods=['GET', 'POST'])
@permission_required('manage_staff')
def add_staff():
    form = StaffForm()
    if form.validate_on_submit():
        if form.password.data:
            result = staff_data.create_staff_with_user(form.staff_payload(), form.password.data)
        else:
            result = staff_data.create_staff(form.staff_payload())
        if flash_result(result):
            return redirect(url_for('staff.list_staff'))
    return render_template('form_page.html', form=form, title='Add Staff Member',
                           cancel_url=url_for('staff.list_staff'))


@staff_bp.route('/staff/<int:staff_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_staff')
def edit_staff(staff_id):
    staff = _staff_or_404(staff_id)
    form = StaffForm(obj=staff)
    del form.password
    if request.method == 'GET':
        form.load_permissions(staff.permissions)
    if form.validate_on_submit():
        if flash_result(staff_data.update_staff(staff.id, form.staff_payload())):
            return redirect(url_for('staff.list_staff'))
    return render_template('form_page.html', form=form, title=f'Edit {staff.full_name}',
                           cancel_url=url_for('staff.list_staff'))


@staff_bp.route('/staff/<int:staff_id>/deactivate', methods=['POST'])
@permission_required('manage_staff')
def deactivate_staff(staff_id):
    flash_result(staff_data.deactivate_staff(staff_id))
    return redirect(url_for('staff.list_staff'))


@staff_bp.route('/staff/<int:staff_id>/delete', methods=['POST'])
@permission_required('manage_staff')
def delete_staff(staff_id):
    flash_result(staff_data.delete_staff(staff_id))
    return redirect(url_for('staff.list_staff'))


# Teachers
@staff_bp.route('/teachers')
@permission_required('manage_staff')
def list_teachers():
    search_query = request.args.get('search', '').strip()
    return render_template('teachers/list.html', teachers=staff_data.get_teachers(search_query),
                           search_query=search_query)


@staff_bp.route('/teachers/add', methods=['GET', 'POST'])
@permission_required('manage_staff')
def add_teacher():
    form = TeacherForm()
    form.staff_id.choices = staff_choices()
    if form.validate_on_submit():
        if flash_result(staff_data.create_teacher(form_payload(form))):
            return redirect(url_for('staff.list_teachers'))
    return render_template('form_page.html', form=form, title='Add Teacher',
                           cancel_url=url_for('staff.list_teachers'))


@staff_bp.route('/teachers/<int:teacher_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_staff')
def edit_teacher(teacher_id):
    teacher = _teacher_or_404(teacher_id)
    form = TeacherForm(obj=teacher)
    form.staff_id.choices = staff_choices()
    if request.method == 'GET':
        form.staff_id.data = teacher.staff_id or 0
    if form.validate_on_submit():
        if flash_result(staff_data.update_teacher(teacher.id, form_payload(form))):
            return redirect(url_for('staff.list_teachers'))
    return render_template('form_page.html', form=form, title=f'Edit {teacher.full_name}',
                           cancel_url=url_for('staff.list_teachers'))


@staff_bp.route('/teachers/<int:teacher_id>/delete', methods=['POST'])
@permission_required('manage_staff')
def delete_teacher(teacher_id):
    flash_result(staff_data.delete_teacher(teacher_id))
    return redirect(url_for('staff.list_teachers'))
