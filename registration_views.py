from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from auth import permission_required
from data_helpers import parse_date
from forms import (RegistrationStudentForm, RegistrationMedicalForm, RegistrationGuardianForm,
                   RegistrationAgreementForm, form_payload, class_choices, fee_structure_choices)
from registration import RegistrationFlow, STEPS, TOTAL_STEPS, complete_registration
from results import flash_result
from term_data import get_current_term

registration_bp = Blueprint('registration', __name__, url_prefix='/students/register')

DATE_FIELDS = ('date_of_birth', 'enrolment_date', 'due_date')


def _restore(data):
    """Stored step data back into form data (the session keeps dates as ISO strings)."""
    data = dict(data or {})
    for name in DATE_FIELDS:
        if data.get(name):
            data[name] = parse_date(data[name])
    return data


def _guardian_form_data(stored):
    guardians = (stored or {}).get('guardians', [])
    data = {}
    if guardians:
        data.update(guardians[0])
    if len(guardians) > 1:
        data.update({f'second_{name}': value for name, value in guardians[1].items()
                     if name in RegistrationGuardianForm.guardian_fields})
    return data


def _build_form(step, flow):
    stored = flow.get_step_data(step)
    if step == 3:
        prefill = _guardian_form_data(stored)
    else:
        prefill = _restore(stored)
    kwargs = {'data': prefill} if request.method == 'GET' and prefill else {}

    if step == 1:
        form = RegistrationStudentForm(**kwargs)
        form.class_id.choices = class_choices()
    elif step == 2:
        form = RegistrationMedicalForm(**kwargs)
    elif step == 3:
        form = RegistrationGuardianForm(**kwargs)
    else:
        form = RegistrationAgreementForm(**kwargs)
        form.fee_structure_id.choices = fee_structure_choices(include_none=True)
        if request.method == 'GET' and not prefill:
            current = get_current_term()
            if current:
                form.academic_year.data = current.academic_year
                form.term.data = current.term
    return form


@registration_bp.route('')
@permission_required('manage_students')
def start():
    return redirect(url_for('registration.step', step=RegistrationFlow().current_step))


@registration_bp.route('/step/<int:step>', methods=['GET', 'POST'])
@permission_required('manage_students')
def step(step):
    if step not in STEPS:
        abort(404)
    flow = RegistrationFlow()
    if not flow.can_access(step):
        flash('Please complete the previous steps first.', 'error')
        return redirect(url_for('registration.step', step=flow.current_step))

    form = _build_form(step, flow)
    if form.validate_on_submit():
        if step == 3:
            flow.set_step_data(3, {'guardians': form.guardians()})
        else:
            flow.set_step_data(step, form_payload(form))

        if step < TOTAL_STEPS:
            return redirect(url_for('registration.step', step=step + 1))

        result = complete_registration(flow)
        if flash_result(result):
            return redirect(url_for('students.view_student', student_id=result['data']['id']))

    completed, total = flow.progress()
    return render_template('registration/step.html', form=form, step=step, steps=STEPS,
                           title=STEPS[step][1], completed=completed, total=total)


@registration_bp.route('/reset', methods=['POST'])
@permission_required('manage_students')
def reset():
    RegistrationFlow().reset()
    flash('Registration cleared.', 'success')
    return redirect(url_for('registration.step', step=1))
