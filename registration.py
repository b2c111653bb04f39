"""
Four-step student registration wizard.

State lives in the Flask session under ``registration_flow`` so a half-filled
registration survives page reloads. Nothing touches the database until the
last step, when :func:`complete_registration` writes everything in one
transaction.
"""
from datetime import date, datetime, time

from flask import current_app, session
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, StudentFee
from data_helpers import clean, parse_date, parse_int, optional_id
from fee_data import fee_status, get_fee_structure
from results import ok, fail
from student_data import build_student, build_parent, link_student_to_parent

SESSION_KEY = 'registration_flow'

STEPS = {
    1: ('student', 'Student Details'),
    2: ('medical', 'Medical Information'),
    3: ('guardians', 'Parent / Guardian Details'),
    4: ('agreement', 'Financial Agreement'),
}
TOTAL_STEPS = len(STEPS)


def _serializable(data):
    """Session storage is JSON; dates become ISO strings."""
    cleaned = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime, time)):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = _serializable(value)
        elif isinstance(value, list):
            value = [_serializable(v) if isinstance(v, dict) else v for v in value]
        cleaned[key] = value
    return cleaned


class RegistrationFlow:
    def __init__(self, store=None):
        self.store = session if store is None else store

    @property
    def state(self):
        state = self.store.get(SESSION_KEY)
        if state is None:
            state = {'current_step': 1, 'steps': {}}
        return state

    def _save(self, state):
        self.store[SESSION_KEY] = state
        if hasattr(self.store, 'modified'):
            self.store.modified = True

    @property
    def current_step(self):
        return self.state['current_step']

    def get_step_data(self, step):
        return self.state['steps'].get(str(step))

    def set_step_data(self, step, data):
        if step not in STEPS:
            raise ValueError(f"Unknown registration step {step}")
        state = self.state
        state['steps'][str(step)] = _serializable(data)
        state['current_step'] = min(step + 1, TOTAL_STEPS)
        self._save(state)

    def can_access(self, step):
        if step not in STEPS:
            return False
        return all(self.get_step_data(earlier) is not None for earlier in range(1, step))

    def progress(self):
        completed = sum(1 for step in STEPS if self.get_step_data(step) is not None)
        return completed, TOTAL_STEPS

    def is_complete(self):
        return self.progress()[0] == TOTAL_STEPS

    def reset(self):
        self.store.pop(SESSION_KEY, None)
        if hasattr(self.store, 'modified'):
            self.store.modified = True

    @property
    def student_data(self):
        return self.get_step_data(1)

    @property
    def medical_data(self):
        return self.get_step_data(2)

    @property
    def guardian_data(self):
        return self.get_step_data(3)

    @property
    def agreement_data(self):
        return self.get_step_data(4)


def _create_first_fee(student, agreement):
    structure_id = optional_id(agreement.get('fee_structure_id'))
    if not structure_id:
        return None, None
    structure = get_fee_structure(structure_id)
    if structure is None or not structure.is_active:
        return None, 'Selected fee structure is not available'
    due_date = parse_date(agreement.get('due_date'))
    if due_date is None or not clean(agreement.get('academic_year')):
        return None, 'Academic year and first due date are required when a fee is selected'
    fee = StudentFee(
        student_id=student.id,
        fee_structure_id=structure.id,
        academic_year=clean(agreement['academic_year']),
        term=parse_int(agreement.get('term')) or None,
        amount_due=structure.amount,
        amount_paid=0.0,
        due_date=due_date,
        status=fee_status(structure.amount, 0.0, due_date),
    )
    db.session.add(fee)
    return fee, None


def complete_registration(flow):
    if not flow.is_complete():
        return fail('Please complete every registration step first')
    agreement = flow.agreement_data
    if not agreement.get('agreed_terms'):
        return fail('The financial agreement must be accepted')

    try:
        student, error = build_student(flow.student_data, flow.medical_data)
        if error:
            db.session.rollback()
            return fail(error)

        for guardian in flow.guardian_data.get('guardians', []):
            parent, error = build_parent(guardian)
            if error:
                db.session.rollback()
                return fail(f"Guardian: {error}")
            result = link_student_to_parent(
                parent.id, student.id, guardian.get('relationship') or 'Guardian',
                is_primary_contact=guardian.get('is_primary_contact', False),
                emergency_contact=guardian.get('emergency_contact', False),
                authorized_to_pickup=guardian.get('authorized_to_pickup', True),
                commit=False,
            )
            if not result['success']:
                db.session.rollback()
                return result

        _, error = _create_first_fee(student, agreement)
        if error:
            db.session.rollback()
            return fail(error)

        db.session.commit()
    except (SQLAlchemyError, ValueError):
        db.session.rollback()
        current_app.logger.exception("Failed to complete student registration")
        return fail('Registration failed. Please review the details and try again.')

    current_app.logger.info("Registered student %s through the registration wizard", student.admission_number)
    flow.reset()
    return ok(student.to_dict(),
              f'Student {student.full_name} registered with admission number {student.admission_number}')
