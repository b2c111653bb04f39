"""Tests for the four-step registration wizard."""
from datetime import date

import pytest

from app_models import Student, Parent, ParentStudent, StudentFee
from registration import RegistrationFlow, SESSION_KEY, complete_registration

GUARDIANS = {'guardians': [
    {'relationship': 'Mother', 'name': 'Zanele', 'surname': 'Ndlovu', 'phone': '0821112222',
     'is_primary_contact': True, 'emergency_contact': True, 'authorized_to_pickup': True},
    {'relationship': 'Father', 'name': 'Bongani', 'surname': 'Ndlovu', 'email': 'bongani@mail.test',
     'is_primary_contact': False, 'emergency_contact': True, 'authorized_to_pickup': True},
]}


def _fill(flow, school_class=None, agreement=None):
    flow.set_step_data(1, {'name': 'Amahle', 'surname': 'Ndlovu', 'date_of_birth': date(2015, 6, 1),
                           'class_id': school_class.id if school_class else 0})
    flow.set_step_data(2, {'allergies': 'Bee stings'})
    flow.set_step_data(3, GUARDIANS)
    flow.set_step_data(4, agreement or {'agreed_terms': True, 'signed_by': 'Zanele Ndlovu',
                                        'fee_structure_id': 0})


class TestRegistrationFlow:
    """Tests for RegistrationFlow state handling."""

    def test_starts_at_step_one(self):
        """A fresh flow has nothing completed."""
        flow = RegistrationFlow({})
        assert flow.current_step == 1
        assert flow.progress() == (0, 4)
        assert flow.can_access(1)
        assert not flow.can_access(2)

    def test_steps_unlock_in_order(self):
        """Saving a step unlocks the next one only."""
        flow = RegistrationFlow({})
        flow.set_step_data(1, {'name': 'A', 'surname': 'B'})
        assert flow.current_step == 2
        assert flow.can_access(2)
        assert not flow.can_access(3)
        assert not flow.can_access(9)

    def test_dates_stored_as_strings(self):
        """State stays JSON-friendly."""
        store = {}
        RegistrationFlow(store).set_step_data(1, {'date_of_birth': date(2015, 6, 1)})
        assert store[SESSION_KEY]['steps']['1']['date_of_birth'] == '2015-06-01'

    def test_unknown_step(self):
        """Only the four known steps can be saved."""
        with pytest.raises(ValueError):
            RegistrationFlow({}).set_step_data(5, {})

    def test_reset(self):
        """Reset discards all state."""
        store = {}
        flow = RegistrationFlow(store)
        _fill(flow)
        assert flow.is_complete()
        flow.reset()
        assert SESSION_KEY not in store
        assert flow.current_step == 1


class TestCompleteRegistration:
    """Tests for complete_registration()."""

    def test_creates_student_guardians_and_links(self, app, make_class):
        """Everything is written in one go and the flow is cleared."""
        school_class = make_class()
        store = {}
        flow = RegistrationFlow(store)
        _fill(flow, school_class)

        result = complete_registration(flow)
        assert result['success'], result
        student = Student.query.one()
        assert student.class_id == school_class.id
        assert student.date_of_birth == date(2015, 6, 1)
        assert student.medical_info.allergies == 'Bee stings'
        assert Parent.query.count() == 2
        primary = ParentStudent.query.filter_by(is_primary_contact=True).one()
        assert primary.relationship == 'Mother'
        assert SESSION_KEY not in store

    def test_first_fee_is_billed(self, app, make_class, make_fee_structure):
        """Choosing a fee structure bills the first fee."""
        school_class = make_class()
        structure = make_fee_structure(school_class, amount=750)
        flow = RegistrationFlow({})
        _fill(flow, school_class, {'agreed_terms': True, 'signed_by': 'Z', 'fee_structure_id': structure.id,
                                   'academic_year': '2025', 'term': 1, 'due_date': date(2030, 1, 31)})
        assert complete_registration(flow)['success']
        fee = StudentFee.query.one()
        assert fee.amount_due == 750
        assert fee.status == 'pending'

    def test_fee_needs_due_date(self, app, make_fee_structure):
        """A selected fee without a due date rolls everything back."""
        structure = make_fee_structure()
        flow = RegistrationFlow({})
        _fill(flow, agreement={'agreed_terms': True, 'fee_structure_id': structure.id, 'academic_year': '2025'})
        result = complete_registration(flow)
        assert not result['success']
        assert 'due date' in result['error']
        assert Student.query.count() == 0
        assert Parent.query.count() == 0

    def test_requires_agreement(self, app):
        """The financial agreement must be accepted."""
        flow = RegistrationFlow({})
        _fill(flow, agreement={'agreed_terms': False})
        assert complete_registration(flow)['error'] == 'The financial agreement must be accepted'

    def test_incomplete_flow(self, app):
        """All steps must be done first."""
        flow = RegistrationFlow({})
        flow.set_step_data(1, {'name': 'A', 'surname': 'B'})
        assert complete_registration(flow)['error'] == 'Please complete every registration step first'

    def test_invalid_guardian_rolls_back(self, app):
        """A guardian without contact details aborts the registration."""
        flow = RegistrationFlow({})
        _fill(flow)
        flow.set_step_data(3, {'guardians': [{'relationship': 'Uncle', 'name': 'No', 'surname': 'Phone'}]})
        flow.set_step_data(4, {'agreed_terms': True})
        result = complete_registration(flow)
        assert result['error'].startswith('Guardian:')
        assert Student.query.count() == 0
