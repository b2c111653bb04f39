"""Smoke tests for the HTML pages, exports and JSON endpoints."""
import pytest

import exam_data
import fee_data
import report_card_data
from app_models import ExamResult, ParentStudent, Student


@pytest.fixture
def school(app, make_class, make_subject, make_student, make_exam, make_fee_structure):
    """One class with a subject, an exam, two students and a billed fee."""
    school_class = make_class('Grade 7')
    subject = make_subject(school_class, 'Mathematics')
    first = make_student(school_class, surname='Ngcobo')
    second = make_student(school_class)
    exam = make_exam(school_class, subject)
    structure = make_fee_structure(school_class)
    fee_data.assign_fee_structure(structure.id, '2024', 1, '2030-01-31')
    return {'class': school_class, 'subject': subject, 'students': [first, second],
            'exam': exam, 'structure': structure}


class TestPages:
    """Every list and detail page renders for an administrator."""

    @pytest.mark.parametrize('path', [
        '/', '/students', '/parents', '/staff', '/staff/statistics', '/teachers', '/classes',
        '/subjects', '/exams', '/terms', '/fees', '/fees/structures', '/fees/students',
        '/fees/payments', '/attendance', '/attendance/records', '/attendance/monthly',
        '/attendance/stats', '/report-cards', '/report-cards/generate', '/register',
        '/students/add', '/staff/add', '/classes/add', '/exams/add', '/fees/assign',
    ])
    def test_page_renders(self, admin_client, school, path):
        """The page returns 200 with the navigation bar."""
        response = admin_client.get(path)
        assert response.status_code == 200
        assert b'navbar' in response.data

    def test_detail_pages(self, admin_client, school):
        """Student, class and exam pages render for existing records."""
        student = school['students'][0]
        assert admin_client.get(f'/students/{student.id}').status_code == 200
        assert admin_client.get(f"/classes/{school['class'].id}").status_code == 200
        assert admin_client.get(f"/exams/{school['exam'].id}/results").status_code == 200
        assert admin_client.get(f"/exams/{school['exam'].id}/statistics").status_code == 200

    def test_missing_record_is_404(self, admin_client):
        """Unknown ids render the not-found page."""
        response = admin_client.get('/students/999')
        assert response.status_code == 404
        assert b'Page not found' in response.data

    def test_attendance_register_lists_class(self, admin_client, school):
        """Loading a class register shows its students."""
        response = admin_client.get(f"/attendance?class_id={school['class'].id}&date=2024-03-15")
        assert response.status_code == 200
        assert b'Ngcobo' in response.data

    def test_record_payment_page(self, admin_client, school):
        """The payment form shows the outstanding balance."""
        student_fee = fee_data.get_student_fees()[0]
        response = admin_client.get(f'/fees/students/{student_fee.id}/pay')
        assert response.status_code == 200
        assert b'1,000.00' in response.data


class TestForms:
    """Posting the HTML forms."""

    def test_exam_results_post(self, admin_client, school):
        """Marks posted from the results sheet are saved and graded."""
        exam = school['exam']
        first, second = school['students']
        response = admin_client.post(f'/exams/{exam.id}/results',
                                     data={f'marks_{first.id}': '75', f'marks_{second.id}': ''})
        assert response.status_code == 302
        result = ExamResult.query.filter_by(exam_id=exam.id, student_id=first.id).one()
        assert result.marks_obtained == 75
        assert result.status == 'passed'

    def test_mark_attendance_post(self, admin_client, school):
        """The class register saves one record per marked student."""
        first, second = school['students']
        response = admin_client.post('/attendance', data={
            'class_id': school['class'].id,
            'date': '2024-03-15',
            f'status_{first.id}': 'present',
            f'status_{second.id}': 'absent',
        })
        assert response.status_code == 302
        assert len(first.attendance_records) == 1

    def test_record_payment_post(self, admin_client, school):
        """A payment redirects to its receipt."""
        student_fee = fee_data.get_student_fees()[0]
        response = admin_client.post(f'/fees/students/{student_fee.id}/pay', data={
            'amount': '400',
            'payment_date': '2024-02-01',
            'payment_method': 'cash',
        })
        assert response.status_code == 302
        assert '/receipt' in response.headers['Location']
        assert admin_client.get(response.headers['Location']).status_code == 200
        assert fee_data.get_student_fee(student_fee.id).status == 'partial'


class TestExports:
    """CSV and JSON downloads."""

    def test_students_csv(self, admin_client, school):
        """The student export is an attachment with a header row."""
        response = admin_client.get('/students/export?format=csv')
        assert response.status_code == 200
        assert 'attachment; filename=' in response.headers['Content-Disposition']
        assert '.csv' in response.headers['Content-Disposition']
        assert b'Ngcobo' in response.data

    def test_classes_json(self, admin_client, school):
        """The class export can be JSON."""
        response = admin_client.get('/classes/export?format=json')
        assert response.status_code == 200
        assert response.mimetype == 'application/json'

    def test_payments_csv(self, admin_client, school):
        """Payments export with the date filters applied."""
        response = admin_client.get('/fees/payments/export?format=csv&start=2024-01-01&end=2024-12-31')
        assert response.status_code == 200
        assert '.csv' in response.headers['Content-Disposition']

    def test_unknown_format(self, admin_client, school):
        """Unsupported export formats are rejected."""
        assert admin_client.get('/students/export?format=xlsx').status_code == 400

    def test_report_card_pdf(self, admin_client, school):
        """A generated card downloads as a PDF."""
        exam_data.record_exam_result(school['exam'].id, school['students'][0].id, 80)
        report_card_data.generate_report_cards(school['class'].id, '2024', 1)
        card = report_card_data.get_report_cards(class_id=school['class'].id)[0]
        response = admin_client.get(f'/report-cards/{card.id}/pdf')
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        assert admin_client.get(f'/report-cards/{card.id}').status_code == 200
        assert admin_client.get(f'/report-cards/{card.id}/print').status_code == 200


class TestRegistrationWizard:
    """The four-step registration wizard."""

    def test_steps_must_be_completed_in_order(self, admin_client, school):
        """Skipping ahead redirects back to the current step."""
        response = admin_client.get('/students/register/step/3')
        assert response.status_code == 302
        assert response.headers['Location'].endswith('/students/register/step/1')

    def test_full_registration(self, admin_client, school):
        """Walking every step creates the student and links the guardian."""
        assert admin_client.get('/students/register').status_code == 302
        assert admin_client.get('/students/register/step/1').status_code == 200

        response = admin_client.post('/students/register/step/1', data={
            'name': 'Sipho', 'surname': 'Dlamini', 'sex': 'Male',
            'class_id': school['class'].id, 'is_active': 'y',
        })
        assert response.headers['Location'].endswith('/students/register/step/2')

        response = admin_client.post('/students/register/step/2', data={'allergies': 'Peanuts'})
        assert response.headers['Location'].endswith('/students/register/step/3')

        response = admin_client.post('/students/register/step/3', data={
            'relationship': 'Mother', 'name': 'Thandi', 'surname': 'Dlamini', 'phone': '0821234567',
        })
        assert response.headers['Location'].endswith('/students/register/step/4')
        assert admin_client.get('/students/register/step/4').status_code == 200

        response = admin_client.post('/students/register/step/4', data={
            'fee_structure_id': 0, 'term': 0, 'agreed_terms': 'y', 'signed_by': 'Thandi Dlamini',
        })
        assert response.status_code == 302
        student = Student.query.filter_by(name='Sipho').one()
        assert response.headers['Location'].endswith(f'/students/{student.id}')
        assert ParentStudent.query.filter_by(student_id=student.id).count() == 1

    def test_agreement_required(self, admin_client, school):
        """The last step re-renders until the terms are accepted."""
        admin_client.post('/students/register/step/1', data={
            'name': 'Lerato', 'surname': 'Mokoena', 'sex': '', 'class_id': 0, 'is_active': 'y'})
        admin_client.post('/students/register/step/2', data={})
        admin_client.post('/students/register/step/3', data={
            'relationship': 'Father', 'name': 'Pule', 'surname': 'Mokoena', 'email': 'pule@home.test'})
        response = admin_client.post('/students/register/step/4', data={
            'fee_structure_id': 0, 'term': 0, 'signed_by': 'Pule Mokoena'})
        assert response.status_code == 200
        assert Student.query.filter_by(name='Lerato').count() == 0


class TestJsonApi:
    """JSON endpoints behind the same permission guards."""

    def test_api_classes(self, admin_client, school):
        """Classes come back with their student counts."""
        body = admin_client.get('/api/classes').get_json()
        assert body['success'] is True
        assert body['data'][0]['student_count'] == 2

    def test_api_exam_results_post_and_read(self, admin_client, school):
        """Results can be posted and read back as JSON."""
        exam = school['exam']
        first = school['students'][0]
        response = admin_client.post(f'/api/exams/{exam.id}/results',
                                     json={'results': [{'student_id': first.id, 'marks_obtained': 55}]})
        assert response.status_code == 200
        body = admin_client.get(f'/api/exams/{exam.id}/results').get_json()
        assert body['results'][0]['marks_obtained'] == 55
        assert body['statistics']['count'] == 1

    def test_api_exam_results_with_bad_student_ids(self, admin_client, school):
        """Rows with missing or unknown ids are reported per row and the rest are saved."""
        exam = school['exam']
        first_id, second_id = (student.id for student in school['students'])
        response = admin_client.post(f'/api/exams/{exam.id}/results', json={'results': [
            {'student_id': None, 'marks_obtained': 50},
            {'student_id': 'abc', 'marks_obtained': 50},
            {'student_id': first_id, 'marks_obtained': 500},
            {'student_id': second_id, 'marks_obtained': 61},
        ]})
        assert response.status_code == 200
        body = response.get_json()
        assert body['data']['saved'] == 1
        assert body['data']['errors'] == {
            'None': 'Student not found',
            'abc': 'Student not found',
            str(first_id): 'Marks must be between 0 and 100',
        }

    def test_api_exam_results_missing_exam(self, admin_client):
        """An unknown exam is a JSON 404."""
        response = admin_client.get('/api/exams/999/results')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Exam not found'

    def test_api_fee_dashboard(self, admin_client, school):
        """The fee dashboard totals are exposed as JSON."""
        body = admin_client.get('/api/fees/dashboard').get_json()
        assert body['data']['expected'] == 2000.0
        assert body['data']['status_counts']['pending'] == 2
