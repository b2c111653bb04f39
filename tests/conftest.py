"""Shared fixtures: an app on an in-memory database, a client, and record factories."""
import itertools

import pytest

import auth_service
import class_data
import exam_data
import fee_data
import staff_data
import student_data
from app import create_app
from app_models import db, SchoolClass, Subject, Student, Parent, Staff, Teacher, Exam, FeeStructure
from grading import seed_default_grade_scale

PASSWORD = 'secret-pass-1'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_default_grade_scale()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sequence():
    return itertools.count(1)


@pytest.fixture
def make_class(app, sequence):
    def _make(name=None, section='A', **extra):
        result = class_data.create_class({'name': name or f'Grade {next(sequence)}', 'section': section, **extra})
        assert result['success'], result
        return db.session.get(SchoolClass, result['data']['id'])
    return _make


@pytest.fixture
def make_subject(app, sequence):
    def _make(school_class, name=None, **extra):
        result = class_data.create_subject({'name': name or f'Subject {next(sequence)}',
                                            'class_id': school_class.id, **extra})
        assert result['success'], result
        return db.session.get(Subject, result['data']['id'])
    return _make


@pytest.fixture
def make_teacher(app, sequence):
    def _make(**extra):
        n = next(sequence)
        data = {'name': 'Teacher', 'surname': f'Number{n}', 'email': f'teacher{n}@school.test'}
        data.update(extra)
        result = staff_data.create_teacher(data)
        assert result['success'], result
        return db.session.get(Teacher, result['data']['id'])
    return _make


@pytest.fixture
def make_student(app, sequence):
    def _make(school_class=None, **extra):
        n = next(sequence)
        data = {'name': 'Learner', 'surname': f'Surname{n}',
                'class_id': school_class.id if school_class else None}
        data.update(extra)
        result = student_data.create_student(data)
        assert result['success'], result
        return db.session.get(Student, result['data']['id'])
    return _make


@pytest.fixture
def make_parent(app, sequence):
    def _make(**extra):
        n = next(sequence)
        data = {'name': 'Parent', 'surname': f'Family{n}', 'phone': f'0820000{n:03d}'}
        data.update(extra)
        result = student_data.create_parent(data)
        assert result['success'], result
        return db.session.get(Parent, result['data']['id'])
    return _make


def _staff_data(n, **extra):
    data = {
        'name': 'Staff',
        'surname': f'Member{n}',
        'email': f'staff{n}@school.test',
        'phone': '0110000000',
        'position': 'Teacher',
        'department': 'Academics',
        'role': 'teacher',
    }
    data.update(extra)
    return data


@pytest.fixture
def make_staff(app, sequence):
    def _make(**extra):
        result = staff_data.create_staff(_staff_data(next(sequence), **extra))
        assert result['success'], result
        return db.session.get(Staff, result['data']['id'])
    return _make


@pytest.fixture
def make_exam(app, sequence):
    def _make(school_class, subject=None, **extra):
        data = {
            'name': f'Exam {next(sequence)}',
            'exam_date': '2024-03-15',
            'class_id': school_class.id,
            'subject_id': subject.id if subject else None,
            'academic_year': '2024',
            'term': 1,
            'total_marks': 100,
            'passing_marks': 40,
        }
        data.update(extra)
        result = exam_data.create_exam(data)
        assert result['success'], result
        return db.session.get(Exam, result['data']['id'])
    return _make


@pytest.fixture
def make_fee_structure(app, sequence):
    def _make(school_class=None, amount=1000.0, **extra):
        data = {'name': f'Tuition {next(sequence)}', 'amount': amount,
                'class_id': school_class.id if school_class else None, 'frequency': 'termly'}
        data.update(extra)
        result = fee_data.create_fee_structure(data)
        assert result['success'], result
        return db.session.get(FeeStructure, result['data']['id'])
    return _make


@pytest.fixture
def make_account(app, sequence):
    """Create a login: staff accounts through the staff module, others against a record."""
    def _make(user_type='admin', reference=None, permissions=None, password=PASSWORD):
        n = next(sequence)
        if user_type in ('admin', 'staff'):
            role = 'admin' if user_type == 'admin' else 'teacher'
            result = staff_data.create_staff_with_user(
                _staff_data(n, email=f'user{n}@school.test', role=role, permissions=permissions or {}),
                password)
            assert result['success'], result
            return result['data']['email']
        email = f'{user_type}{n}@school.test'
        result = auth_service.register(email, password, user_type, reference.id)
        assert result['success'], result
        return email
    return _make


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        response = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login


@pytest.fixture
def admin_client(client, make_account, login):
    login(make_account('admin'))
    return client
