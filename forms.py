from flask_wtf import FlaskForm
from wtforms import (StringField, PasswordField, SubmitField, SelectField, SelectMultipleField,
                     IntegerField, DecimalField, DateField, TimeField, TextAreaField, BooleanField)
from wtforms.validators import DataRequired, Optional, Length, NumberRange, Regexp, EqualTo

from app_models import (USER_TYPES, FEE_FREQUENCIES, PAYMENT_METHODS, SchoolClass, Teacher, Subject,
                        Staff, Student, FeeStructure)

EMAIL = Regexp(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', message='Enter a valid email address')
SEX_CHOICES = [('', '-- Select --'), ('Male', 'Male'), ('Female', 'Female')]
TERM_CHOICES = [(1, 'Term 1'), (2, 'Term 2'), (3, 'Term 3')]
NONE_CHOICE = (0, '-- None --')


def form_payload(form):
    """Form data as a plain dict for the data-access functions."""
    return {name: value for name, value in form.data.items() if name not in ('csrf_token', 'submit')}


# Authentication
class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), EMAIL])
    password = PasswordField('Password', validators=[DataRequired()])
    submit = SubmitField('Login')


class RegisterUserForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), EMAIL])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6, max=72)])
    confirm_password = PasswordField('Confirm Password',
                                     validators=[DataRequired(), EqualTo('password', message='Passwords must match')])
    user_type = SelectField('Account Type', choices=[(t, t.title()) for t in USER_TYPES])
    reference_id = IntegerField('Linked Record ID', validators=[DataRequired()])
    submit = SubmitField('Create Account')


# Students and parents
class StudentForm(FlaskForm):
    admission_number = StringField('Admission Number', validators=[Optional(), Length(max=30)])
    name = StringField('First Name(s)', validators=[DataRequired(), Length(max=100)])
    surname = StringField('Surname', validators=[DataRequired(), Length(max=100)])
    preferred_name = StringField('Preferred Name', validators=[Optional(), Length(max=100)])
    date_of_birth = DateField('Date of Birth', validators=[Optional()])
    sex = SelectField('Sex', choices=SEX_CHOICES, validators=[Optional()])
    email = StringField('Email', validators=[Optional(), EMAIL])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    address = TextAreaField('Address', validators=[Optional(), Length(max=300)])
    class_id = SelectField('Class', coerce=int, validators=[Optional()])
    enrolment_date = DateField('Enrolment Date', validators=[Optional()])
    is_active = BooleanField('Active', default=True)
    submit = SubmitField('Save Student')


class MedicalInfoForm(FlaskForm):
    family_doctor = StringField('Family Doctor', validators=[Optional(), Length(max=200)])
    doctor_phone = StringField("Doctor's Phone", validators=[Optional(), Length(max=30)])
    medical_conditions = TextAreaField('Medical Conditions', validators=[Optional()])
    allergies = TextAreaField('Allergies', validators=[Optional()])
    medications = TextAreaField('Regular Medications', validators=[Optional()])
    immunisation_up_to_date = BooleanField('Immunisation up to date')
    notes = TextAreaField('Notes', validators=[Optional()])
    submit = SubmitField('Save Medical Information')


class ParentForm(FlaskForm):
    title = SelectField('Title', choices=[('', '--'), ('Mr', 'Mr'), ('Mrs', 'Mrs'), ('Ms', 'Ms'), ('Dr', 'Dr')],
                        validators=[Optional()])
    name = StringField('First Name(s)', validators=[DataRequired(), Length(max=100)])
    surname = StringField('Surname', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[Optional(), EMAIL])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    occupation = StringField('Occupation', validators=[Optional(), Length(max=100)])
    address = TextAreaField('Address', validators=[Optional(), Length(max=300)])
    submit = SubmitField('Save Parent')


class LinkStudentForm(FlaskForm):
    student_id = SelectField('Student', coerce=int, validators=[DataRequired()])
    relationship = StringField('Relationship', validators=[DataRequired(), Length(max=50)])
    is_primary_contact = BooleanField('Primary contact')
    emergency_contact = BooleanField('Emergency contact')
    authorized_to_pickup = BooleanField('Authorised to collect', default=True)
    submit = SubmitField('Link Student')


# Staff and teachers
class StaffForm(FlaskForm):
    name = StringField('First Name(s)', validators=[DataRequired(), Length(max=100)])
    surname = StringField('Surname', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[DataRequired(), EMAIL])
    phone = StringField('Phone', validators=[DataRequired(), Length(max=30)])
    address = TextAreaField('Address', validators=[Optional(), Length(max=300)])
    gender = SelectField('Gender', choices=SEX_CHOICES, validators=[Optional()])
    position = StringField('Position', validators=[DataRequired(), Length(max=100)])
    department = StringField('Department', validators=[DataRequired(), Length(max=100)])
    employment_type = SelectField('Employment Type', choices=[('full_time', 'Full time'),
                                                              ('part_time', 'Part time'),
                                                              ('contract', 'Contract')])
    role = SelectField('Role', choices=[('teacher', 'Teacher'), ('administrator', 'Administrator'),
                                        ('accountant', 'Accountant'), ('support', 'Support Staff'),
                                        ('admin', 'System Admin')])
    access_level = IntegerField('Access Level', default=1, validators=[Optional(), NumberRange(min=1, max=5)])
    hire_date = DateField('Hire Date', validators=[Optional()])
    manage_students = BooleanField('Manage students')
    manage_staff = BooleanField('Manage staff')
    manage_academics = BooleanField('Manage classes and subjects')
    manage_exams = BooleanField('Manage exams and results')
    manage_fees = BooleanField('Manage fees')
    manage_attendance = BooleanField('Manage attendance')
    manage_report_cards = BooleanField('Manage report cards')
    password = PasswordField('Login Password (leave blank for no account)',
                             validators=[Optional(), Length(min=6, max=72)])
    submit = SubmitField('Save Staff Member')

    permission_fields = ('manage_students', 'manage_staff', 'manage_academics', 'manage_exams',
                         'manage_fees', 'manage_attendance', 'manage_report_cards')

    def staff_payload(self):
        data = form_payload(self)
        data.pop('password', None)
        data['permissions'] = {name: data.pop(name) for name in self.permission_fields}
        return data

    def load_permissions(self, permissions):
        for name in self.permission_fields:
            getattr(self, name).data = bool((permissions or {}).get(name))


class TeacherForm(FlaskForm):
    staff_id = SelectField('Staff Record', coerce=int, validators=[Optional()])
    name = StringField('First Name(s)', validators=[DataRequired(), Length(max=100)])
    surname = StringField('Surname', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[DataRequired(), EMAIL])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    qualification = StringField('Qualification', validators=[Optional(), Length(max=200)])
    specialization = StringField('Specialisation', validators=[Optional(), Length(max=200)])
    experience = IntegerField('Years of Experience', default=0, validators=[Optional(), NumberRange(min=0, max=60)])
    submit = SubmitField('Save Teacher')


# Academics
class ClassForm(FlaskForm):
    name = StringField('Class Name', validators=[DataRequired(), Length(max=100)])
    section = StringField('Section', validators=[DataRequired(), Length(max=50)])
    class_teacher_id = SelectField('Class Teacher', coerce=int, validators=[Optional()])
    teacher_ids = SelectMultipleField('Teachers', coerce=int, validators=[Optional()])
    submit = SubmitField('Save Class')


class SubjectForm(FlaskForm):
    name = StringField('Subject Name', validators=[DataRequired(), Length(max=100)])
    code = StringField('Code', validators=[Optional(), Length(max=20)])
    class_id = SelectField('Class', coerce=int, validators=[DataRequired()])
    description = TextAreaField('Description', validators=[Optional()])
    teacher_ids = SelectMultipleField('Teachers', coerce=int, validators=[Optional()])
    submit = SubmitField('Save Subject')


class ExamForm(FlaskForm):
    name = StringField('Exam Name', validators=[DataRequired(), Length(max=200)])
    description = TextAreaField('Description', validators=[Optional()])
    exam_date = DateField('Exam Date', validators=[DataRequired()])
    start_time = TimeField('Start Time', validators=[Optional()])
    end_time = TimeField('End Time', validators=[Optional()])
    class_id = SelectField('Class', coerce=int, validators=[DataRequired()])
    subject_id = SelectField('Subject', coerce=int, validators=[Optional()])
    academic_year = StringField('Academic Year', validators=[DataRequired(), Length(max=10)])
    term = SelectField('Term', coerce=int, choices=TERM_CHOICES)
    total_marks = IntegerField('Total Marks', default=100, validators=[DataRequired(), NumberRange(min=1)])
    passing_marks = IntegerField('Passing Marks', default=40, validators=[Optional(), NumberRange(min=0)])
    weightage = IntegerField('Weightage (%)', default=100, validators=[Optional(), NumberRange(min=1, max=100)])
    submit = SubmitField('Save Exam')


class TermForm(FlaskForm):
    academic_year = StringField('Academic Year (e.g. 2024-2025)', validators=[DataRequired(), Length(max=10)])
    term = SelectField('Term', coerce=int, choices=TERM_CHOICES)
    start_date = DateField('Start Date', validators=[DataRequired()])
    end_date = DateField('End Date', validators=[DataRequired()])
    is_current = BooleanField('Make this the current term')
    submit = SubmitField('Save Term')


# Fees
class FeeStructureForm(FlaskForm):
    name = StringField('Fee Name', validators=[DataRequired(), Length(max=200)])
    class_id = SelectField('Class', coerce=int, validators=[Optional()])
    amount = DecimalField('Amount', places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    frequency = SelectField('Frequency', choices=[(f, f.title()) for f in FEE_FREQUENCIES], default='termly')
    due_day = IntegerField('Due Day of Month', validators=[Optional(), NumberRange(min=1, max=31)])
    description = TextAreaField('Description', validators=[Optional()])
    is_active = BooleanField('Active', default=True)
    submit = SubmitField('Save Fee Structure')


class AssignFeeForm(FlaskForm):
    fee_structure_id = SelectField('Fee Structure', coerce=int, validators=[DataRequired()])
    academic_year = StringField('Academic Year', validators=[DataRequired(), Length(max=10)])
    term = SelectField('Term', coerce=int, choices=[(0, 'Whole year')] + TERM_CHOICES)
    due_date = DateField('Due Date', validators=[DataRequired()])
    submit = SubmitField('Assign Fee')


class PaymentForm(FlaskForm):
    amount = DecimalField('Amount', places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    payment_date = DateField('Payment Date', validators=[DataRequired()])
    payment_method = SelectField('Payment Method',
                                 choices=[(m, m.replace('_', ' ').title()) for m in PAYMENT_METHODS])
    reference_number = StringField('Reference Number', validators=[Optional(), Length(max=100)])
    notes = TextAreaField('Notes', validators=[Optional()])
    submit = SubmitField('Record Payment')


# Report cards
class GenerateReportCardsForm(FlaskForm):
    class_id = SelectField('Class', coerce=int, validators=[DataRequired()])
    academic_year = StringField('Academic Year', validators=[DataRequired(), Length(max=10)])
    term = SelectField('Term', coerce=int, choices=TERM_CHOICES)
    submit = SubmitField('Generate Report Cards')


class ReportCardCommentsForm(FlaskForm):
    teacher_comments = TextAreaField("Teacher's Comments", validators=[Optional()])
    principal_comments = TextAreaField("Principal's Comments", validators=[Optional()])
    submit = SubmitField('Save Comments')


# Registration wizard
class RegistrationStudentForm(StudentForm):
    submit = SubmitField('Next: Medical Information')


class RegistrationMedicalForm(MedicalInfoForm):
    submit = SubmitField('Next: Parent / Guardian Details')


class RegistrationGuardianForm(FlaskForm):
    relationship = StringField('Relationship', default='Mother', validators=[DataRequired(), Length(max=50)])
    title = StringField('Title', validators=[Optional(), Length(max=20)])
    name = StringField('First Name(s)', validators=[DataRequired(), Length(max=100)])
    surname = StringField('Surname', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[Optional(), EMAIL])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    occupation = StringField('Occupation', validators=[Optional(), Length(max=100)])
    address = TextAreaField('Address', validators=[Optional(), Length(max=300)])

    second_relationship = StringField('Second Guardian Relationship', default='Father',
                                      validators=[Optional(), Length(max=50)])
    second_title = StringField('Title', validators=[Optional(), Length(max=20)])
    second_name = StringField('First Name(s)', validators=[Optional(), Length(max=100)])
    second_surname = StringField('Surname', validators=[Optional(), Length(max=100)])
    second_email = StringField('Email', validators=[Optional(), EMAIL])
    second_phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    second_occupation = StringField('Occupation', validators=[Optional(), Length(max=100)])
    submit = SubmitField('Next: Financial Agreement')

    guardian_fields = ('relationship', 'title', 'name', 'surname', 'email', 'phone', 'occupation')

    def guardians(self):
        primary = {name: getattr(self, name).data for name in self.guardian_fields}
        primary['address'] = self.address.data
        primary.update(is_primary_contact=True, emergency_contact=True, authorized_to_pickup=True)
        guardians = [primary]
        if self.second_name.data and self.second_surname.data:
            second = {name: getattr(self, f'second_{name}').data for name in self.guardian_fields}
            second['address'] = self.address.data
            second.update(is_primary_contact=False, emergency_contact=True, authorized_to_pickup=True)
            guardians.append(second)
        return guardians


class RegistrationAgreementForm(FlaskForm):
    fee_structure_id = SelectField('Fee Structure', coerce=int, validators=[Optional()])
    academic_year = StringField('Academic Year', validators=[Optional(), Length(max=10)])
    term = SelectField('Term', coerce=int, choices=[(0, 'Whole year')] + TERM_CHOICES)
    due_date = DateField('First Payment Due', validators=[Optional()])
    agreed_terms = BooleanField('I accept the school fee terms and conditions', validators=[DataRequired()])
    agreed_liability = BooleanField('I accept liability for the fees of this learner')
    signed_by = StringField('Signed by', validators=[DataRequired(), Length(max=200)])
    submit = SubmitField('Complete Registration')


# Select choices
def class_choices(include_none=True):
    choices = [(c.id, c.display_name) for c in SchoolClass.query.order_by(SchoolClass.name, SchoolClass.section)]
    return [NONE_CHOICE if include_none else (0, '-- Select class --')] + choices


def teacher_choices(include_none=True):
    choices = [(t.id, t.full_name) for t in Teacher.query.order_by(Teacher.surname, Teacher.name)]
    return [NONE_CHOICE] + choices if include_none else choices


def subject_choices(class_id=None):
    query = Subject.query
    if class_id:
        query = query.filter_by(class_id=class_id)
    return [NONE_CHOICE] + [(s.id, f"{s.name} - {s.school_class.display_name}") for s in query.order_by(Subject.name)]


def staff_choices():
    return [NONE_CHOICE] + [(s.id, f"{s.full_name} ({s.staff_number})")
                            for s in Staff.query.order_by(Staff.surname, Staff.name)]


def student_choices():
    return [(0, '-- Select student --')] + [(s.id, f"{s.full_name} ({s.admission_number})")
                                            for s in Student.query.order_by(Student.surname, Student.name)]


def fee_structure_choices(include_none=False):
    choices = [(f.id, f"{f.name} ({f.amount:,.2f})")
               for f in FeeStructure.query.filter_by(is_active=True).order_by(FeeStructure.name)]
    return [(0, '-- No fee now --' if include_none else '-- Select fee --')] + choices
