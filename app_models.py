from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

USER_TYPES = ('admin', 'staff', 'student', 'parent')
ATTENDANCE_STATUSES = ('present', 'absent', 'late', 'half-day')
FEE_FREQUENCIES = ('monthly', 'termly', 'yearly')
FEE_STATUSES = ('pending', 'partial', 'paid', 'overdue')
PAYMENT_METHODS = ('cash', 'bank_transfer', 'card', 'cheque', 'mobile_money')


def _iso(value):
    return value.isoformat() if value is not None else None


class_teachers = db.Table(
    'class_teachers',
    db.Column('class_id', db.Integer, db.ForeignKey('classes.id'), primary_key=True),
    db.Column('teacher_id', db.Integer, db.ForeignKey('teachers.id'), primary_key=True),
)

subject_teachers = db.Table(
    'subject_teachers',
    db.Column('subject_id', db.Integer, db.ForeignKey('subjects.id'), primary_key=True),
    db.Column('teacher_id', db.Integer, db.ForeignKey('teachers.id'), primary_key=True),
)


# Authentication Models
class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), nullable=False, unique=True)
    password = db.Column(db.String(100), nullable=False)  # bcrypt hash
    user_type = db.Column(db.String(20), nullable=False)  # admin, staff, student, parent
    reference_id = db.Column(db.Integer, nullable=False)  # staff.id, students.id or parents.id
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sessions = db.relationship('UserSession', backref='user', cascade='all, delete-orphan')

    __table_args__ = (db.UniqueConstraint('user_type', 'reference_id', name='users_reference_unique'),)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'user_type': self.user_type,
            'reference_id': self.reference_id,
            'is_active': self.is_active,
            'last_login': _iso(self.last_login),
        }


class UserSession(db.Model):
    __tablename__ = 'user_sessions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    token = db.Column(db.Text, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def is_expired(self, now=None):
        return self.expires_at < (now or datetime.utcnow())


# People
class Staff(db.Model):
    __tablename__ = 'staff'
    id = db.Column(db.Integer, primary_key=True)
    staff_number = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False, unique=True)
    phone = db.Column(db.String(30), nullable=False)
    address = db.Column(db.String(300))
    gender = db.Column(db.String(20))
    position = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100), nullable=False)
    employment_type = db.Column(db.String(30), default='full_time')
    role = db.Column(db.String(50), nullable=False)
    permissions = db.Column(db.JSON, default=dict)
    access_level = db.Column(db.Integer, default=1)
    hire_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self):
        return f"{self.name} {self.surname}"

    def to_dict(self):
        return {
            'id': self.id,
            'staff_number': self.staff_number,
            'name': self.name,
            'surname': self.surname,
            'email': self.email,
            'phone': self.phone,
            'position': self.position,
            'department': self.department,
            'employment_type': self.employment_type,
            'role': self.role,
            'permissions': self.permissions or {},
            'access_level': self.access_level,
            'hire_date': _iso(self.hire_date),
            'is_active': self.is_active,
        }


class Teacher(db.Model):
    __tablename__ = 'teachers'
    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True, unique=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30))
    qualification = db.Column(db.String(200))
    specialization = db.Column(db.String(200))
    experience = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    staff = db.relationship('Staff', backref=db.backref('teacher_profile', uselist=False))

    @property
    def full_name(self):
        return f"{self.name} {self.surname}"

    def to_dict(self):
        return {
            'id': self.id,
            'staff_id': self.staff_id,
            'name': self.name,
            'surname': self.surname,
            'email': self.email,
            'phone': self.phone,
            'qualification': self.qualification,
            'specialization': self.specialization,
            'experience': self.experience,
            'classes': [c.display_name for c in self.classes],
            'subjects': [s.name for s in self.subjects],
        }


# Academics
class SchoolClass(db.Model):
    __tablename__ = 'classes'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    section = db.Column(db.String(50), nullable=False)
    class_teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    class_teacher = db.relationship('Teacher', foreign_keys=[class_teacher_id])
    teachers = db.relationship('Teacher', secondary=class_teachers, backref='classes', order_by='Teacher.surname')

    __table_args__ = (db.UniqueConstraint('name', 'section', name='unique_class_name_section'),)

    @property
    def display_name(self):
        return f"{self.name} ({self.section})"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'section': self.section,
            'class_teacher_id': self.class_teacher_id,
            'class_teacher': self.class_teacher.full_name if self.class_teacher else None,
            'teachers': [t.full_name for t in self.teachers],
            'subjects': [s.name for s in self.subjects],
        }


class Subject(db.Model):
    __tablename__ = 'subjects'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20))
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    school_class = db.relationship('SchoolClass', backref=db.backref('subjects', order_by='Subject.name'))
    teachers = db.relationship('Teacher', secondary=subject_teachers, backref='subjects', order_by='Teacher.surname')

    __table_args__ = (db.UniqueConstraint('name', 'class_id', name='unique_subject_class'),)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else None,
            'description': self.description,
            'teachers': [t.full_name for t in self.teachers],
        }


class Student(db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    admission_number = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    preferred_name = db.Column(db.String(100))
    date_of_birth = db.Column(db.Date, nullable=True)
    sex = db.Column(db.String(20))
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    address = db.Column(db.String(300))
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=True, index=True)
    enrolment_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    school_class = db.relationship('SchoolClass', backref='students')
    medical_info = db.relationship('StudentMedicalInfo', backref='student', uselist=False,
                                   cascade='all, delete-orphan')

    @property
    def full_name(self):
        return f"{self.name} {self.surname}"

    def to_dict(self):
        return {
            'id': self.id,
            'admission_number': self.admission_number,
            'name': self.name,
            'surname': self.surname,
            'preferred_name': self.preferred_name,
            'date_of_birth': _iso(self.date_of_birth),
            'sex': self.sex,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else None,
            'enrolment_date': _iso(self.enrolment_date),
            'is_active': self.is_active,
        }


class StudentMedicalInfo(db.Model):
    __tablename__ = 'student_medical_info'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, unique=True)
    family_doctor = db.Column(db.String(200))
    doctor_phone = db.Column(db.String(30))
    medical_conditions = db.Column(db.Text)
    allergies = db.Column(db.Text)
    medications = db.Column(db.Text)
    immunisation_up_to_date = db.Column(db.Boolean, default=False)
    notes = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'family_doctor': self.family_doctor,
            'doctor_phone': self.doctor_phone,
            'medical_conditions': self.medical_conditions,
            'allergies': self.allergies,
            'medications': self.medications,
            'immunisation_up_to_date': self.immunisation_up_to_date,
            'notes': self.notes,
        }


class Parent(db.Model):
    __tablename__ = 'parents'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(20))
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    occupation = db.Column(db.String(100))
    address = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    links = db.relationship('ParentStudent', backref='parent', cascade='all, delete-orphan')

    @property
    def full_name(self):
        return f"{self.name} {self.surname}"

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'name': self.name,
            'surname': self.surname,
            'email': self.email,
            'phone': self.phone,
            'occupation': self.occupation,
            'address': self.address,
            'children': [link.student.full_name for link in self.links],
        }


class ParentStudent(db.Model):
    __tablename__ = 'parent_student_relations'
    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('parents.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    relationship = db.Column(db.String(50), nullable=False)
    is_primary_contact = db.Column(db.Boolean, default=False)
    emergency_contact = db.Column(db.Boolean, default=False)
    authorized_to_pickup = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    student = db.relationship('Student', backref=db.backref('parent_links', cascade='all, delete-orphan'))

    __table_args__ = (db.UniqueConstraint('parent_id', 'student_id', name='unique_parent_student_relation'),)


class TermConfig(db.Model):
    __tablename__ = 'term_config'
    id = db.Column(db.Integer, primary_key=True)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_current = db.Column(db.Boolean, default=False)

    __table_args__ = (db.UniqueConstraint('academic_year', 'term', name='unique_term_config'),)

    @property
    def label(self):
        return f"{self.academic_year} Term {self.term}"

    def to_dict(self):
        return {
            'id': self.id,
            'academic_year': self.academic_year,
            'term': self.term,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'is_current': self.is_current,
        }


class Exam(db.Model):
    __tablename__ = 'exams'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    exam_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time)
    end_time = db.Column(db.Time)
    total_marks = db.Column(db.Integer, default=100)
    passing_marks = db.Column(db.Integer, default=40)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=True)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.Integer, nullable=False)
    weightage = db.Column(db.Integer, default=100)  # percentage weight in the subject grade
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    school_class = db.relationship('SchoolClass', backref='exams')
    subject = db.relationship('Subject', backref='exams')
    results = db.relationship('ExamResult', backref='exam', cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('name', 'class_id', 'subject_id', 'academic_year', name='unique_exam_class_subject'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'exam_date': _iso(self.exam_date),
            'start_time': self.start_time.strftime('%H:%M') if self.start_time else None,
            'end_time': self.end_time.strftime('%H:%M') if self.end_time else None,
            'total_marks': self.total_marks,
            'passing_marks': self.passing_marks,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else None,
            'subject_id': self.subject_id,
            'subject_name': self.subject.name if self.subject else None,
            'academic_year': self.academic_year,
            'term': self.term,
            'weightage': self.weightage,
        }


class ExamResult(db.Model):
    __tablename__ = 'exam_results'
    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exams.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    marks_obtained = db.Column(db.Float)
    grade = db.Column(db.String(10))
    status = db.Column(db.String(20), default='pending')  # pending, passed, failed
    comments = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = db.relationship('Student', backref='exam_results')

    __table_args__ = (db.UniqueConstraint('exam_id', 'student_id', name='unique_exam_result'),)

    def to_dict(self):
        return {
            'id': self.id,
            'exam_id': self.exam_id,
            'student_id': self.student_id,
            'student_name': self.student.full_name if self.student else None,
            'marks_obtained': self.marks_obtained,
            'grade': self.grade,
            'status': self.status,
            'comments': self.comments,
        }


class GradeScale(db.Model):
    __tablename__ = 'grade_system'
    id = db.Column(db.Integer, primary_key=True)
    grade = db.Column(db.String(5), nullable=False)
    min_percentage = db.Column(db.Float, nullable=False)
    max_percentage = db.Column(db.Float, nullable=False)
    points = db.Column(db.Float)
    description = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True)

    __table_args__ = (db.UniqueConstraint('min_percentage', 'max_percentage', name='unique_grade_range'),)


# Fee Management
class FeeStructure(db.Model):
    __tablename__ = 'fee_structure'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=True, index=True)
    amount = db.Column(db.Float, nullable=False)
    frequency = db.Column(db.String(20), default='termly')
    due_day = db.Column(db.Integer)  # day of month
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    school_class = db.relationship('SchoolClass', backref='fee_structures')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else 'All classes',
            'amount': self.amount,
            'frequency': self.frequency,
            'due_day': self.due_day,
            'description': self.description,
            'is_active': self.is_active,
        }


class StudentFee(db.Model):
    __tablename__ = 'student_fees'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    fee_structure_id = db.Column(db.Integer, db.ForeignKey('fee_structure.id'), nullable=False)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.Integer)
    amount_due = db.Column(db.Float, nullable=False)
    amount_paid = db.Column(db.Float, default=0.0)
    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), default='pending', index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    student = db.relationship('Student', backref='fees')
    fee_structure = db.relationship('FeeStructure', backref='student_fees')
    payments = db.relationship('FeePayment', backref='student_fee', cascade='all, delete-orphan',
                               order_by='FeePayment.payment_date')

    @property
    def balance(self):
        return max(0.0, round((self.amount_due or 0) - (self.amount_paid or 0), 2))

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.full_name if self.student else None,
            'admission_number': self.student.admission_number if self.student else None,
            'fee_structure_id': self.fee_structure_id,
            'fee_name': self.fee_structure.name if self.fee_structure else None,
            'academic_year': self.academic_year,
            'term': self.term,
            'amount_due': self.amount_due,
            'amount_paid': self.amount_paid,
            'balance': self.balance,
            'due_date': _iso(self.due_date),
            'status': self.status,
        }


class FeePayment(db.Model):
    __tablename__ = 'fee_payments'
    id = db.Column(db.Integer, primary_key=True)
    student_fee_id = db.Column(db.Integer, db.ForeignKey('student_fees.id'), nullable=False)
    receipt_no = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    payment_date = db.Column(db.Date, nullable=False, index=True)
    payment_method = db.Column(db.String(50), nullable=False)
    reference_number = db.Column(db.String(100), index=True)
    received_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    receiver = db.relationship('Staff')

    def to_dict(self):
        student = self.student_fee.student if self.student_fee else None
        return {
            'id': self.id,
            'receipt_no': self.receipt_no,
            'student_fee_id': self.student_fee_id,
            'student_name': student.full_name if student else None,
            'admission_number': student.admission_number if student else None,
            'fee_name': self.student_fee.fee_structure.name if self.student_fee else None,
            'amount': self.amount,
            'payment_date': _iso(self.payment_date),
            'payment_method': self.payment_method,
            'reference_number': self.reference_number,
            'received_by': self.receiver.full_name if self.receiver else None,
            'notes': self.notes,
        }


# Attendance
class StudentAttendance(db.Model):
    __tablename__ = 'student_attendance'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='present')
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=True)
    period = db.Column(db.Integer)
    remarks = db.Column(db.Text)
    recorded_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    student = db.relationship('Student', backref='attendance_records')
    school_class = db.relationship('SchoolClass')
    subject = db.relationship('Subject')
    recorder = db.relationship('Staff')

    __table_args__ = (
        db.UniqueConstraint('student_id', 'date', 'subject_id', name='unique_student_attendance'),
        db.CheckConstraint("status IN ('present', 'absent', 'late', 'half-day')", name='attendance_status_check'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.full_name if self.student else None,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else None,
            'date': _iso(self.date),
            'status': self.status,
            'subject_id': self.subject_id,
            'subject_name': self.subject.name if self.subject else None,
            'period': self.period,
            'remarks': self.remarks,
            'recorded_by': self.recorder.full_name if self.recorder else None,
        }


# Report Cards
class ReportCard(db.Model):
    __tablename__ = 'report_cards'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.Integer, nullable=False)
    overall_grade = db.Column(db.String(5))
    total_percentage = db.Column(db.Float)
    position_in_class = db.Column(db.Integer)
    total_marks_obtained = db.Column(db.Float)
    total_max_marks = db.Column(db.Float)
    attendance_percentage = db.Column(db.Float)
    teacher_comments = db.Column(db.Text)
    principal_comments = db.Column(db.Text)
    is_published = db.Column(db.Boolean, default=False)
    published_at = db.Column(db.DateTime)
    generated_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    generated_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = db.relationship('Student', backref='report_cards')
    school_class = db.relationship('SchoolClass')
    subjects = db.relationship('ReportCardSubject', backref='report_card', cascade='all, delete-orphan',
                               order_by='ReportCardSubject.id')

    __table_args__ = (
        db.UniqueConstraint('student_id', 'class_id', 'academic_year', 'term', name='unique_report_card'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.full_name if self.student else None,
            'admission_number': self.student.admission_number if self.student else None,
            'class_id': self.class_id,
            'class_name': self.school_class.display_name if self.school_class else None,
            'academic_year': self.academic_year,
            'term': self.term,
            'overall_grade': self.overall_grade,
            'total_percentage': self.total_percentage,
            'position_in_class': self.position_in_class,
            'total_marks_obtained': self.total_marks_obtained,
            'total_max_marks': self.total_max_marks,
            'attendance_percentage': self.attendance_percentage,
            'teacher_comments': self.teacher_comments,
            'principal_comments': self.principal_comments,
            'is_published': self.is_published,
            'published_at': _iso(self.published_at),
            'subjects': [s.to_dict() for s in self.subjects],
        }


class ReportCardSubject(db.Model):
    __tablename__ = 'report_card_subjects'
    id = db.Column(db.Integer, primary_key=True)
    report_card_id = db.Column(db.Integer, db.ForeignKey('report_cards.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    marks_obtained = db.Column(db.Float)
    max_marks = db.Column(db.Float)
    percentage = db.Column(db.Float)
    grade = db.Column(db.String(5))
    grade_point = db.Column(db.Float)
    teacher_comments = db.Column(db.Text)

    subject = db.relationship('Subject')

    __table_args__ = (db.UniqueConstraint('report_card_id', 'subject_id', name='unique_report_card_subject'),)

    def to_dict(self):
        return {
            'subject_id': self.subject_id,
            'subject_name': self.subject.name if self.subject else None,
            'marks_obtained': self.marks_obtained,
            'max_marks': self.max_marks,
            'percentage': self.percentage,
            'grade': self.grade,
            'grade_point': self.grade_point,
            'teacher_comments': self.teacher_comments,
        }
