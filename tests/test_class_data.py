"""Tests for classes, subjects and teacher assignments."""
import attendance_data
import class_data
import exam_data
import report_card_data
import student_data


class TestClasses:
    """Tests for create_class() / update_class() / delete_class()."""

    def test_class_teacher_joins_teacher_list(self, app, make_teacher):
        """The class teacher is always among the class's teachers."""
        class_teacher, other = make_teacher(), make_teacher()
        result = class_data.create_class({'name': 'Grade 4', 'section': 'B',
                                          'class_teacher_id': class_teacher.id, 'teacher_ids': [other.id]})
        assert result['success']
        assert result['data']['class_teacher'] == class_teacher.full_name
        assert set(result['data']['teachers']) == {class_teacher.full_name, other.full_name}

    def test_duplicate_name_and_section(self, app, make_class):
        """Name and section are unique together, ignoring case."""
        make_class('Grade 5', 'A')
        result = class_data.create_class({'name': 'grade 5', 'section': 'a'})
        assert result['error'] == 'A class with this name and section already exists'
        assert class_data.create_class({'name': 'Grade 5', 'section': 'B'})['success']

    def test_unknown_teacher_rejected(self, app):
        """Teacher ids must exist."""
        result = class_data.create_class({'name': 'Grade 1', 'section': 'A', 'teacher_ids': [99]})
        assert result['error'] == 'One or more selected teachers do not exist'

    def test_update_can_keep_own_name(self, app, make_class):
        """Updating a class does not clash with itself."""
        school_class = make_class('Grade 6', 'A')
        assert class_data.update_class(school_class.id, {'name': 'Grade 6', 'section': 'A'})['success']

    def test_delete_refused_with_students(self, app, make_class, make_student):
        """Classes with students cannot be deleted."""
        school_class = make_class()
        make_student(school_class)
        assert 'reassign students' in class_data.delete_class(school_class.id)['error']

    def test_delete_refused_with_exams(self, app, make_class, make_exam):
        """Classes with exams cannot be deleted."""
        school_class = make_class()
        make_exam(school_class)
        assert 'delete its exams' in class_data.delete_class(school_class.id)['error']

    def test_delete_refused_with_attendance_history(self, app, make_class, make_student):
        """Attendance taken in a class keeps it from being deleted after students move on."""
        old_class, new_class = make_class(), make_class()
        student = make_student(old_class)
        attendance_data.mark_attendance({'student_id': student.id, 'date': '2024-02-01', 'status': 'present'})
        student_data.update_student(student.id, {'class_id': new_class.id})

        result = class_data.delete_class(old_class.id)
        assert result['error'] == 'Cannot delete class with attendance records. Please delete its attendance first.'
        assert class_data.get_class(old_class.id) is not None
        assert len(attendance_data.get_attendance_records({'student_id': student.id})) == 1

    def test_delete_refused_with_report_cards(self, app, make_class, make_subject, make_student, make_exam):
        """Report cards keep their class even once its exams are gone."""
        old_class, new_class = make_class(), make_class()
        student = make_student(old_class)
        exam = make_exam(old_class, make_subject(old_class))
        exam_data.record_exam_result(exam.id, student.id, 70)
        report_card_data.generate_report_cards(old_class.id, '2024', 1)
        exam_data.delete_exam(exam.id)
        student_data.update_student(student.id, {'class_id': new_class.id})

        result = class_data.delete_class(old_class.id)
        assert result['error'] == 'Cannot delete class with report cards on record.'

    def test_delete_refused_with_fee_structures(self, app, make_class, make_fee_structure):
        """A class-specific fee structure must be removed first."""
        school_class = make_class()
        make_fee_structure(school_class)
        assert 'fee structures' in class_data.delete_class(school_class.id)['error']

    def test_delete_removes_subjects(self, app, make_class, make_subject):
        """An empty class is deleted along with its subjects."""
        school_class = make_class()
        make_subject(school_class)
        assert class_data.delete_class(school_class.id)['success']
        assert class_data.get_subjects() == []

    def test_student_counts(self, app, make_class, make_student):
        """Counts include classes with no students."""
        full, empty = make_class('Grade 1'), make_class('Grade 2')
        make_student(full)
        make_student(full)
        counts = {row['class'].id: row['student_count'] for row in class_data.get_classes_with_student_count()}
        assert counts == {full.id: 2, empty.id: 0}


class TestSubjects:
    """Tests for subjects."""

    def test_subject_unique_per_class(self, app, make_class, make_subject):
        """The same subject name may repeat across classes, not within one."""
        first, second = make_class(), make_class()
        make_subject(first, 'Mathematics')
        assert class_data.create_subject({'name': 'mathematics', 'class_id': first.id})['error'] == \
            'This subject already exists for the selected class'
        assert class_data.create_subject({'name': 'Mathematics', 'class_id': second.id})['success']

    def test_subject_requires_class(self, app):
        """A subject without a class is rejected."""
        assert class_data.create_subject({'name': 'Art', 'class_id': 0})['error'] == \
            'Subject name and class are required'

    def test_delete_refused_with_exams(self, app, make_class, make_subject, make_exam):
        """Subjects used by exams are kept."""
        school_class = make_class()
        subject = make_subject(school_class)
        make_exam(school_class, subject)
        assert 'delete its exams' in class_data.delete_subject(subject.id)['error']

    def test_filter_by_class(self, app, make_class, make_subject):
        """Subjects can be listed per class."""
        first, second = make_class(), make_class()
        make_subject(first)
        make_subject(second)
        assert len(class_data.get_subjects(class_id=first.id)) == 1
