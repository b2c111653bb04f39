"""Tests for exams, result entry and statistics."""
import exam_data


class TestCreateExam:
    """Tests for create_exam() / update_exam()."""

    def test_defaults_applied(self, app, make_class):
        """Total, passing marks and weightage default when omitted."""
        school_class = make_class()
        result = exam_data.create_exam({'name': 'Test 1', 'exam_date': '2024-02-01',
                                        'class_id': school_class.id, 'academic_year': '2024', 'term': 1})
        assert result['success']
        assert (result['data']['total_marks'], result['data']['passing_marks'],
                result['data']['weightage']) == (100, 40, 100)

    def test_subject_must_belong_to_class(self, app, make_class, make_subject):
        """An exam subject from another class is rejected."""
        first, second = make_class(), make_class()
        subject = make_subject(second)
        result = exam_data.create_exam({'name': 'X', 'exam_date': '2024-02-01', 'class_id': first.id,
                                        'subject_id': subject.id, 'academic_year': '2024', 'term': 1})
        assert result['error'] == 'Selected subject does not belong to the class'

    def test_validation_messages(self, app, make_class):
        """Out-of-range values are reported."""
        school_class = make_class()
        base = {'name': 'X', 'exam_date': '2024-02-01', 'class_id': school_class.id, 'academic_year': '2024'}
        assert exam_data.create_exam(dict(base, term=4))['error'] == 'Term must be 1, 2 or 3'
        assert exam_data.create_exam(dict(base, term=1, passing_marks=120))['error'] == \
            'Passing marks must be between 0 and the total marks'
        assert exam_data.create_exam(dict(base, term=1, start_time='10:00', end_time='09:00'))['error'] == \
            'End time must be after start time'
        assert exam_data.create_exam(dict(base, term=1, exam_date='01/02/2024'))['error'] == \
            'Invalid date, time or number supplied'
        assert exam_data.create_exam({'name': 'X'})['error'].startswith('Name, exam date')

    def test_duplicate_exam(self, app, make_class, make_exam):
        """Name, class, subject and year identify an exam."""
        school_class = make_class()
        make_exam(school_class, name='Final')
        result = exam_data.create_exam({'name': 'Final', 'exam_date': '2024-06-01', 'class_id': school_class.id,
                                        'academic_year': '2024', 'term': 2})
        assert not result['success']
        assert 'already exists' in result['error']

    def test_filters(self, app, make_class, make_exam):
        """Exams can be filtered by class and term."""
        first, second = make_class(), make_class()
        make_exam(first, term=1)
        make_exam(first, term=2)
        make_exam(second, term=1)
        assert len(exam_data.get_exams(class_id=first.id)) == 2
        assert len(exam_data.get_exams(term=1)) == 2


class TestResults:
    """Tests for record_exam_result() / record_exam_results_bulk()."""

    def test_grade_and_status_derived(self, app, make_class, make_student, make_exam):
        """Grade comes from the scale, status from the passing mark."""
        school_class = make_class()
        student = make_student(school_class)
        exam = make_exam(school_class, total_marks=50, passing_marks=20)
        result = exam_data.record_exam_result(exam.id, student.id, 45)
        assert result['data']['grade'] == 'A+'
        assert result['data']['status'] == 'passed'

        result = exam_data.record_exam_result(exam.id, student.id, 10)
        assert result['data']['status'] == 'failed'
        assert result['data']['grade'] == 'F'
        assert len(exam_data.get_exam_results(exam.id)) == 1

    def test_manual_grade_kept(self, app, make_class, make_student, make_exam):
        """A grade given explicitly is not recalculated."""
        school_class = make_class()
        student = make_student(school_class)
        exam = make_exam(school_class)
        result = exam_data.record_exam_result(exam.id, student.id, 50, grade='B+')
        assert result['data']['grade'] == 'B+'

    def test_marks_range_and_class_checked(self, app, make_class, make_student, make_exam):
        """Marks above the total and students from other classes are refused."""
        school_class, other = make_class(), make_class()
        student = make_student(school_class)
        outsider = make_student(other)
        exam = make_exam(school_class)
        assert exam_data.record_exam_result(exam.id, student.id, 101)['error'] == 'Marks must be between 0 and 100'
        assert 'is not in the class' in exam_data.record_exam_result(exam.id, outsider.id, 50)['error']
        assert exam_data.record_exam_result(exam.id, student.id, 'abc')['error'] == 'Marks must be a number'

    def test_bulk_keeps_good_rows(self, app, make_class, make_student, make_exam):
        """Invalid rows are reported while valid rows are saved."""
        school_class = make_class()
        good, bad, blank = (make_student(school_class) for _ in range(3))
        exam = make_exam(school_class)
        result = exam_data.record_exam_results_bulk(exam.id, [
            {'student_id': good.id, 'marks_obtained': '72'},
            {'student_id': bad.id, 'marks_obtained': '140'},
            {'student_id': blank.id, 'marks_obtained': ''},
        ])
        assert result['success']
        assert result['data']['saved'] == 1
        assert result['data']['failed'] == 1
        assert result['data']['errors'] == {str(bad.id): 'Marks must be between 0 and 100'}
        assert result['message'] == '1 result(s) saved, 1 failed'

    def test_statistics(self, app, make_class, make_student, make_exam):
        """Average, extremes and pass rate are calculated."""
        school_class = make_class()
        students = [make_student(school_class) for _ in range(4)]
        exam = make_exam(school_class)
        for student, marks in zip(students, (90, 70, 50, 30)):
            exam_data.record_exam_result(exam.id, student.id, marks)

        stats = exam_data.get_exam_statistics(exam.id)['data']
        assert stats['count'] == 4
        assert stats['average'] == 60
        assert stats['highest'] == 90
        assert stats['lowest'] == 30
        assert stats['passed'] == 3
        assert stats['pass_rate'] == 75.0
        assert stats['grade_distribution']['A+'] == 1

    def test_statistics_without_results(self, app, make_class, make_exam):
        """An exam with no results reports zeros."""
        exam = make_exam(make_class())
        stats = exam_data.get_exam_statistics(exam.id)['data']
        assert stats['count'] == 0
        assert stats['average'] is None
        assert stats['pass_rate'] == 0.0

    def test_delete_cascades_results(self, app, make_class, make_student, make_exam):
        """Deleting an exam deletes its results."""
        school_class = make_class()
        student = make_student(school_class)
        exam = make_exam(school_class)
        exam_data.record_exam_result(exam.id, student.id, 55)
        assert exam_data.delete_exam(exam.id)['success']
        assert exam_data.get_exam_results(exam.id) == []


def _exam_form(exam, **changes):
    data = {'name': exam.name, 'exam_date': exam.exam_date.isoformat(), 'class_id': exam.class_id,
            'subject_id': exam.subject_id, 'academic_year': exam.academic_year, 'term': exam.term,
            'total_marks': exam.total_marks, 'passing_marks': exam.passing_marks,
            'weightage': exam.weightage}
    data.update(changes)
    return data


class TestUpdateExamWithResults:
    """Tests for update_exam() on an exam that already has results."""

    def test_passing_mark_change_updates_status(self, app, make_class, make_student, make_exam):
        """Raising the passing mark fails results below it."""
        school_class = make_class()
        student = make_student(school_class)
        exam = make_exam(school_class)
        exam_data.record_exam_result(exam.id, student.id, 50)

        assert exam_data.update_exam(exam.id, _exam_form(exam, passing_marks=60))['success']
        result = exam_data.get_exam_results(exam.id)[0]
        assert result.status == 'failed'
        assert result.grade == 'D'

    def test_total_change_regrades_derived_grades_only(self, app, make_class, make_student, make_exam):
        """Derived grades follow the new total; a hand-entered grade stays."""
        school_class = make_class()
        derived, manual = make_student(school_class), make_student(school_class)
        exam = make_exam(school_class)
        exam_data.record_exam_result(exam.id, derived.id, 50)
        exam_data.record_exam_result(exam.id, manual.id, 60, grade='B+')

        assert exam_data.update_exam(exam.id, _exam_form(exam, total_marks=200))['success']
        grades = {r.student_id: (r.grade, r.status) for r in exam_data.get_exam_results(exam.id)}
        assert grades[derived.id] == ('F', 'passed')
        assert grades[manual.id] == ('B+', 'passed')

    def test_total_below_recorded_marks_refused(self, app, make_class, make_student, make_exam):
        """Total marks may not drop below a mark already recorded."""
        school_class = make_class()
        student = make_student(school_class)
        exam = make_exam(school_class)
        exam_data.record_exam_result(exam.id, student.id, 70)

        result = exam_data.update_exam(exam.id, _exam_form(exam, total_marks=60, passing_marks=30))
        assert result['error'] == 'Total marks cannot be below the highest recorded mark (70)'
        assert exam_data.get_exam(exam.id).total_marks == 100
