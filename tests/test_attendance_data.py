"""Tests for attendance marking, rosters and reports."""
from datetime import date

import attendance_data
from app_models import StudentAttendance


class TestMarkAttendance:
    """Tests for mark_attendance() / mark_class_attendance()."""

    def test_mark_then_update(self, app, make_class, make_student):
        """Marking the same student and day twice updates the record."""
        student = make_student(make_class())
        first = attendance_data.mark_attendance({'student_id': student.id, 'date': '2024-03-04', 'status': 'present'})
        assert first['message'] == 'Attendance recorded'
        second = attendance_data.mark_attendance({'student_id': student.id, 'date': '2024-03-04', 'status': 'late'})
        assert second['message'] == 'Attendance updated'
        assert StudentAttendance.query.one().status == 'late'

    def test_validation(self, app, make_class, make_student):
        """Statuses and class membership are checked."""
        student = make_student(make_class())
        unassigned = make_student()
        assert attendance_data.mark_attendance(
            {'student_id': student.id, 'date': '2024-03-04', 'status': 'sick'})['error'] == 'Invalid attendance status'
        assert attendance_data.mark_attendance(
            {'student_id': unassigned.id, 'date': '2024-03-04', 'status': 'present'})['error'] == \
            'Student is not assigned to a class'
        assert attendance_data.mark_attendance({'status': 'present'})['error'] == 'Student and date are required'

    def test_class_register(self, app, make_class, make_student):
        """A class register skips unmarked rows and reports outsiders."""
        school_class = make_class()
        present, absent, unmarked = (make_student(school_class) for _ in range(3))
        outsider = make_student(make_class())
        result = attendance_data.mark_class_attendance(school_class.id, '2024-03-04', [
            {'student_id': present.id, 'status': 'present'},
            {'student_id': absent.id, 'status': 'absent', 'remarks': 'Ill'},
            {'student_id': unmarked.id, 'status': attendance_data.NOT_RECORDED},
            {'student_id': outsider.id, 'status': 'present'},
        ])
        assert result['success']
        assert result['data']['created'] == 2
        assert result['data']['skipped'] == 1
        assert result['data']['errors'] == {outsider.id: 'Student is not in this class'}

        roster = attendance_data.get_class_attendance_for_date(school_class.id, '2024-03-04')
        statuses = {row['student'].id: row['status'] for row in roster}
        assert statuses == {present.id: 'present', absent.id: 'absent', unmarked.id: 'not_recorded'}

    def test_class_register_unknown_class(self, app):
        """An unknown class is reported."""
        assert attendance_data.mark_class_attendance(999, '2024-03-04', [])['error'] == 'Class not found'


class TestReports:
    """Tests for monthly reports, statistics and percentages."""

    def _mark(self, student, day, status):
        result = attendance_data.mark_attendance({'student_id': student.id, 'date': day, 'status': status})
        assert result['success']

    def test_monthly_report(self, app, make_class, make_student):
        """Daily rows count statuses and weight half days."""
        school_class = make_class()
        students = [make_student(school_class) for _ in range(4)]
        for student, status in zip(students, ('present', 'absent', 'late', 'half-day')):
            self._mark(student, '2024-03-04', status)
        self._mark(students[0], '2024-04-01', 'present')

        report = attendance_data.get_monthly_attendance_report(3, 2024)
        assert len(report) == 1
        row = report[0]
        assert (row['total'], row['present'], row['absent'], row['late'], row['half_day']) == (4, 1, 1, 1, 1)
        assert row['attendance_percentage'] == 62.5

    def test_stats_for_range(self, app, make_class, make_student):
        """Statistics cover only the requested range."""
        school_class = make_class()
        student = make_student(school_class)
        self._mark(student, '2024-03-04', 'present')
        self._mark(student, '2024-03-05', 'absent')
        self._mark(student, '2024-05-05', 'absent')

        stats = attendance_data.get_attendance_stats(class_id=school_class.id, start='2024-03-01', end='2024-03-31')
        assert stats['total_records'] == 2
        assert stats['present'] == 1
        assert stats['attendance_percentage'] == 50.0
        assert stats['total_students'] == 1
        assert stats['start'] == date(2024, 3, 1)

    def test_student_percentage(self, app, make_class, make_student):
        """Late counts as attended, half day as half."""
        student = make_student(make_class())
        self._mark(student, '2024-03-04', 'late')
        self._mark(student, '2024-03-05', 'half-day')
        assert attendance_data.attendance_percentage_for_student(student.id) == 75.0
        assert attendance_data.attendance_percentage_for_student(student.id, start='2024-04-01') is None

    def test_update_and_delete(self, app, make_class, make_student):
        """Records can be corrected and removed."""
        student = make_student(make_class())
        self._mark(student, '2024-03-04', 'absent')
        record = StudentAttendance.query.one()
        assert attendance_data.update_attendance(record.id, {'status': 'present', 'remarks': 'Arrived'})['success']
        assert attendance_data.update_attendance(record.id, {'status': 'gone'})['error'] == 'Invalid attendance status'
        assert attendance_data.delete_attendance(record.id)['success']
        assert StudentAttendance.query.count() == 0
