from datetime import date

from flask import Blueprint, abort, jsonify, redirect, render_template, request, url_for

import attendance_data
from app_models import ATTENDANCE_STATUSES
from auth import permission_required, current_staff_id
from data_helpers import parse_date
from forms import class_choices
from results import flash_result

attendance_bp = Blueprint('attendance', __name__)


def _selected_date(value):
    try:
        return parse_date(value) or date.today()
    except ValueError:
        abort(400)


@attendance_bp.route('/attendance', methods=['GET', 'POST'])
@permission_required('manage_attendance')
def mark_attendance():
    """Class register: pick a class and date, then mark every student."""
    class_id = request.values.get('class_id', type=int)
    on_date = _selected_date(request.values.get('date'))

    if request.method == 'POST':
        if not class_id:
            flash_result({'success': False, 'error': 'Please select a class'})
            return redirect(url_for('attendance.mark_attendance'))
        entries = []
        for key, status in request.form.items():
            if key.startswith('status_') and key[len('status_'):].isdigit():
                student_id = int(key[len('status_'):])
                entries.append({
                    'student_id': student_id,
                    'status': status,
                    'remarks': request.form.get(f'remarks_{student_id}'),
                })
        result = attendance_data.mark_class_attendance(class_id, on_date, entries,
                                                       recorded_by=current_staff_id())
        if flash_result(result):
            for error in result['data']['errors'].values():
                flash_result({'success': False, 'error': error})
        return redirect(url_for('attendance.mark_attendance', class_id=class_id, date=on_date.isoformat()))

    roster = attendance_data.get_class_attendance_for_date(class_id, on_date) if class_id else []
    return render_template('attendance/mark.html', classes=class_choices(include_none=False)[1:],
                           class_id=class_id, selected_date=on_date, roster=roster,
                           statuses=ATTENDANCE_STATUSES, not_recorded=attendance_data.NOT_RECORDED)


@attendance_bp.route('/attendance/records')
@permission_required('manage_attendance')
def records():
    filters = {
        'class_id': request.args.get('class_id', type=int),
        'status': request.args.get('status') or None,
        'start_date': request.args.get('start_date') or None,
        'end_date': request.args.get('end_date') or None,
    }
    try:
        attendance_records = attendance_data.get_attendance_records(filters)
    except ValueError:
        abort(400)
    return render_template('attendance/records.html', records=attendance_records, filters=filters,
                           classes=class_choices(include_none=False)[1:], statuses=ATTENDANCE_STATUSES)


@attendance_bp.route('/attendance/records/<int:record_id>/delete', methods=['POST'])
@permission_required('manage_attendance')
def delete_record(record_id):
    flash_result(attendance_data.delete_attendance(record_id))
    return redirect(url_for('attendance.records'))


@attendance_bp.route('/attendance/monthly')
@permission_required('manage_attendance')
def monthly_report():
    today = date.today()
    month = request.args.get('month', today.month, type=int)
    year = request.args.get('year', today.year, type=int)
    if not 1 <= month <= 12:
        abort(400)
    class_id = request.args.get('class_id', type=int)
    return render_template('attendance/monthly.html', month=month, year=year, class_id=class_id,
                           classes=class_choices(include_none=False)[1:],
                           report=attendance_data.get_monthly_attendance_report(month, year, class_id))


@attendance_bp.route('/attendance/stats')
@permission_required('manage_attendance')
def stats():
    class_id = request.args.get('class_id', type=int)
    try:
        statistics = attendance_data.get_attendance_stats(class_id, request.args.get('start') or None,
                                                          request.args.get('end') or None)
    except ValueError:
        abort(400)
    return render_template('attendance/stats.html', stats=statistics, class_id=class_id,
                           classes=class_choices(include_none=False)[1:])


# JSON API
@attendance_bp.route('/api/attendance/stats')
@permission_required('manage_attendance')
def api_stats():
    try:
        statistics = attendance_data.get_attendance_stats(request.args.get('class_id', type=int),
                                                          request.args.get('start') or None,
                                                          request.args.get('end') or None)
    except ValueError:
        return jsonify({'success': False, 'error': 'Invalid date range'}), 400
    statistics['start'] = statistics['start'].isoformat()
    statistics['end'] = statistics['end'].isoformat()
    return jsonify({'success': True, 'data': statistics})
