from datetime import date

from flask import Blueprint, g, redirect, render_template, url_for

from app_models import Student, Teacher, Staff, SchoolClass
from attendance_data import get_attendance_stats
from auth import login_required
from exam_data import get_upcoming_exams
from fee_data import get_fee_dashboard

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.route('/')
@login_required
def index():
    if g.current_user.user_type in ('student', 'parent'):
        return redirect(url_for('report_cards.my_report_cards'))

    today = date.today()
    overview = {
        'students': Student.query.filter_by(is_active=True).count(),
        'teachers': Teacher.query.count(),
        'staff': Staff.query.filter_by(is_active=True).count(),
        'classes': SchoolClass.query.count(),
    }
    return render_template(
        'dashboard.html',
        overview=overview,
        attendance_today=get_attendance_stats(start=today, end=today),
        fees=get_fee_dashboard(),
        upcoming_exams=get_upcoming_exams(today),
    )
