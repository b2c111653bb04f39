from flask import (Blueprint, Response, abort, current_app, g, redirect, render_template, request,
                   url_for)

import report_card_data
from auth import login_required, permission_required, user_types_allowed, current_staff_id
from exports import report_card_pdf, report_card_filename
from forms import GenerateReportCardsForm, ReportCardCommentsForm, class_choices
from results import flash_result
from term_data import get_current_term

report_cards_bp = Blueprint('report_cards', __name__)


def _visible_card_or_404(card_id):
    """404 both for missing cards and for cards the signed-in user may not see."""
    card = report_card_data.get_report_card(card_id)
    if card is None or not report_card_data.can_view_report_card(g.current_user, card):
        abort(404)
    return card


@report_cards_bp.route('/report-cards')
@permission_required('manage_report_cards')
def list_report_cards():
    class_id = request.args.get('class_id', type=int)
    academic_year = request.args.get('academic_year') or None
    term = request.args.get('term', type=int)
    cards = report_card_data.get_report_cards(class_id=class_id, academic_year=academic_year, term=term)
    return render_template('report_cards/list.html', cards=cards, class_id=class_id,
                           academic_year=academic_year, term=term,
                           classes=class_choices(include_none=False)[1:])


@report_cards_bp.route('/report-cards/generate', methods=['GET', 'POST'])
@permission_required('manage_report_cards')
def generate():
    form = GenerateReportCardsForm()
    form.class_id.choices = class_choices(include_none=False)
    if request.method == 'GET':
        current = get_current_term()
        if current:
            form.academic_year.data = current.academic_year
            form.term.data = current.term
    if form.validate_on_submit():
        result = report_card_data.generate_report_cards(form.class_id.data, form.academic_year.data,
                                                        form.term.data, generated_by=current_staff_id())
        if flash_result(result):
            return redirect(url_for('report_cards.list_report_cards', class_id=form.class_id.data,
                                    academic_year=form.academic_year.data, term=form.term.data))
    return render_template('form_page.html', form=form, title='Generate Report Cards',
                           cancel_url=url_for('report_cards.list_report_cards'))


@report_cards_bp.route('/report-cards/<int:card_id>')
@login_required
def view_report_card(card_id):
    card = _visible_card_or_404(card_id)
    return render_template('report_cards/detail.html', card=card)


@report_cards_bp.route('/report-cards/<int:card_id>/print')
@login_required
def print_report_card(card_id):
    card = _visible_card_or_404(card_id)
    return render_template('report_cards/print.html', card=card)


@report_cards_bp.route('/report-cards/<int:card_id>/pdf')
@login_required
def download_pdf(card_id):
    card = _visible_card_or_404(card_id)
    pdf = report_card_pdf(card, school_name=current_app.config['SCHOOL_NAME'])
    return Response(pdf, mimetype='application/pdf',
                    headers={'Content-Disposition': f'attachment; filename={report_card_filename(card)}'})


@report_cards_bp.route('/report-cards/<int:card_id>/comments', methods=['GET', 'POST'])
@permission_required('manage_report_cards')
def edit_comments(card_id):
    card = report_card_data.get_report_card(card_id)
    if card is None:
        abort(404)
    form = ReportCardCommentsForm(obj=card)
    if form.validate_on_submit():
        result = report_card_data.update_report_card_comments(card.id, form.teacher_comments.data,
                                                              form.principal_comments.data)
        if flash_result(result):
            return redirect(url_for('report_cards.view_report_card', card_id=card.id))
    return render_template('form_page.html', form=form, title=f'Comments - {card.student.full_name}',
                           cancel_url=url_for('report_cards.view_report_card', card_id=card.id))


@report_cards_bp.route('/report-cards/<int:card_id>/publish', methods=['POST'])
@permission_required('manage_report_cards')
def publish(card_id):
    flash_result(report_card_data.publish_report_card(card_id))
    return redirect(url_for('report_cards.view_report_card', card_id=card_id))


@report_cards_bp.route('/report-cards/<int:card_id>/unpublish', methods=['POST'])
@permission_required('manage_report_cards')
def unpublish(card_id):
    flash_result(report_card_data.unpublish_report_card(card_id))
    return redirect(url_for('report_cards.view_report_card', card_id=card_id))


@report_cards_bp.route('/report-cards/publish-class', methods=['POST'])
@permission_required('manage_report_cards')
def publish_class():
    class_id = request.form.get('class_id', type=int)
    academic_year = request.form.get('academic_year')
    term = request.form.get('term', type=int)
    flash_result(report_card_data.publish_class_report_cards(class_id, academic_year, term))
    return redirect(url_for('report_cards.list_report_cards', class_id=class_id,
                            academic_year=academic_year, term=term))


@report_cards_bp.route('/my/report-cards')
@user_types_allowed('student', 'parent')
def my_report_cards():
    return render_template('report_cards/mine.html',
                           cards=report_card_data.get_visible_report_cards(g.current_user))
