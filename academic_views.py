from flask import Blueprint, Response, abort, jsonify, redirect, render_template, request, url_for

import class_data
import exam_data
import exports
import term_data
from auth import permission_required
from forms import (ClassForm, SubjectForm, ExamForm, TermForm, form_payload, class_choices,
                   teacher_choices, subject_choices)
from results import flash_result

academics_bp = Blueprint('academics', __name__)


def _or_404(record):
    if record is None:
        abort(404)
    return record


# Classes
@academics_bp.route('/classes')
@permission_required('manage_academics')
def list_classes():
    return render_template('classes/list.html', classes=class_data.get_classes_with_student_count())


@academics_bp.route('/classes/export')
@permission_required('manage_academics')
def export_classes():
    export_format = request.args.get('format', 'csv')
    if export_format not in exports.EXPORT_FORMATS:
        abort(400)
    content, filename, mimetype = exports.export_classes(export_format)
    return Response(content, mimetype=mimetype,
                    headers={'Content-Disposition': f'attachment; filename={filename}'})


def _class_form(school_class=None):
    form = ClassForm(obj=school_class)
    form.class_teacher_id.choices = teacher_choices()
    form.teacher_ids.choices = teacher_choices(include_none=False)
    if school_class is not None and request.method == 'GET':
        form.class_teacher_id.data = school_class.class_teacher_id or 0
        form.teacher_ids.data = [t.id for t in school_class.teachers]
    return form


@academics_bp.route('/classes/add', methods=['GET', 'POST'])
@permission_required('manage_academics')
def add_class():
    form = _class_form()
    if form.validate_on_submit():
        result = class_data.create_class(form_payload(form))
        if flash_result(result):
            return redirect(url_for('academics.view_class', class_id=result['data']['id']))
    return render_template('form_page.html', form=form, title='Add Class',
                           cancel_url=url_for('academics.list_classes'))


@academics_bp.route('/classes/<int:class_id>')
@permission_required('manage_academics')
def view_class(class_id):
    school_class = _or_404(class_data.get_class(class_id))
    return render_template('classes/detail.html', school_class=school_class,
                           exams=exam_data.get_exams(class_id=school_class.id))


@academics_bp.route('/classes/<int:class_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_academics')
def edit_class(class_id):
    school_class = _or_404(class_data.get_class(class_id))
    form = _class_form(school_class)
    if form.validate_on_submit():
        if flash_result(class_data.update_class(school_class.id, form_payload(form))):
            return redirect(url_for('academics.view_class', class_id=school_class.id))
    return render_template('form_page.html', form=form, title=f'Edit {school_class.display_name}',
                           cancel_url=url_for('academics.view_class', class_id=school_class.id))


@academics_bp.route('/classes/<int:class_id>/delete', methods=['POST'])
@permission_required('manage_academics')
def delete_class(class_id):
    if flash_result(class_data.delete_class(class_id)):
        return redirect(url_for('academics.list_classes'))
    return redirect(url_for('academics.view_class', class_id=class_id))


@academics_bp.route('/classes/<int:class_id>/teachers/<int:teacher_id>/remove', methods=['POST'])
@permission_required('manage_academics')
def remove_class_teacher(class_id, teacher_id):
    flash_result(class_data.remove_teacher_from_class(class_id, teacher_id))
    return redirect(url_for('academics.view_class', class_id=class_id))


# Subjects
@academics_bp.route('/subjects')
@permission_required('manage_academics')
def list_subjects():
    search_query = request.args.get('search', '').strip()
    class_id = request.args.get('class_id', type=int)
    return render_template('subjects/list.html', search_query=search_query,
                           subjects=class_data.get_subjects(search=search_query, class_id=class_id))


def _subject_form(subject=None):
    form = SubjectForm(obj=subject)
    form.class_id.choices = class_choices(include_none=False)
    form.teacher_ids.choices = teacher_choices(include_none=False)
    if subject is not None and request.method == 'GET':
        form.teacher_ids.data = [t.id for t in subject.teachers]
    return form


@academics_bp.route('/subjects/add', methods=['GET', 'POST'])
@permission_required('manage_academics')
def add_subject():
    form = _subject_form()
    if request.method == 'GET' and request.args.get('class_id', type=int):
        form.class_id.data = request.args.get('class_id', type=int)
    if form.validate_on_submit():
        if flash_result(class_data.create_subject(form_payload(form))):
            return redirect(url_for('academics.list_subjects'))
    return render_template('form_page.html', form=form, title='Add Subject',
                           cancel_url=url_for('academics.list_subjects'))


@academics_bp.route('/subjects/<int:subject_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_academics')
def edit_subject(subject_id):
    subject = _or_404(class_data.get_subject(subject_id))
    form = _subject_form(subject)
    if form.validate_on_submit():
        if flash_result(class_data.update_subject(subject.id, form_payload(form))):
            return redirect(url_for('academics.list_subjects'))
    return render_template('form_page.html', form=form, title=f'Edit {subject.name}',
                           cancel_url=url_for('academics.list_subjects'))


@academics_bp.route('/subjects/<int:subject_id>/delete', methods=['POST'])
@permission_required('manage_academics')
def delete_subject(subject_id):
    flash_result(class_data.delete_subject(subject_id))
    return redirect(url_for('academics.list_subjects'))


# Exams
@academics_bp.route('/exams')
@permission_required('manage_exams')
def list_exams():
    exams = exam_data.get_exams(
        class_id=request.args.get('class_id', type=int),
        academic_year=request.args.get('academic_year') or None,
        term=request.args.get('term', type=int),
    )
    return render_template('exams/list.html', exams=exams)


def _exam_form(exam=None):
    form = ExamForm(obj=exam)
    form.class_id.choices = class_choices(include_none=False)
    form.subject_id.choices = subject_choices()
    if request.method == 'GET':
        if exam is not None:
            form.subject_id.data = exam.subject_id or 0
        else:
            current = term_data.get_current_term()
            if current:
                form.academic_year.data = current.academic_year
                form.term.data = current.term
    return form


@academics_bp.route('/exams/add', methods=['GET', 'POST'])
@permission_required('manage_exams')
def add_exam():
    form = _exam_form()
    if form.validate_on_submit():
        result = exam_data.create_exam(form_payload(form))
        if flash_result(result):
            return redirect(url_for('academics.exam_results', exam_id=result['data']['id']))
    return render_template('form_page.html', form=form, title='Create Exam',
                           cancel_url=url_for('academics.list_exams'))


@academics_bp.route('/exams/<int:exam_id>/edit', methods=['GET', 'POST'])
@permission_required('manage_exams')
def edit_exam(exam_id):
    exam = _or_404(exam_data.get_exam(exam_id))
    form = _exam_form(exam)
    if form.validate_on_submit():
        if flash_result(exam_data.update_exam(exam.id, form_payload(form))):
            return redirect(url_for('academics.list_exams'))
    return render_template('form_page.html', form=form, title=f'Edit {exam.name}',
                           cancel_url=url_for('academics.list_exams'))


@academics_bp.route('/exams/<int:exam_id>/delete', methods=['POST'])
@permission_required('manage_exams')
def delete_exam(exam_id):
    flash_result(exam_data.delete_exam(exam_id))
    return redirect(url_for('academics.list_exams'))


@academics_bp.route('/exams/<int:exam_id>/results', methods=['GET', 'POST'])
@permission_required('manage_exams')
def exam_results(exam_id):
    exam = _or_404(exam_data.get_exam(exam_id))
    if request.method == 'POST':
        entries = []
        for key, value in request.form.items():
            if key.startswith('marks_') and key[len('marks_'):].isdigit():
                student_id = int(key[len('marks_'):])
                entries.append({
                    'student_id': student_id,
                    'marks_obtained': value.strip(),
                    'comments': request.form.get(f'comments_{student_id}'),
                })
        result = exam_data.record_exam_results_bulk(exam.id, entries)
        flash_result(result)
        if result['success']:
            for error in result['data']['errors'].values():
                flash_result({'success': False, 'error': error})
        return redirect(url_for('academics.exam_results', exam_id=exam.id))

    return render_template('exams/results.html', exam=exam, roster=exam_data.get_students_for_exam(exam.id),
                           statistics=exam_data.get_exam_statistics(exam.id)['data'])


@academics_bp.route('/exams/<int:exam_id>/statistics')
@permission_required('manage_exams')
def exam_statistics(exam_id):
    exam = _or_404(exam_data.get_exam(exam_id))
    return render_template('exams/statistics.html', exam=exam,
                           statistics=exam_data.get_exam_statistics(exam.id)['data'],
                           results=exam_data.get_exam_results(exam.id))


# Terms
@academics_bp.route('/terms', methods=['GET', 'POST'])
@permission_required('manage_academics')
def terms():
    form = TermForm()
    if form.validate_on_submit():
        if flash_result(term_data.create_term(form_payload(form))):
            return redirect(url_for('academics.terms'))
    return render_template('terms.html', form=form, terms=term_data.get_terms())


@academics_bp.route('/terms/<int:term_id>/current', methods=['POST'])
@permission_required('manage_academics')
def set_current_term(term_id):
    flash_result(term_data.set_current_term(term_id))
    return redirect(url_for('academics.terms'))


# JSON API
@academics_bp.route('/api/classes')
@permission_required('manage_academics')
def api_classes():
    return jsonify({'success': True, 'data': [
        dict(entry['class'].to_dict(), student_count=entry['student_count'])
        for entry in class_data.get_classes_with_student_count()
    ]})


@academics_bp.route('/api/exams/<int:exam_id>/results', methods=['GET', 'POST'])
@permission_required('manage_exams')
def api_exam_results(exam_id):
    exam = exam_data.get_exam(exam_id)
    if exam is None:
        return jsonify({'success': False, 'error': 'Exam not found'}), 404
    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
        result = exam_data.record_exam_results_bulk(exam.id, payload.get('results', []))
        return jsonify(result), 200 if result['success'] else 400
    return jsonify({
        'success': True,
        'exam': exam.to_dict(),
        'results': [r.to_dict() for r in exam_data.get_exam_results(exam.id)],
        'statistics': exam_data.get_exam_statistics(exam.id)['data'],
    })
