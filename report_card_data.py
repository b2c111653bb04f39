"""
Report card generation and publishing.

Cards are built per class, academic year and term from the recorded exam
results. A subject's percentage is the weightage-weighted average of its exam
percentages; the overall percentage is total marks over total max marks.
Once any card of a class/term is published the set is frozen and
regeneration is refused until the cards are unpublished.
"""
from collections import defaultdict
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, ReportCard, ReportCardSubject, Exam, ExamResult, SchoolClass, Student
from attendance_data import attendance_percentage_for_student
from data_helpers import clean, parse_int
from grading import active_grade_scale, grade_for_percentage, percentage, rank_positions, comment_for_percentage
from results import ok, fail
from student_data import get_children_for_parent
from term_data import get_term


def _subject_summaries(exams, results_by_student):
    """Per student, per subject: marks, max marks and weighted percentage."""
    summaries = defaultdict(dict)
    for student_id, results in results_by_student.items():
        per_subject = defaultdict(lambda: {'marks': 0.0, 'max': 0.0, 'weighted': 0.0, 'weight': 0})
        for exam in exams:
            result = results.get(exam.id)
            if result is None or result.marks_obtained is None:
                continue
            entry = per_subject[exam.subject_id]
            entry['marks'] += result.marks_obtained
            entry['max'] += exam.total_marks
            entry['weighted'] += percentage(result.marks_obtained, exam.total_marks) * exam.weightage
            entry['weight'] += exam.weightage
        for subject_id, entry in per_subject.items():
            entry['percentage'] = round(entry['weighted'] / entry['weight'], 2) if entry['weight'] else 0.0
            summaries[student_id][subject_id] = entry
    return summaries


def generate_report_cards(class_id, academic_year, term, generated_by=None):
    school_class = db.session.get(SchoolClass, class_id)
    if not school_class:
        return fail('Class not found')
    try:
        term = parse_int(term)
    except ValueError:
        return fail('Invalid term')
    academic_year = clean(academic_year)
    if not academic_year or term not in (1, 2, 3):
        return fail('Academic year and term are required')

    # Report cards are per subject, so exams without a subject are left out
    exams = (Exam.query.filter_by(class_id=class_id, academic_year=academic_year, term=term)
             .filter(Exam.subject_id.isnot(None)).order_by(Exam.exam_date).all())
    if not exams:
        return fail('No exams found for this class and term')

    if ReportCard.query.filter_by(class_id=class_id, academic_year=academic_year, term=term,
                                  is_published=True).first():
        return fail('Report cards for this class and term are already published. Unpublish them before regenerating.')

    students = Student.query.filter_by(class_id=class_id).order_by(Student.surname, Student.name).all()
    results_by_student = defaultdict(dict)
    for result in ExamResult.query.filter(ExamResult.exam_id.in_([e.id for e in exams])).all():
        results_by_student[result.student_id][result.exam_id] = result

    summaries = _subject_summaries(exams, results_by_student)
    scale = active_grade_scale()
    term_config = get_term(academic_year, term)

    totals = {}
    for student in students:
        subjects = summaries.get(student.id)
        if not subjects:
            continue
        marks = sum(entry['marks'] for entry in subjects.values())
        max_marks = sum(entry['max'] for entry in subjects.values())
        totals[student.id] = (marks, max_marks, percentage(marks, max_marks))
    positions = rank_positions({sid: total[2] for sid, total in totals.items()})

    existing = {card.student_id: card for card in ReportCard.query.filter_by(
        class_id=class_id, academic_year=academic_year, term=term).all()}

    generated = 0
    skipped = 0
    try:
        for student in students:
            if student.id not in totals:
                skipped += 1
                continue
            marks, max_marks, total_percentage = totals[student.id]
            card = existing.get(student.id)
            if card is None:
                card = ReportCard(student_id=student.id, class_id=class_id,
                                  academic_year=academic_year, term=term, is_published=False)
                db.session.add(card)
            else:
                card.subjects = []
                db.session.flush()

            overall_grade, _ = grade_for_percentage(total_percentage, scale)
            card.total_marks_obtained = round(marks, 2)
            card.total_max_marks = round(max_marks, 2)
            card.total_percentage = total_percentage
            card.overall_grade = overall_grade
            card.position_in_class = positions[student.id]
            card.attendance_percentage = (
                attendance_percentage_for_student(student.id, term_config.start_date, term_config.end_date)
                if term_config else None
            )
            if not card.teacher_comments:
                card.teacher_comments = comment_for_percentage(total_percentage)
            card.generated_by = generated_by
            card.generated_at = datetime.utcnow()

            for subject_id, entry in summaries[student.id].items():
                grade, points = grade_for_percentage(entry['percentage'], scale)
                card.subjects.append(ReportCardSubject(
                    subject_id=subject_id,
                    marks_obtained=round(entry['marks'], 2),
                    max_marks=round(entry['max'], 2),
                    percentage=entry['percentage'],
                    grade=grade,
                    grade_point=points,
                ))
            generated += 1

        # Cards of students who no longer have results for this class and term
        removed = 0
        for student_id, card in existing.items():
            if student_id not in totals:
                db.session.delete(card)
                removed += 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to generate report cards for class %s %s term %s",
                                     class_id, academic_year, term)
        return fail('Failed to generate report cards')

    current_app.logger.info("Generated %d report cards for class %s %s term %s (%d skipped, %d removed)",
                            generated, class_id, academic_year, term, skipped, removed)
    message = f'{generated} report card(s) generated, {skipped} student(s) without results skipped'
    if removed:
        message += f', {removed} outdated card(s) removed'
    return ok({'generated': generated, 'skipped': skipped, 'removed': removed}, message)


def get_report_cards(class_id=None, academic_year=None, term=None, student_id=None, published_only=False):
    query = ReportCard.query.join(Student, ReportCard.student_id == Student.id)
    if class_id:
        query = query.filter(ReportCard.class_id == class_id)
    if academic_year:
        query = query.filter(ReportCard.academic_year == academic_year)
    if term:
        query = query.filter(ReportCard.term == term)
    if student_id:
        query = query.filter(ReportCard.student_id == student_id)
    if published_only:
        query = query.filter(ReportCard.is_published.is_(True))
    return query.order_by(ReportCard.academic_year.desc(), ReportCard.term.desc(),
                          ReportCard.position_in_class, Student.surname).all()


def get_report_card(card_id):
    return db.session.get(ReportCard, card_id)


def get_visible_report_cards(user):
    """Published cards a student or parent account may see."""
    if user.user_type == 'student':
        return get_report_cards(student_id=user.reference_id, published_only=True)
    if user.user_type == 'parent':
        cards = []
        for child in get_children_for_parent(user.reference_id):
            cards.extend(get_report_cards(student_id=child.id, published_only=True))
        return cards
    return []


def can_view_report_card(user, card):
    if user.user_type in ('admin', 'staff'):
        return True
    if not card.is_published:
        return False
    if user.user_type == 'student':
        return card.student_id == user.reference_id
    if user.user_type == 'parent':
        return any(child.id == card.student_id for child in get_children_for_parent(user.reference_id))
    return False


def update_report_card_comments(card_id, teacher_comments=None, principal_comments=None):
    card = get_report_card(card_id)
    if not card:
        return fail('Report card not found')
    try:
        card.teacher_comments = clean(teacher_comments)
        card.principal_comments = clean(principal_comments)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update comments on report card %s", card_id)
        return fail('Failed to update comments')
    return ok(card.to_dict(), 'Comments saved')


def _set_published(card_id, published):
    card = get_report_card(card_id)
    if not card:
        return fail('Report card not found')
    try:
        card.is_published = published
        card.published_at = datetime.utcnow() if published else None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to change publish state of report card %s", card_id)
        return fail('Failed to update report card')
    return ok(card.to_dict(), 'Report card published' if published else 'Report card unpublished')


def publish_report_card(card_id):
    return _set_published(card_id, True)


def unpublish_report_card(card_id):
    return _set_published(card_id, False)


def publish_class_report_cards(class_id, academic_year, term):
    cards = ReportCard.query.filter_by(class_id=class_id, academic_year=academic_year,
                                       term=parse_int(term), is_published=False).all()
    if not cards:
        return fail('No unpublished report cards found for this class and term')
    try:
        now = datetime.utcnow()
        for card in cards:
            card.is_published = True
            card.published_at = now
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to publish report cards for class %s", class_id)
        return fail('Failed to publish report cards')
    current_app.logger.info("Published %d report cards for class %s", len(cards), class_id)
    return ok({'published': len(cards)}, f'{len(cards)} report card(s) published')
