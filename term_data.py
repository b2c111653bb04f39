"""Academic terms and the current-term switch."""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app_models import db, TermConfig
from data_helpers import clean, missing_fields, parse_date, parse_int
from results import ok, fail


def create_term(data):
    if missing_fields(data, ('academic_year', 'term', 'start_date', 'end_date')):
        return fail('Academic year, term, start date and end date are required')
    try:
        academic_year = clean(data['academic_year'])
        term = parse_int(data['term'])
        start_date = parse_date(data['start_date'])
        end_date = parse_date(data['end_date'])
    except ValueError:
        return fail('Invalid date or term supplied')

    if term not in (1, 2, 3):
        return fail('Term must be 1, 2 or 3')
    if end_date <= start_date:
        return fail('End date must be after start date')
    if TermConfig.query.filter_by(academic_year=academic_year, term=term).first():
        return fail('This term already exists for the academic year')

    try:
        config = TermConfig(academic_year=academic_year, term=term, start_date=start_date,
                            end_date=end_date, is_current=False)
        db.session.add(config)
        db.session.flush()
        if data.get('is_current') or TermConfig.query.count() == 1:
            # Deactivate all other terms
            TermConfig.query.filter(TermConfig.id != config.id).update({'is_current': False})
            config.is_current = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create term")
        return fail('Failed to create term')
    return ok(config.to_dict(), f'Term {config.label} created successfully!')


def get_terms():
    return TermConfig.query.order_by(TermConfig.academic_year.desc(), TermConfig.term.desc()).all()


def get_current_term():
    return TermConfig.query.filter_by(is_current=True).first()


def get_term(academic_year, term):
    return TermConfig.query.filter_by(academic_year=academic_year, term=term).first()


def set_current_term(term_id):
    config = db.session.get(TermConfig, term_id)
    if not config:
        return fail('Term not found')
    try:
        TermConfig.query.update({'is_current': False})
        config.is_current = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to set current term %s", term_id)
        return fail('Failed to set current term')
    return ok(config.to_dict(), f'{config.label} is now the current term')
