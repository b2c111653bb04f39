"""Grade scale, percentages, class ranking and report card comments."""
from flask import current_app

from app_models import db, GradeScale

DEFAULT_GRADE_SCALE = [
    # (grade, min %, max %, points, description)
    ('A+', 90, 100, 4.0, 'Outstanding'),
    ('A', 80, 89.99, 3.7, 'Excellent'),
    ('B+', 75, 79.99, 3.3, 'Very Good'),
    ('B', 65, 74.99, 3.0, 'Good'),
    ('C', 55, 64.99, 2.0, 'Satisfactory'),
    ('D', 40, 54.99, 1.0, 'Needs Improvement'),
    ('F', 0, 39.99, 0.0, 'Fail'),
]

COMMENT_BANK = [
    (90, 'Outstanding performance. Keep up the excellent work.'),
    (80, 'Excellent work this term. A consistent and dedicated learner.'),
    (70, 'Very good progress. Continue to build on this solid foundation.'),
    (60, 'Good effort. More practice will lift results further.'),
    (50, 'Fair performance. Needs to focus more on weaker subjects.'),
    (40, 'Below expectations. Extra support and regular revision are advised.'),
    (0, 'Performance is a concern. A meeting with the class teacher is recommended.'),
]


def active_grade_scale():
    """Return ``[(grade, min_percentage, points), ...]`` ordered from the top grade down."""
    rows = (GradeScale.query.filter_by(is_active=True)
            .order_by(GradeScale.min_percentage.desc()).all())
    if not rows:
        return [(grade, minimum, points) for grade, minimum, _, points, _ in DEFAULT_GRADE_SCALE]
    return [(row.grade, row.min_percentage, row.points or 0.0) for row in rows]


def seed_default_grade_scale():
    if GradeScale.query.first():
        return 0
    for grade, minimum, maximum, points, description in DEFAULT_GRADE_SCALE:
        db.session.add(GradeScale(grade=grade, min_percentage=minimum, max_percentage=maximum,
                                  points=points, description=description, is_active=True))
    db.session.commit()
    current_app.logger.info("Seeded default grade scale")
    return len(DEFAULT_GRADE_SCALE)


def grade_for_percentage(percentage, scale=None):
    scale = scale if scale is not None else active_grade_scale()
    for grade, minimum, points in scale:
        if percentage >= minimum:
            return grade, points
    # Below the lowest band
    grade, _, points = scale[-1]
    return grade, points


def percentage(marks, total):
    if not total:
        return 0.0
    return round((marks or 0) / total * 100, 2)


def rank_positions(scores):
    """Competition ranking of ``{key: score}``: equal scores share a position (1, 2, 2, 4)."""
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    positions = {}
    previous = None
    position = 0
    for index, (key, score) in enumerate(ordered, start=1):
        if score != previous:
            position = index
            previous = score
        positions[key] = position
    return positions


def comment_for_percentage(value):
    for threshold, comment in COMMENT_BANK:
        if value >= threshold:
            return comment
    return COMMENT_BANK[-1][1]
