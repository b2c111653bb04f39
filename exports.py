"""CSV/JSON exports and the printable report card PDF."""
import csv
import io
import json
from datetime import date, datetime

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from app_models import Student, FeePayment
from class_data import get_classes_with_student_count

EXPORT_FORMATS = {
    'csv': 'text/csv',
    'json': 'application/json',
}


def _default(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def to_csv(rows, fieldnames=None):
    if not rows:
        return ''
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames or list(rows[0].keys()),
                            quoting=csv.QUOTE_ALL, extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()


def to_json(rows):
    return json.dumps(rows, indent=2, default=_default)


def _export(rows, name, export_format):
    if export_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {export_format}")
    content = to_csv(rows) if export_format == 'csv' else to_json(rows)
    filename = f"{name}_{date.today().isoformat()}.{export_format}"
    return content, filename, EXPORT_FORMATS[export_format]


def export_students(export_format='csv'):
    rows = []
    for student in Student.query.order_by(Student.surname, Student.name).all():
        rows.append({
            'Admission Number': student.admission_number,
            'Surname': student.surname,
            'Name': student.name,
            'Sex': student.sex or '',
            'Date of Birth': student.date_of_birth.isoformat() if student.date_of_birth else '',
            'Class': student.school_class.display_name if student.school_class else '',
            'Email': student.email or '',
            'Phone': student.phone or '',
            'Active': 'Yes' if student.is_active else 'No',
        })
    return _export(rows, 'students', export_format)


def export_classes(export_format='csv'):
    rows = []
    for entry in get_classes_with_student_count():
        school_class = entry['class']
        rows.append({
            'Class': school_class.name,
            'Section': school_class.section,
            'Class Teacher': school_class.class_teacher.full_name if school_class.class_teacher else '',
            'Students': entry['student_count'],
            'Subjects': ', '.join(subject.name for subject in school_class.subjects),
        })
    return _export(rows, 'classes', export_format)


def export_payments(export_format='csv', payments=None):
    if payments is None:
        payments = FeePayment.query.order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).all()
    rows = []
    for payment in payments:
        data = payment.to_dict()
        rows.append({
            'Receipt No': data['receipt_no'],
            'Date': data['payment_date'],
            'Admission Number': data['admission_number'] or '',
            'Student': data['student_name'] or '',
            'Fee': data['fee_name'] or '',
            'Amount': f"{payment.amount:.2f}",
            'Method': payment.payment_method,
            'Reference': payment.reference_number or '',
        })
    return _export(rows, 'payments', export_format)


def _latin1(text):
    # Core PDF fonts only cover latin-1
    return str(text if text is not None else '').encode('latin-1', 'replace').decode('latin-1')


def report_card_pdf(report_card, school_name='School'):
    student = report_card.student
    pdf = FPDF()
    pdf.add_page()

    pdf.set_font('Helvetica', 'B', 16)
    pdf.cell(0, 10, _latin1(school_name), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
    pdf.set_font('Helvetica', 'B', 13)
    pdf.cell(0, 8, _latin1(f'Report Card - {report_card.academic_year} Term {report_card.term}'),
             new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
    pdf.ln(4)

    pdf.set_font('Helvetica', '', 10)
    details = [
        ('Student', student.full_name if student else ''),
        ('Admission No', student.admission_number if student else ''),
        ('Class', report_card.school_class.display_name if report_card.school_class else ''),
        ('Position', f'{report_card.position_in_class}' if report_card.position_in_class else '-'),
        ('Attendance', f'{report_card.attendance_percentage:.1f}%'
         if report_card.attendance_percentage is not None else 'Not recorded'),
    ]
    for label, value in details:
        pdf.cell(40, 6, _latin1(f'{label}:'))
        pdf.cell(0, 6, _latin1(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    col_widths = [60, 30, 30, 30, 20, 20]
    headers = ['Subject', 'Marks', 'Max Marks', 'Percentage', 'Grade', 'Points']
    pdf.set_font('Helvetica', 'B', 9)
    for width, header in zip(col_widths, headers):
        pdf.cell(width, 7, header, border=1)
    pdf.ln()

    pdf.set_font('Helvetica', '', 9)
    for line in report_card.subjects:
        values = [
            line.subject.name if line.subject else '',
            f'{line.marks_obtained:g}' if line.marks_obtained is not None else '',
            f'{line.max_marks:g}' if line.max_marks is not None else '',
            f'{line.percentage:.2f}%' if line.percentage is not None else '',
            line.grade or '',
            f'{line.grade_point:.1f}' if line.grade_point is not None else '',
        ]
        for width, value in zip(col_widths, values):
            pdf.cell(width, 6, _latin1(value), border=1)
        pdf.ln()

    pdf.set_font('Helvetica', 'B', 9)
    pdf.cell(col_widths[0], 7, 'Total', border=1)
    pdf.cell(col_widths[1], 7, f'{report_card.total_marks_obtained or 0:g}', border=1)
    pdf.cell(col_widths[2], 7, f'{report_card.total_max_marks or 0:g}', border=1)
    pdf.cell(col_widths[3], 7, f'{report_card.total_percentage or 0:.2f}%', border=1)
    pdf.cell(col_widths[4], 7, _latin1(report_card.overall_grade or ''), border=1)
    pdf.cell(col_widths[5], 7, '', border=1)
    pdf.ln(12)

    for label, comment in (("Teacher's comments", report_card.teacher_comments),
                           ("Principal's comments", report_card.principal_comments)):
        pdf.set_font('Helvetica', 'B', 10)
        pdf.cell(0, 6, label, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font('Helvetica', '', 10)
        pdf.multi_cell(0, 6, _latin1(comment or '-'), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)

    return bytes(pdf.output())


def report_card_filename(report_card):
    student = report_card.student
    name = f"{student.admission_number}_{student.surname}" if student else f"report_card_{report_card.id}"
    return f"{name}_{report_card.academic_year}_T{report_card.term}.pdf".replace(' ', '_')
