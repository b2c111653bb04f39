from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="school-dashboard",
    version="1.0.0",
    description="School management dashboard: students, staff, academics, fees, attendance and report cards",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        'academic_views',
        'app',
        'app_models',
        'attendance_data',
        'attendance_views',
        'auth',
        'auth_service',
        'build',
        'class_data',
        'config',
        'dashboard_views',
        'data_helpers',
        'exam_data',
        'exports',
        'fee_data',
        'fee_views',
        'forms',
        'grading',
        'gunicorn_config',
        'health',
        'registration',
        'registration_views',
        'report_card_data',
        'report_card_views',
        'results',
        'security',
        'staff_data',
        'staff_views',
        'student_data',
        'student_views',
        'term_data',
        'wsgi',
    ],
    include_package_data=True,
    install_requires=[
        'Flask==2.3.3',
        'Flask-SQLAlchemy==3.0.5',
        'Flask-WTF==1.2.1',
        'python-dotenv==1.0.0',
        'SQLAlchemy==2.0.43',
        'WTForms==3.0.1',
        'Werkzeug==2.3.7',
        'click>=8.1',
        'gunicorn==21.2.0',
        'psycopg2-binary==2.9.10',
        'bcrypt==4.0.1',
        'python-jose==3.3.0',
        'fpdf2==2.7.9',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: Flask",
        "Operating System :: OS Independent",
    ],
    entry_points={
        'console_scripts': [
            'school-dashboard=wsgi:main',
        ],
    },
)
