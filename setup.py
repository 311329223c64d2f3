from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="school-erp",
    version="1.0.0",
    author="School ERP Team",
    author_email="dev@school-erp.org",
    description="Multi-tenant School ERP backend (trusts, schools, students, fees, attendance)",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*")),
    py_modules=["wsgi", "gunicorn_config", "build"],
    include_package_data=True,
    package_data={"school_erp": ["migrations/master/*.sql", "migrations/tenant/*.sql"]},
    install_requires=[
        'Flask>=2.3.3',
        'Flask-SQLAlchemy>=3.0.5',
        'Flask-WTF>=1.2.1',
        'Flask-Limiter>=3.5.0',
        'python-dotenv>=1.0.0',
        'SQLAlchemy>=2.0.20',
        'WTForms>=3.0.1',
        'email-validator>=2.0.0',
        'Werkzeug>=2.3.7',
        'gunicorn>=21.2.0',
        'mysql-connector-python>=8.1.0',
        'bcrypt>=4.0.1',
        'python-jose>=3.3.0',
        'openpyxl>=3.1.2',
        'reportlab>=4.0.4',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    entry_points={
        'console_scripts': [
            'school-erp=wsgi:main',
        ],
    },
)
