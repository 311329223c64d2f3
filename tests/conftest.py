"""
Shared fixtures: a master database and per-trust databases on sqlite files
under tmp_path, plus helpers that build a trust, school, academic year and
class structure through the HTTP API.
"""
from datetime import date, timedelta

import pytest

from school_erp import create_app
from school_erp.extensions import db
from school_erp.models.tenant import Section
from school_erp.rbac import issue_token
from tests.helpers import post

TRUST_SLUG = 'dev-trust'


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', config_override={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'master.db'}",
        'TRUST_DATABASE_URL_TEMPLATE': f'sqlite:///{tmp_path}/{{schema}}.db',
        'EXPORT_DIR': str(tmp_path / 'exports'),
    })
    yield app
    with app.app_context():
        db.session.remove()
        app.extensions['connections'].close_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_headers(app):
    """Build request headers carrying a signed token for the given identity."""
    def build(role, user_id=1, trust_id=None, school_id=None, email=None, slug=TRUST_SLUG):
        claims = {
            'user_id': user_id,
            'email': email or f'{role.lower()}@school-erp.org',
            'role': role,
            'trust_id': trust_id,
            'school_id': school_id,
        }
        with app.app_context():
            token = issue_token(claims)
        headers = {'Authorization': f'Bearer {token}'}
        if slug:
            headers['X-Trust-Slug'] = slug
        return headers
    return build


@pytest.fixture
def admin_headers(make_headers):
    return make_headers('SYSTEM_ADMIN')


@pytest.fixture
def tenant(app):
    """Run ``fn(session)`` against a trust database outside of any request."""
    def run(trust_id, fn):
        with app.app_context():
            session = app.extensions['connections'].trust_session(trust_id)
            try:
                return fn(session)
            finally:
                session.close()
    return run


@pytest.fixture
def trust(client, admin_headers):
    return post(client, '/api/v1/setup/trusts', {
        'trust_name': 'Green Valley Educational Trust',
        'trust_code': 'GVET',
        'subdomain': TRUST_SLUG,
        'contact_email': 'office@greenvalley.org',
        'contact_phone': '9876543210',
    }, admin_headers)


@pytest.fixture
def school(client, admin_headers, trust):
    return post(client, '/api/v1/setup/schools', {
        'school_name': 'Green Valley Public School',
        'school_code': 'GVPS',
        'trust_id': trust['trust_id'],
        'contact_email': 'principal@greenvalley.org',
        'established_year': 1998,
    }, admin_headers)


@pytest.fixture
def year(client, admin_headers, school):
    today = date.today()
    return post(client, '/api/v1/setup/academic-years', {
        'school_id': school['school_id'],
        'year_name': f'{today.year}-{today.year + 1}',
        'start_date': (today - timedelta(days=200)).isoformat(),
        'end_date': (today + timedelta(days=160)).isoformat(),
        'is_current': True,
    }, admin_headers)


@pytest.fixture
def classes(client, admin_headers, school, year, trust, tenant):
    """Grades 1 and 2, each with section A; returns class and section ids."""
    data = post(client, '/api/v1/setup/classes', {
        'school_id': school['school_id'],
        'academic_year_id': year['academic_year_id'],
        'classes': [
            {'class_name': 'Grade 1', 'class_order': 1, 'sections': [{'section_name': 'A', 'capacity': 40}]},
            {'class_name': 'Grade 2', 'class_order': 2, 'sections': [{'section_name': 'A', 'capacity': 40}]},
        ],
        'houses': [{'house_name': 'Red', 'house_color': 'red'}],
    }, admin_headers)

    def sections(session):
        return {row.class_id: row.id for row in session.query(Section).all()}

    section_ids = tenant(trust['trust_id'], sections)
    return {
        'class_ids': data['class_ids'],
        'section_ids': [section_ids[class_id] for class_id in data['class_ids']],
    }


@pytest.fixture
def trust_headers(make_headers, trust):
    """Headers for a TRUST_ADMIN of the test trust."""
    return make_headers('TRUST_ADMIN', trust_id=trust['trust_id'])


@pytest.fixture
def create_user(client, admin_headers):
    def create(role, email, school_id=None, full_name='Staff Member', password='Secret#123'):
        payload = {'email': email, 'full_name': full_name, 'role': role, 'password': password}
        if school_id:
            payload['school_id'] = school_id
        return post(client, '/api/v1/users', payload, admin_headers)
    return create


@pytest.fixture
def admit(client, admin_headers, school, year, classes):
    """Admit and approve a student into Grade 1 (or the given class)."""
    def create(admission_number, first_name='Asha', last_name='Rao', class_index=0, gender='FEMALE',
               approve=True):
        admission = post(client, '/api/v1/students/admissions', {
            'school_id': school['school_id'],
            'academic_year_id': year['academic_year_id'],
            'admission_number': admission_number,
            'first_name': first_name,
            'last_name': last_name,
            'date_of_birth': '2018-06-01',
            'gender': gender,
            'class_id': classes['class_ids'][class_index],
            'section_id': classes['section_ids'][class_index],
            'father_name': 'Ravi Rao',
            'contact_phone': '9876501234',
            'application_date': (date.today() - timedelta(days=30)).isoformat(),
        }, admin_headers)
        if approve:
            review = client.put(f"/api/v1/students/admissions/{admission['admission_id']}", json={
                'status': 'APPROVED',
                'admission_date': (date.today() - timedelta(days=20)).isoformat(),
            }, headers=admin_headers)
            assert review.status_code == 200, review.get_json()
        return admission
    return create


@pytest.fixture
def fee_structure(client, admin_headers, year, classes):
    today = date.today()
    return post(client, '/api/v1/fees/structures', {
        'fee_head_name': 'Tuition',
        'class_id': classes['class_ids'][0],
        'academic_year_id': year['academic_year_id'],
        'amount': 12000,
        'installments': [
            {'installment_name': 'Term 1', 'due_date': (today - timedelta(days=60)).isoformat(), 'amount': 6000},
            {'installment_name': 'Term 2', 'due_date': (today + timedelta(days=60)).isoformat(), 'amount': 6000},
        ],
    }, admin_headers)
