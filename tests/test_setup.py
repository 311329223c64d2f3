"""Trust onboarding: trusts, schools, academic structure and admin users."""
from school_erp.extensions import db
from school_erp.models.master import SystemConfig, Trust
from school_erp.models.tenant import (
    AcademicYear, ClassSubject, House, MessageTemplate, Subject, TrustConfig, User, UserSchoolAssignment,
)
from tests.helpers import error_code, post


class TestCreateTrust:
    def test_creates_registration_defaults_and_schema(self, app, trust, tenant):
        assert trust['schema'] == 'school_erp_trust_GVET'
        assert trust['is_active'] is True

        with app.app_context():
            keys = {row.config_key for row in SystemConfig.query.filter_by(trust_id=trust['trust_id'])}
        assert keys == {'trust_initialized', 'max_schools', 'max_students_per_school'}

        templates = tenant(trust['trust_id'], lambda s: [t.template_name for t in s.query(MessageTemplate)])
        assert 'fee_reminder' in templates

    def test_duplicate_code(self, app, client, trust, admin_headers):
        with app.app_context():
            before = Trust.query.count()
        response = client.post('/api/v1/setup/trusts', json={
            'trust_name': 'Another', 'trust_code': 'GVET', 'subdomain': 'another',
            'contact_email': 'a@school-erp.org',
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'
        assert response.get_json()['error']['message'] == \
            "Trust with code 'GVET' or subdomain 'another' already exists"
        with app.app_context():
            assert Trust.query.count() == before
            assert Trust.query.filter_by(subdomain='another').first() is None

    def test_code_and_subdomain_formats(self, client, admin_headers):
        response = client.post('/api/v1/setup/trusts', json={
            'trust_name': 'Bad', 'trust_code': 'bad code', 'subdomain': 'Bad_Sub',
            'contact_email': 'a@school-erp.org',
        }, headers=admin_headers)
        fields = {issue['field'] for issue in response.get_json()['error']['details']['issues']}
        assert fields == {'trust_code', 'subdomain'}

    def test_trust_admin_cannot_create_trusts(self, client, trust, trust_headers):
        response = client.post('/api/v1/setup/trusts', json={
            'trust_name': 'Mine', 'trust_code': 'MINE', 'subdomain': 'mine',
            'contact_email': 'a@school-erp.org',
        }, headers=trust_headers)
        assert response.status_code == 403


class TestCreateSchool:
    def test_school_is_created_in_trust_database(self, school, trust):
        assert school['school_code'] == 'GVPS'
        assert school['trust_id'] == trust['trust_id']

    def test_duplicate_code_in_trust(self, client, school, trust, admin_headers):
        response = client.post('/api/v1/setup/schools', json={
            'school_name': 'Copy', 'school_code': 'GVPS', 'trust_id': trust['trust_id'],
            'contact_email': 'copy@greenvalley.org',
        }, headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_inactive_trust(self, app, client, trust, admin_headers):
        with app.app_context():
            db.session.get(Trust, trust['trust_id']).is_active = False
            db.session.commit()
        response = client.post('/api/v1/setup/schools', json={
            'school_name': 'Late', 'school_code': 'LATE', 'trust_id': trust['trust_id'],
            'contact_email': 'late@greenvalley.org',
        }, headers=admin_headers)
        assert error_code(response) == 'TRUST_NOT_FOUND'

    def test_established_year_range(self, client, trust, admin_headers):
        response = client.post('/api/v1/setup/schools', json={
            'school_name': 'Old', 'school_code': 'OLD', 'trust_id': trust['trust_id'],
            'contact_email': 'old@greenvalley.org', 'established_year': 1700,
        }, headers=admin_headers)
        assert response.status_code == 400


class TestAcademicYears:
    def test_only_one_current_year(self, client, school, year, admin_headers, trust, tenant):
        post(client, '/api/v1/setup/academic-years', {
            'school_id': school['school_id'], 'year_name': 'Next',
            'start_date': '2030-04-01', 'end_date': '2031-03-31', 'is_current': True,
        }, admin_headers)
        current = tenant(trust['trust_id'],
                         lambda s: [y.year_name for y in s.query(AcademicYear).filter_by(is_current=True)])
        assert current == ['Next']

    def test_dates_must_be_ordered(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/academic-years', json={
            'school_id': school['school_id'], 'year_name': 'Backwards',
            'start_date': '2030-04-01', 'end_date': '2030-03-31',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_duplicate_name(self, client, school, year, admin_headers):
        response = client.post('/api/v1/setup/academic-years', json={
            'school_id': school['school_id'], 'year_name': year['year_name'],
            'start_date': '2030-04-01', 'end_date': '2031-03-31',
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'


class TestClassStructure:
    def test_classes_sections_and_houses(self, classes, trust, tenant):
        assert len(classes['class_ids']) == 2
        houses = tenant(trust['trust_id'], lambda s: [h.house_name for h in s.query(House)])
        assert houses == ['Red']

    def test_year_must_belong_to_school(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/classes', json={
            'school_id': school['school_id'], 'academic_year_id': 99,
            'classes': [{'class_name': 'Grade 1', 'class_order': 1}],
        }, headers=admin_headers)
        assert response.status_code == 404

    def test_at_least_one_class(self, client, school, year, admin_headers):
        response = client.post('/api/v1/setup/classes', json={
            'school_id': school['school_id'], 'academic_year_id': year['academic_year_id'], 'classes': [],
        }, headers=admin_headers)
        assert response.status_code == 400


class TestAcademics:
    def test_subjects_are_mapped_once(self, client, school, classes, admin_headers, trust, tenant):
        payload = {
            'school_id': school['school_id'],
            'subjects': [{'subject_name': 'Mathematics', 'subject_code': 'MATH', 'class_ids': classes['class_ids']}],
            'grading_system': {'type': 'GRADE', 'grades': [
                {'grade': 'A', 'min_percentage': 80, 'max_percentage': 100},
                {'grade': 'B', 'min_percentage': 60, 'max_percentage': 79.99},
            ]},
        }
        first = post(client, '/api/v1/setup/academics', payload, admin_headers)
        assert first['subjects_created'] == 1
        assert first['class_mappings_created'] == 2

        second = post(client, '/api/v1/setup/academics', payload, admin_headers)
        assert second['subjects_created'] == 0
        assert second['class_mappings_created'] == 0

        def stored(session):
            grading = session.query(TrustConfig).filter_by(config_key='grading_system').one()
            return session.query(Subject).count(), session.query(ClassSubject).count(), grading.config_value

        subjects, mappings, grading = tenant(trust['trust_id'], stored)
        assert (subjects, mappings) == (1, 2)
        assert grading['pass_percentage'] == 40

    def test_unknown_classes(self, client, school, classes, admin_headers):
        response = client.post('/api/v1/setup/academics', json={
            'school_id': school['school_id'],
            'subjects': [{'subject_name': 'Art', 'subject_code': 'ART', 'class_ids': [999]}],
            'grading_system': {'type': 'PERCENTAGE'},
        }, headers=admin_headers)
        assert response.status_code == 404

    def test_grade_bounds(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/academics', json={
            'school_id': school['school_id'], 'subjects': [],
            'grading_system': {'type': 'GRADE', 'grades': [{'grade': 'A', 'min_percentage': 90,
                                                            'max_percentage': 80}]},
        }, headers=admin_headers)
        fields = [issue['field'] for issue in response.get_json()['error']['details']['issues']]
        assert fields == ['grading_system.grades[0].max_percentage']


class TestSchoolConfig:
    def test_defaults_are_merged(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/config', json={
            'school_id': school['school_id'], 'config': {'fee_late_days': 10, 'enable_whatsapp': True},
        }, headers=admin_headers)
        config = response.get_json()['data']['config']
        assert config['fee_late_days'] == 10
        assert config['enable_whatsapp'] is True
        assert config['attendance_required_percent'] == 75

    def test_without_overrides(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/config', json={'school_id': school['school_id']},
                               headers=admin_headers)
        assert response.get_json()['data']['config']['session_timeout_minutes'] == 60


class TestAdminUsers:
    def test_school_roles_get_assignments(self, client, school, admin_headers, trust, tenant):
        data = post(client, '/api/v1/setup/roles', {
            'school_id': school['school_id'],
            'admin_users': [
                {'email': 'trustee@greenvalley.org', 'password': 'Secret#123', 'full_name': 'Meera Iyer',
                 'role': 'TRUST_ADMIN'},
                {'email': 'head@greenvalley.org', 'password': 'Secret#123', 'full_name': 'Arun Kumar',
                 'role': 'SCHOOL_ADMIN'},
            ],
        }, admin_headers)
        assert data['users_created'] == 2
        assert data['school_assignments'] == 1

        def stored(session):
            trustee = session.query(User).filter_by(email='trustee@greenvalley.org').one()
            return trustee.school_id, trustee.last_name, session.query(UserSchoolAssignment).count()

        assert tenant(trust['trust_id'], stored) == (None, 'Iyer', 1)

    def test_duplicate_email_in_request(self, client, school, admin_headers):
        user = {'email': 'twice@greenvalley.org', 'password': 'Secret#123', 'full_name': 'Twice',
                'role': 'ACCOUNTANT'}
        response = client.post('/api/v1/setup/roles', json={
            'school_id': school['school_id'], 'admin_users': [user, user],
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_teacher_is_not_an_admin_role(self, client, school, admin_headers):
        response = client.post('/api/v1/setup/roles', json={
            'school_id': school['school_id'],
            'admin_users': [{'email': 't@greenvalley.org', 'password': 'Secret#123', 'full_name': 'T',
                             'role': 'TEACHER'}],
        }, headers=admin_headers)
        assert response.status_code == 400
