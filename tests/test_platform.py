"""Envelope, authentication, access control and trust resolution."""
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from school_erp.models.master import SystemAuditLog
from school_erp.tenancy import TrustContextCache
from tests.helpers import error_code

ROOT = Path(__file__).resolve().parents[1]

SERVICE_MODULES = [
    'school_erp.modules.attendance.services',
    'school_erp.modules.communications.services',
    'school_erp.modules.dashboards.services',
    'school_erp.modules.fees.services',
    'school_erp.modules.reports.services',
    'school_erp.modules.setup.services',
    'school_erp.exporters',
]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestAppFactory:
    def test_every_area_is_registered(self, app):
        assert {'health', 'data', 'setup', 'auth', 'users', 'students', 'fees', 'attendance', 'reports',
                'dashboards', 'communications', 'wizards'} <= set(app.blueprints)

    @pytest.mark.parametrize('module', SERVICE_MODULES)
    def test_module_imports_on_its_own(self, module):
        """Each module must import first in a fresh interpreter, whatever the order."""
        result = subprocess.run([sys.executable, '-c', f'import {module}'], capture_output=True, text=True,
                                cwd=ROOT)
        assert result.returncode == 0, result.stderr


class TestHealth:
    def test_liveness(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_api_health_uses_envelope(self, client):
        body = client.get('/api/v1/health').get_json()
        assert body['success'] is True
        assert body['data']['ok'] is True

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/v1/nothing-here')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


class TestAuthentication:
    def test_missing_credentials(self, client, trust):
        response = client.get('/api/v1/users', headers={'X-Trust-Slug': 'dev-trust'})
        assert response.status_code == 401
        assert error_code(response) == 'UNAUTHORIZED'

    def test_garbage_token(self, client, trust):
        response = client.get('/api/v1/users', headers={
            'X-Trust-Slug': 'dev-trust', 'Authorization': 'Bearer not-a-token',
        })
        assert response.status_code == 401

    def test_token_from_other_secret_is_rejected(self, app, client, trust, make_headers):
        headers = make_headers('TRUST_ADMIN', trust_id=trust['trust_id'])
        app.config['JWT_SECRET'] = 'rotated-secret'
        assert client.get('/api/v1/users', headers=headers).status_code == 401


class TestAccessControl:
    def test_role_outside_rule_is_denied_and_audited(self, app, client, trust, make_headers):
        headers = make_headers('PARENT', user_id=42, trust_id=trust['trust_id'])
        response = client.get('/api/v1/users', headers=headers)
        assert response.status_code == 403
        assert error_code(response) == 'FORBIDDEN'
        assert 'SCHOOL_ADMIN' in response.get_json()['error']['message']

        with app.app_context():
            denial = SystemAuditLog.query.filter_by(event_type='RBAC_DENIED').one()
            assert denial.user_id == 42
            assert denial.details['endpoint'] == 'users.list_users'

    def test_tenant_user_cannot_reach_other_trust(self, client, trust, make_headers):
        headers = make_headers('TRUST_ADMIN', trust_id=trust['trust_id'] + 1)
        response = client.get('/api/v1/users', headers=headers)
        assert response.status_code == 403

    def test_system_admin_crosses_trusts(self, client, trust, admin_headers):
        assert client.get('/api/v1/users', headers=admin_headers).status_code == 200

    def test_every_api_endpoint_has_a_rule(self, app):
        from school_erp.rbac import POLICY

        endpoints = {rule.endpoint for rule in app.url_map.iter_rules() if rule.endpoint != 'static'}
        assert endpoints - set(POLICY) == set()


class TestTrustResolution:
    def test_unknown_slug(self, client, admin_headers):
        headers = dict(admin_headers, **{'X-Trust-Slug': 'nowhere'})
        response = client.get('/api/v1/users', headers=headers)
        assert response.status_code == 404
        assert error_code(response) == 'TRUST_NOT_FOUND'

    def test_subdomain_wins_over_header(self, client, trust, admin_headers):
        headers = dict(admin_headers, **{'X-Trust-Slug': 'nowhere'})
        response = client.get('/api/v1/users', headers=headers, base_url='http://dev-trust.erp.example.org')
        assert response.status_code == 200

    def test_bare_host_rejected_outside_development(self, app, client, trust, admin_headers):
        app.config['ENVIRONMENT'] = 'production'
        response = client.get('/api/v1/users', headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_DOMAIN'

    def test_context_is_cached(self, app, client, trust, admin_headers):
        client.get('/api/v1/users', headers=admin_headers)
        cache = app.extensions['trust_cache']
        assert cache.get('dev-trust')['trust_id'] == trust['trust_id']
        assert cache.get('dev-trust')['storage_config']['base_path'] == '/uploads/dev-trust'


class TestTrustContextCache:
    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = TrustContextCache(ttl=60, clock=clock)
        cache.set('alpha', {'trust_id': 1})
        clock.now += 59
        assert cache.get('alpha') == {'trust_id': 1}
        clock.now += 1
        assert cache.get('alpha') is None
        assert len(cache) == 0

    def test_clear_one_or_all(self):
        cache = TrustContextCache(ttl=60, clock=FakeClock())
        cache.set('alpha', {})
        cache.set('beta', {})
        cache.clear('alpha')
        assert cache.get('alpha') is None and cache.get('beta') == {}
        cache.clear()
        assert len(cache) == 0


class TestValidationEnvelope:
    def test_unknown_field_is_reported(self, client, trust, admin_headers):
        response = client.post('/api/v1/setup/trusts', json={
            'trust_name': 'Other', 'trust_code': 'OTH', 'subdomain': 'other',
            'contact_email': 'a@school-erp.org', 'colour': 'blue',
        }, headers=admin_headers)
        assert response.status_code == 400
        issues = response.get_json()['error']['details']['issues']
        assert issues == [{'field': 'colour', 'message': 'Unrecognized field'}]

    def test_nested_issue_paths(self, client, school, year, admin_headers):
        response = client.post('/api/v1/setup/classes', json={
            'school_id': school['school_id'],
            'academic_year_id': year['academic_year_id'],
            'classes': [{'class_name': 'Grade 1', 'class_order': 1,
                         'sections': [{'section_name': 'A', 'capacity': 500}]}],
        }, headers=admin_headers)
        assert response.status_code == 400
        fields = [issue['field'] for issue in response.get_json()['error']['details']['issues']]
        assert 'classes[0].sections[0].capacity' in fields

    def test_body_must_be_object(self, client, trust, admin_headers):
        response = client.post('/api/v1/setup/trusts', json=['not', 'an', 'object'], headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == 'VALIDATION_ERROR'


class TestSecurityHeaders:
    def test_headers_present(self, client):
        response = client.get('/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'


def test_audit_rows_are_json(app, client, trust):
    with app.app_context():
        created = SystemAuditLog.query.filter_by(event_type='TRUST_CREATED').one()
        assert created.details['trust_code'] == 'GVET'
        assert created.activity_id == '01-001'


class TestGunicornConfig:
    def test_worker_exit_disposes_trust_connections(self, app, trust):
        import gunicorn_config

        connections = app.extensions['connections']
        with app.app_context():
            connections.get_trust_connection(trust['trust_id'])
        assert trust['trust_id'] in connections

        gunicorn_config.worker_exit(None, SimpleNamespace(wsgi=app))
        assert len(connections) == 0

    def test_no_development_reload(self):
        import gunicorn_config

        assert not hasattr(gunicorn_config, 'reload')
        assert gunicorn_config.worker_class == 'sync'
