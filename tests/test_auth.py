"""Token and cookie-session login against trust and system users."""
from datetime import datetime, timedelta

from school_erp import create_app
from school_erp.extensions import db
from school_erp.models.master import SystemAuditLog, SystemUser, UserSession
from school_erp.security import hash_password
from tests.helpers import error_code, post


def login(client, email, password='Secret#123', kind='tokens', **extra):
    return client.post(f'/api/v1/auth/{kind}', json=dict(email=email, password=password, **extra))


class TestTokenLogin:
    def test_trust_user_token_grants_access(self, client, trust, create_user):
        create_user('TRUST_ADMIN', 'trustee@greenvalley.org', full_name='Meera Iyer')
        response = login(client, 'trustee@greenvalley.org')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['role'] == 'TRUST_ADMIN'
        assert data['trust_id'] == trust['trust_id']
        assert data['token_type'] == 'Bearer'

        listed = client.get('/api/v1/users', headers={
            'Authorization': f"Bearer {data['access_token']}", 'X-Trust-Slug': 'dev-trust',
        })
        assert listed.status_code == 200
        assert listed.get_json()['data']['pagination']['total'] == 1

    def test_system_user_fallback(self, app, client):
        with app.app_context():
            db.session.add(SystemUser(email='root@school-erp.org', password_hash=hash_password('Sup3rSecret'),
                                      role='SYSTEM_ADMIN'))
            db.session.commit()
        data = login(client, 'root@school-erp.org', password='Sup3rSecret').get_json()['data']
        assert data['role'] == 'SYSTEM_ADMIN'
        assert data['trust_id'] is None

    def test_trust_code_narrows_lookup(self, client, trust, create_user):
        create_user('TRUST_ADMIN', 'trustee@greenvalley.org')
        response = login(client, 'trustee@greenvalley.org', trust_code='OTHER')
        assert response.status_code == 401

    def test_wrong_password_is_audited(self, app, client, trust, create_user):
        create_user('TRUST_ADMIN', 'trustee@greenvalley.org')
        response = login(client, 'trustee@greenvalley.org', password='nope')
        assert response.status_code == 401
        assert error_code(response) == 'INVALID_CREDENTIALS'
        with app.app_context():
            failure = SystemAuditLog.query.filter_by(event_type='LOGIN_FAILED').one()
            assert failure.details['email'] == 'trustee@greenvalley.org'

    def test_inactive_user_cannot_log_in(self, client, trust, admin_headers):
        post(client, '/api/v1/users', {'email': 'gone@greenvalley.org', 'full_name': 'Gone', 'role': 'TRUST_ADMIN',
                                       'password': 'Secret#123', 'is_active': False}, admin_headers)
        assert login(client, 'gone@greenvalley.org').status_code == 401


class TestSessionLogin:
    def test_cookie_session_authenticates_requests(self, app, client, trust, create_user):
        create_user('TRUST_ADMIN', 'trustee@greenvalley.org')
        response = login(client, 'trustee@greenvalley.org', kind='sessions')
        session_id = response.get_json()['data']['session_id']
        with app.app_context():
            assert db.session.get(UserSession, session_id).user_id is not None

        assert client.get('/api/v1/users', headers={'X-Trust-Slug': 'dev-trust'}).status_code == 200

        logout = client.delete('/api/v1/auth/sessions').get_json()['data']
        assert logout == {'logged_out': True, 'session_removed': True}
        with app.app_context():
            assert db.session.get(UserSession, session_id) is None
        assert client.get('/api/v1/users', headers={'X-Trust-Slug': 'dev-trust'}).status_code == 401

    def test_logout_without_session(self, client):
        data = client.delete('/api/v1/auth/sessions').get_json()['data']
        assert data['session_removed'] is False

    def test_expired_session_row_is_discarded(self, app, client, trust, create_user):
        create_user('TRUST_ADMIN', 'trustee@greenvalley.org')
        session_id = login(client, 'trustee@greenvalley.org', kind='sessions').get_json()['data']['session_id']
        with app.app_context():
            db.session.get(UserSession, session_id).expires_at = datetime.utcnow() - timedelta(minutes=1)
            db.session.commit()

        assert client.get('/api/v1/users', headers={'X-Trust-Slug': 'dev-trust'}).status_code == 401
        with app.app_context():
            assert db.session.get(UserSession, session_id) is None

    def test_unknown_fields_rejected(self, client):
        response = client.post('/api/v1/auth/sessions', json={
            'email': 'a@school-erp.org', 'password': 'x', 'captcha': '1234',
        })
        assert response.status_code == 400


class TestRateLimit:
    def test_login_attempts_are_limited(self, tmp_path):
        app = create_app('testing', config_override={
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'limits.db'}",
            'RATELIMIT_ENABLED': True,
        })
        client = app.test_client()
        statuses = [login(client, 'nobody@school-erp.org', password='wrong').status_code for _ in range(6)]
        assert statuses[:5] == [401] * 5
        assert statuses[5] == 429
        with app.app_context():
            db.session.remove()
            db.engine.dispose()
