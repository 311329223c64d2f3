"""Login and logout against trust users and system users."""
import json
import logging
import secrets
from datetime import datetime, timedelta

from flask import current_app, request
from sqlalchemy.exc import SQLAlchemyError

from school_erp.audit import record_system_event
from school_erp.errors import InvalidCredentialsError
from school_erp.extensions import db
from school_erp.models.master import SystemUser, Trust, UserSession
from school_erp.models.tenant import User
from school_erp.rbac import issue_token
from school_erp.security import verify_password
from school_erp.tenancy import trust_session

logger = logging.getLogger(__name__)


class LoginCandidate:
    """A matched account plus the session that can persist ``last_login``."""

    def __init__(self, account, trust_id, session):
        self.account = account
        self.trust_id = trust_id
        self.session = session

    @property
    def school_id(self):
        return getattr(self.account, 'school_id', None)

    def identity(self):
        return {
            'user_id': self.account.id,
            'email': self.account.email,
            'role': self.account.role,
            'trust_id': self.trust_id,
            'school_id': self.school_id,
        }


def find_account(email, trust_code=None):
    trusts = Trust.query.filter_by(is_active=True)
    if trust_code:
        trusts = trusts.filter_by(trust_code=trust_code)

    for trust in trusts.order_by(Trust.id).all():
        session = trust_session(trust.id)
        try:
            user = session.query(User).filter_by(email=email, is_active=True).first()
        except SQLAlchemyError as exc:
            logger.warning('Skipping trust %s during login lookup: %s', trust.trust_code, exc)
            session.rollback()
            continue
        if user is not None:
            return LoginCandidate(user, trust.id, session)

    system_user = SystemUser.query.filter_by(email=email, is_active=True).first()
    if system_user is not None:
        return LoginCandidate(system_user, None, db.session)
    return None


def authenticate_credentials(email, password, trust_code=None):
    candidate = find_account(email, trust_code)
    if candidate is None or not verify_password(password, candidate.account.password_hash):
        logger.info('Failed login for %s', email)
        record_system_event('LOGIN_FAILED', details={'email': email, 'trust_code': trust_code})
        raise InvalidCredentialsError('Invalid credentials')

    candidate.account.last_login = datetime.utcnow()
    candidate.session.commit()
    return candidate


def session_login(data, flask_session):
    candidate = authenticate_credentials(data['email'], data['password'], data.get('trust_code'))
    identity = candidate.identity()

    now = datetime.utcnow()
    if data.get('remember_me'):
        expires_at = now + timedelta(days=current_app.config['REMEMBER_ME_DAYS'])
    else:
        expires_at = now + timedelta(hours=current_app.config['SESSION_LIFETIME_HOURS'])

    row = UserSession(
        session_id=secrets.token_hex(32),
        user_id=identity['user_id'],
        trust_id=identity['trust_id'],
        data=json.dumps(identity),
        ip_address=request.remote_addr,
        user_agent=(request.headers.get('User-Agent') or '')[:500],
        expires_at=expires_at,
    )
    db.session.add(row)
    record_system_event('SESSION_LOGIN', trust_id=identity['trust_id'], user_id=identity['user_id'],
                        activity_id='02-001', entity_type='session', commit=False)
    db.session.commit()

    flask_session.clear()
    flask_session['session_id'] = row.session_id
    flask_session.permanent = bool(data.get('remember_me'))

    result = dict(identity, session_id=row.session_id, expires_at=expires_at, created_at=now)
    return result


def token_login(data):
    candidate = authenticate_credentials(data['email'], data['password'], data.get('trust_code'))
    identity = candidate.identity()
    now = datetime.utcnow()
    token = issue_token(identity, now=now)

    record_system_event('TOKEN_ISSUED', trust_id=identity['trust_id'], user_id=identity['user_id'],
                        activity_id='02-002', entity_type='token')
    return dict(
        identity,
        access_token=token,
        token_type='Bearer',
        expires_in=current_app.config['JWT_EXPIRES_SECONDS'],
        created_at=now,
    )


def logout(flask_session):
    session_id = flask_session.pop('session_id', None)
    removed = False
    if session_id:
        row = db.session.get(UserSession, session_id)
        if row is not None:
            db.session.delete(row)
            db.session.commit()
            removed = True
    flask_session.clear()
    return {'logged_out': True, 'session_removed': removed}
