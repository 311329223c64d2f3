"""
Role based access control.

Every API endpoint has exactly one entry in ``POLICY``. A single
``before_request`` hook resolves the trust context, authenticates the caller
and checks the rule; views never repeat these checks.
"""
import logging
from collections import namedtuple
from datetime import datetime

from flask import current_app, g, request, session
from jose import JWTError, jwt

from school_erp.audit import record_system_event
from school_erp.errors import AuthenticationError, ForbiddenError
from school_erp.extensions import db
from school_erp.models.master import UserSession
from school_erp.tenancy import ensure_trust_context, parse_config_value

logger = logging.getLogger(__name__)

SYSTEM_ADMIN = 'SYSTEM_ADMIN'
GROUP_ADMIN = 'GROUP_ADMIN'
TRUST_ADMIN = 'TRUST_ADMIN'
SCHOOL_ADMIN = 'SCHOOL_ADMIN'
TEACHER = 'TEACHER'
ACCOUNTANT = 'ACCOUNTANT'
PARENT = 'PARENT'
STUDENT = 'STUDENT'

SYSTEM_ROLES = frozenset({SYSTEM_ADMIN, GROUP_ADMIN})
TRUST_ROLES = SYSTEM_ROLES | {TRUST_ADMIN}
SCHOOL_ROLES = TRUST_ROLES | {SCHOOL_ADMIN}
ACCOUNTANT_ROLES = SCHOOL_ROLES | {ACCOUNTANT}
TEACHER_ROLES = SCHOOL_ROLES | {TEACHER}
LEAVE_ROLES = TEACHER_ROLES | {PARENT}

PUBLIC = 'PUBLIC'
AUTHENTICATED = 'AUTHENTICATED'

Rule = namedtuple('Rule', ['roles', 'tenant'])


def _rule(roles, tenant=True):
    return Rule(roles, tenant)


POLICY = {
    # Health
    'health.health': _rule(PUBLIC, tenant=False),
    'health.api_health': _rule(PUBLIC, tenant=False),

    # Auth
    'auth.session_login': _rule(PUBLIC, tenant=False),
    'auth.token_login': _rule(PUBLIC, tenant=False),
    'auth.logout': _rule(PUBLIC, tenant=False),

    # System administration (master database)
    'data.connection_status': _rule(SYSTEM_ROLES, tenant=False),
    'data.init_master_schema': _rule(SYSTEM_ROLES, tenant=False),
    'data.init_trust_schema': _rule(SYSTEM_ROLES, tenant=False),
    'data.upsert_config': _rule(SYSTEM_ROLES, tenant=False),
    'data.register_trust': _rule(SYSTEM_ROLES, tenant=False),
    'data.list_trusts': _rule(SYSTEM_ROLES, tenant=False),
    'data.update_trust': _rule(SYSTEM_ROLES, tenant=False),
    'data.create_system_user': _rule(SYSTEM_ROLES, tenant=False),
    'data.record_migration': _rule(SYSTEM_ROLES, tenant=False),
    'data.manage_session': _rule(SYSTEM_ROLES, tenant=False),
    'data.write_system_audit': _rule(SYSTEM_ROLES, tenant=False),
    'data.write_tenant_audit': _rule(SYSTEM_ROLES, tenant=False),
    'data.config_cache': _rule(SYSTEM_ROLES, tenant=False),
    'data.connection_cleanup': _rule(SYSTEM_ROLES, tenant=False),

    # Setup
    'setup.create_trust': _rule(SYSTEM_ROLES, tenant=False),
    'setup.create_school': _rule(SYSTEM_ROLES, tenant=False),
    'setup.create_academic_year': _rule(SYSTEM_ROLES),
    'setup.create_classes': _rule(SYSTEM_ROLES),
    'setup.configure_academics': _rule(SYSTEM_ROLES),
    'setup.configure_school': _rule(SYSTEM_ROLES),
    'setup.create_role_users': _rule(SYSTEM_ROLES),

    # Users
    'users.list_users': _rule(SCHOOL_ROLES),
    'users.get_user': _rule(SCHOOL_ROLES),
    'users.create_user': _rule(SCHOOL_ROLES),
    'users.assign_school': _rule(SCHOOL_ROLES),
    'users.change_role': _rule(SCHOOL_ROLES),
    'users.allocate_teacher': _rule(SCHOOL_ROLES),
    'users.update_profile': _rule(SCHOOL_ROLES),
    'users.link_parent': _rule(SCHOOL_ROLES),

    # Students
    'students.list_students': _rule(SCHOOL_ROLES),
    'students.get_student': _rule(SCHOOL_ROLES),
    'students.admit_student': _rule(SCHOOL_ROLES),
    'students.review_admission': _rule(SCHOOL_ROLES),
    'students.promote_student': _rule(SCHOOL_ROLES),
    'students.transfer_student': _rule(SCHOOL_ROLES),
    'students.allocate_roll': _rule(SCHOOL_ROLES),
    'students.update_details': _rule(SCHOOL_ROLES),
    'students.add_document': _rule(SCHOOL_ROLES),
    'students.analytics': _rule(SCHOOL_ROLES),

    # Fees
    'fees.create_structure': _rule(ACCOUNTANT_ROLES),
    'fees.assign_fee': _rule(ACCOUNTANT_ROLES),
    'fees.apply_discount': _rule(ACCOUNTANT_ROLES),
    'fees.assign_service': _rule(ACCOUNTANT_ROLES),
    'fees.create_late_fee_rule': _rule(ACCOUNTANT_ROLES),
    'fees.collect_fee': _rule(ACCOUNTANT_ROLES),
    'fees.initiate_gateway_payment': _rule(ACCOUNTANT_ROLES),
    'fees.refund': _rule(ACCOUNTANT_ROLES),
    'fees.fee_report': _rule(ACCOUNTANT_ROLES),
    'fees.forecast': _rule(ACCOUNTANT_ROLES),

    # Attendance
    'attendance.mark_daily': _rule(TEACHER_ROLES),
    'attendance.apply_leave': _rule(LEAVE_ROLES),
    'attendance.report': _rule(TEACHER_ROLES),
    'attendance.profile': _rule(TEACHER_ROLES),

    # Reports
    'reports.student_profiles': _rule(ACCOUNTANT_ROLES),
    'reports.fee_collection': _rule(ACCOUNTANT_ROLES),
    'reports.attendance_summary': _rule(ACCOUNTANT_ROLES),
    'reports.academic_performance': _rule(ACCOUNTANT_ROLES),
    'reports.custom_report': _rule(ACCOUNTANT_ROLES),
    'reports.export_report': _rule(ACCOUNTANT_ROLES),
    'reports.download_export': _rule(ACCOUNTANT_ROLES),

    # Dashboards
    'dashboards.trust_dashboard': _rule(TRUST_ROLES),
    'dashboards.school_dashboard': _rule(SCHOOL_ROLES),
    'dashboards.teacher_dashboard': _rule(TEACHER_ROLES),

    # Communications
    'communications.send_message': _rule(frozenset({TRUST_ADMIN, SCHOOL_ADMIN, TEACHER})),
    'communications.create_announcement': _rule(frozenset({TRUST_ADMIN, SCHOOL_ADMIN})),
    'communications.acknowledge_announcement': _rule(AUTHENTICATED),
    'communications.create_alert': _rule(frozenset({TRUST_ADMIN})),
    'communications.respond_to_alert': _rule(AUTHENTICATED),

    # Wizards check their own roles per definition
    'wizards.list_wizards': _rule(AUTHENTICATED, tenant=False),
    'wizards.get_state': _rule(AUTHENTICATED, tenant=False),
    'wizards.process_step': _rule(AUTHENTICATED, tenant=False),
    'wizards.navigate': _rule(AUTHENTICATED, tenant=False),
    'wizards.restart': _rule(AUTHENTICATED, tenant=False),
    'wizards.summary': _rule(AUTHENTICATED, tenant=False),
}


def issue_token(claims, now=None):
    now = now or datetime.utcnow()
    lifetime = current_app.config['JWT_EXPIRES_SECONDS']
    payload = dict(claims)
    payload['iat'] = int(now.timestamp())
    payload['exp'] = int(now.timestamp()) + lifetime
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=current_app.config['JWT_ALGORITHM'])


def _identity(claims):
    return {
        'user_id': claims.get('user_id'),
        'email': claims.get('email'),
        'role': claims.get('role'),
        'trust_id': claims.get('trust_id'),
        'school_id': claims.get('school_id'),
    }


def _user_from_token(token):
    try:
        claims = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config['JWT_ALGORITHM']],
        )
    except JWTError:
        raise AuthenticationError('Invalid or expired token')
    return _identity(claims)


def _user_from_session():
    session_id = session.get('session_id')
    if not session_id:
        return None
    row = db.session.get(UserSession, session_id)
    if row is None:
        session.pop('session_id', None)
        return None
    if row.is_expired():
        db.session.delete(row)
        db.session.commit()
        session.pop('session_id', None)
        return None
    data = parse_config_value(row.data) or {}
    return _identity(data if isinstance(data, dict) else {})


def authenticate():
    """Return the caller identity, or ``None`` when no credentials were sent."""
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return _user_from_token(header[len('Bearer '):].strip())
    return _user_from_session()


def current_user():
    return getattr(g, 'current_user', None)


def _deny(user, endpoint, roles):
    required = ', '.join(sorted(roles))
    logger.warning(
        'RBAC denial: user=%s role=%s endpoint=%s required=%s',
        user.get('user_id'), user.get('role'), endpoint, required,
    )
    record_system_event(
        'RBAC_DENIED',
        trust_id=user.get('trust_id'),
        user_id=user.get('user_id'),
        details={'endpoint': endpoint, 'path': request.path, 'role': user.get('role'), 'required_roles': sorted(roles)},
    )
    raise ForbiddenError(f'Access denied. Required roles: {required}')


def authorize_request():
    endpoint = request.endpoint
    if endpoint is None or endpoint == 'static':
        return None

    rule = POLICY.get(endpoint)
    if rule is None:
        if request.path.startswith('/api/v1'):
            logger.warning('No access rule for endpoint %s; denying', endpoint)
            raise ForbiddenError('Access denied')
        return None

    context = ensure_trust_context() if rule.tenant else None

    if rule.roles == PUBLIC:
        return None

    user = authenticate()
    if user is None or not user.get('role'):
        raise AuthenticationError('Authentication required')
    g.current_user = user

    if rule.roles != AUTHENTICATED and user['role'] not in rule.roles:
        _deny(user, endpoint, rule.roles)

    if context is not None and user['role'] not in SYSTEM_ROLES:
        if user.get('trust_id') != context['trust_id']:
            logger.warning('Tenant isolation: user %s of trust %s requested trust %s',
                           user.get('user_id'), user.get('trust_id'), context['trust_id'])
            raise ForbiddenError('Access denied for this organization')
    return None


def init_rbac(app):
    app.before_request(authorize_request)
