"""Onboarding services: trusts, schools, academic structure and admin users."""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from school_erp.audit import record_system_event, record_tenant_event
from school_erp.database import get_connections
from school_erp.errors import BusinessRuleError, ConflictError, NotFoundError, TrustNotFoundError
from school_erp.extensions import db
from school_erp.models.master import SystemConfig, Trust
from school_erp.models.tenant import (
    AcademicYear, ClassSubject, House, School, SchoolClass, Section, Subject, TrustConfig,
    User, UserSchoolAssignment,
)
from school_erp.modules.common import get_or_404
from school_erp.modules.data.services import ensure_trust_unique, initialize_trust_database
from school_erp.rbac import TRUST_ADMIN
from school_erp.security import hash_password

logger = logging.getLogger(__name__)

TRUST_DEFAULTS = (
    ('trust_initialized', 'true', 'BOOLEAN', 'Trust schema created'),
    ('max_schools', '10', 'NUMBER', 'Maximum schools for this trust'),
    ('max_students_per_school', '5000', 'NUMBER', 'Maximum students per school'),
)

DEFAULT_SCHOOL_CONFIG = {
    'session_timeout_minutes': 60,
    'fee_late_days': 30,
    'fee_late_penalty_percent': 5,
    'attendance_required_percent': 75,
    'academic_year_start_month': 4,
    'enable_sms': True,
    'enable_email': True,
    'enable_whatsapp': False,
}


def get_trust_config(session, key, school_id=None, default=None):
    query = session.query(TrustConfig).filter(TrustConfig.config_key == key)
    if school_id is not None:
        query = query.filter(TrustConfig.school_id == school_id)
    row = query.order_by(TrustConfig.id.desc()).first()
    return row.config_value if row is not None else default


def set_trust_config(session, key, value, school_id=None, user_id=None):
    row = session.query(TrustConfig).filter(
        TrustConfig.config_key == key,
        TrustConfig.school_id.is_(None) if school_id is None else TrustConfig.school_id == school_id,
    ).first()
    if row is None:
        row = TrustConfig(config_key=key, school_id=school_id)
        session.add(row)
    row.config_value = value
    row.updated_by = user_id
    row.updated_at = datetime.utcnow()
    return row


def split_name(full_name):
    parts = full_name.strip().split(None, 1)
    return parts[0], (parts[1] if len(parts) > 1 else None)


def create_trust(data, user_id=None):
    ensure_trust_unique(data['trust_code'], data['subdomain'])

    trust = Trust(
        trust_name=data['trust_name'],
        trust_code=data['trust_code'],
        subdomain=data['subdomain'],
        description=data.get('description'),
        contact_email=data['contact_email'],
        contact_phone=data.get('contact_phone'),
        address=data.get('address'),
        is_active=data.get('is_active', True),
    )
    db.session.add(trust)
    db.session.flush()
    for key, value, config_type, description in TRUST_DEFAULTS:
        db.session.add(SystemConfig(trust_id=trust.id, config_key=key, config_value=value,
                                    config_type=config_type, description=description))
    db.session.commit()

    try:
        schema = initialize_trust_database(trust)
    except SQLAlchemyError:
        logger.exception('Schema creation failed for trust %s; removing registration', trust.trust_code)
        get_connections().release(trust.id)
        SystemConfig.query.filter_by(trust_id=trust.id).delete()
        db.session.delete(trust)
        db.session.commit()
        raise

    record_system_event('TRUST_CREATED', trust_id=trust.id, user_id=user_id, activity_id='01-001',
                        entity_type='trust', entity_id=trust.id,
                        details={'trust_code': trust.trust_code, 'schema': schema['schema']})
    logger.info('Created trust %s with schema %s', trust.trust_code, schema['schema'])
    return {
        'trust_id': trust.id,
        'trust_name': trust.trust_name,
        'trust_code': trust.trust_code,
        'subdomain': trust.subdomain,
        'schema': schema['schema'],
        'created_at': trust.created_at,
        'is_active': bool(trust.is_active),
    }


def active_trust(trust_id):
    trust = db.session.get(Trust, trust_id)
    if trust is None or not trust.is_active:
        raise TrustNotFoundError('Trust not found or inactive')
    return trust


def create_school(session, data, trust_id, user_id=None):
    if session.query(School).filter_by(school_code=data['school_code']).first():
        raise ConflictError(f"School with code '{data['school_code']}' already exists in this trust")

    school = School(
        trust_id=trust_id,
        school_name=data['school_name'],
        school_code=data['school_code'],
        address=data.get('address'),
        email=data['contact_email'],
        phone=data.get('contact_phone'),
        principal_name=data.get('principal_name'),
        established_year=data.get('established_year'),
        is_active=data.get('is_active', True),
    )
    session.add(school)
    session.flush()
    record_tenant_event(session, 'SCHOOL_CREATED', trust_id=trust_id, user_id=user_id, activity_id='01-002',
                        entity_type='school', entity_id=school.id)
    session.commit()
    return {
        'school_id': school.id,
        'school_name': school.school_name,
        'school_code': school.school_code,
        'trust_id': trust_id,
        'created_at': school.created_at,
        'is_active': bool(school.is_active),
    }


def create_academic_year(session, data, user_id=None):
    get_or_404(session, School, data['school_id'], 'School not found')
    if data['start_date'] >= data['end_date']:
        raise BusinessRuleError('start_date must be before end_date')
    if session.query(AcademicYear).filter_by(school_id=data['school_id'], year_name=data['year_name']).first():
        raise ConflictError(f"Academic year '{data['year_name']}' already exists for this school")

    if data.get('is_current'):
        session.query(AcademicYear).filter_by(school_id=data['school_id'], is_current=True) \
            .update({'is_current': False})

    year = AcademicYear(
        school_id=data['school_id'],
        year_name=data['year_name'],
        start_date=data['start_date'],
        end_date=data['end_date'],
        is_current=bool(data.get('is_current')),
    )
    session.add(year)
    session.commit()
    return {
        'academic_year_id': year.id,
        'year_name': year.year_name,
        'school_id': year.school_id,
        'start_date': year.start_date,
        'end_date': year.end_date,
        'is_current': bool(year.is_current),
        'created_at': year.created_at,
    }


def create_class_structure(session, data):
    get_or_404(session, School, data['school_id'], 'School not found')
    year = session.get(AcademicYear, data['academic_year_id'])
    if year is None or year.school_id != data['school_id']:
        raise NotFoundError('Academic year not found')

    sections_created = 0
    class_ids = []
    for item in data['classes']:
        school_class = SchoolClass(
            school_id=data['school_id'],
            academic_year_id=year.id,
            class_name=item['class_name'],
            class_order=item['class_order'],
        )
        session.add(school_class)
        session.flush()
        class_ids.append(school_class.id)
        for section in item.get('sections') or []:
            session.add(Section(
                class_id=school_class.id,
                section_name=section['section_name'],
                capacity=section['capacity'],
            ))
            sections_created += 1

    houses = data.get('houses') or []
    for house in houses:
        session.add(House(school_id=data['school_id'], house_name=house['house_name'],
                          house_color=house.get('house_color')))
    session.commit()

    return {
        'classes_created': len(class_ids),
        'sections_created': sections_created,
        'houses_created': len(houses),
        'class_ids': class_ids,
        'created_at': datetime.utcnow(),
    }


def configure_academics(session, data, user_id=None):
    get_or_404(session, School, data['school_id'], 'School not found')

    wanted = {class_id for subject in data['subjects'] for class_id in subject['class_ids']}
    if wanted:
        found = {row.id for row in session.query(SchoolClass.id).filter(SchoolClass.id.in_(wanted))}
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError(f'Classes not found: {", ".join(str(i) for i in missing)}')

    subjects_created = 0
    mappings = 0
    for item in data['subjects']:
        subject = session.query(Subject).filter_by(school_id=data['school_id'],
                                                   subject_code=item['subject_code']).first()
        if subject is None:
            subject = Subject(school_id=data['school_id'], subject_code=item['subject_code'],
                              subject_name=item['subject_name'])
            session.add(subject)
            session.flush()
            subjects_created += 1
        for class_id in item['class_ids']:
            if session.query(ClassSubject).filter_by(class_id=class_id, subject_id=subject.id).first():
                continue
            session.add(ClassSubject(class_id=class_id, subject_id=subject.id))
            mappings += 1

    grading = dict(data['grading_system'])
    grading['pass_percentage'] = grading.get('pass_percentage') or 40
    set_trust_config(session, 'grading_system', grading, school_id=data['school_id'], user_id=user_id)
    session.commit()

    return {
        'subjects_created': subjects_created,
        'class_mappings_created': mappings,
        'grading_configured': True,
        'created_at': datetime.utcnow(),
    }


def configure_school(session, data, user_id=None):
    get_or_404(session, School, data['school_id'], 'School not found')
    config = dict(DEFAULT_SCHOOL_CONFIG)
    config.update({k: v for k, v in (data.get('config') or {}).items() if v is not None})
    row = set_trust_config(session, 'school_config', config, school_id=data['school_id'], user_id=user_id)
    session.commit()
    return {'config_updated': True, 'config': config, 'updated_at': row.updated_at}


def create_admin_users(session, data, trust_id, user_id=None):
    get_or_404(session, School, data['school_id'], 'School not found')

    emails = [item['email'] for item in data['admin_users']]
    if len(set(emails)) != len(emails):
        raise ConflictError('Duplicate email in request')
    existing = session.query(User.email).filter(User.email.in_(emails)).first()
    if existing:
        raise ConflictError(f'User with email {existing[0]} already exists')

    user_ids = []
    assignments = 0
    for item in data['admin_users']:
        first_name, last_name = split_name(item['full_name'])
        school_id = None if item['role'] == TRUST_ADMIN else data['school_id']
        user = User(
            email=item['email'],
            password_hash=hash_password(item['password']),
            first_name=first_name,
            last_name=last_name,
            phone=item.get('phone'),
            role=item['role'],
            school_id=school_id,
        )
        session.add(user)
        session.flush()
        user_ids.append(user.id)
        if school_id is not None:
            session.add(UserSchoolAssignment(user_id=user.id, school_id=school_id, role=item['role'],
                                             is_primary=True, assigned_by=user_id))
            assignments += 1
        record_tenant_event(session, 'USER_CREATED', trust_id=trust_id, user_id=user_id, activity_id='01-007',
                            entity_type='user', entity_id=user.id, details={'role': item['role']})
    session.commit()

    return {
        'users_created': len(user_ids),
        'roles_assigned': len(user_ids),
        'school_assignments': assignments,
        'user_ids': user_ids,
        'created_at': datetime.utcnow(),
    }
