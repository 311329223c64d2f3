"""System administration services on the master database."""
import json
import logging
import secrets
import time
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import inspect

from school_erp.audit import record_system_event, record_tenant_event
from school_erp.database import get_connections
from school_erp.errors import ConflictError, NotFoundError, TrustNotFoundError, ValidationError
from school_erp.extensions import db
from school_erp.migrations import latest_version, run_migrations
from school_erp.models.master import (
    MigrationVersion, SystemConfig, SystemUser, Trust, UserSession,
)
from school_erp.models.tenant import TenantModel
from school_erp.security import hash_password
from school_erp.tenancy import clear_trust_cache, get_trust_cache, trust_session

logger = logging.getLogger(__name__)


def _elapsed_ms(started):
    return int((time.perf_counter() - started) * 1000)


def connection_status(data):
    connections = get_connections()
    result = {'timestamp': datetime.utcnow()}
    if data['action'] != 'TEST_TRUST':
        result['master'] = connections.test_master_connection()
    if data.get('trust_id'):
        result['trust'] = connections.test_trust_connection(data['trust_id'])
    result['pool'] = connections.pool_status()
    return result


def initialize_master_schema(data):
    started = time.perf_counter()
    if data.get('force_recreate'):
        logger.warning('Dropping and recreating master schema')
        db.drop_all()

    existing = set(inspect(db.engine).get_table_names())
    db.create_all()
    created = [name for name in db.metadata.tables if name not in existing]
    applied = run_migrations(db.engine, 'master')

    return {
        'initialized': True,
        'migration_version': latest_version('master'),
        'migrations_applied': applied,
        'tables_created': created,
        'execution_time_ms': _elapsed_ms(started),
    }


def initialize_trust_database(trust, force_recreate=False):
    """Create the trust database and tables, then apply tenant migrations."""
    connections = get_connections()
    started = time.perf_counter()

    if force_recreate:
        engine = connections.get_trust_connection(trust.id).engine
        logger.warning('Dropping tenant tables for trust %s', trust.trust_code)
        TenantModel.metadata.drop_all(engine)
        MigrationVersion.query.filter_by(trust_id=trust.id).delete()
        db.session.commit()

    schema = connections.create_trust_schema(trust.trust_code)
    engine = connections.get_trust_connection(trust.id).engine
    applied = run_migrations(engine, 'tenant', trust_id=trust.id)

    return {
        'trust_id': trust.id,
        'trust_code': trust.trust_code,
        'schema': schema['schema'],
        'schema_initialized': True,
        'migration_version': latest_version('tenant'),
        'migrations_applied': applied,
        'tables_created': schema['tables_created'],
        'execution_time_ms': _elapsed_ms(started),
    }


def initialize_trust_schema(data):
    trust = db.session.get(Trust, data['trust_id'])
    if trust is None or not trust.is_active:
        raise TrustNotFoundError(f"Trust {data['trust_id']} not found or inactive")
    return initialize_trust_database(trust, data.get('force_recreate', False))


def check_config_value(value, config_type):
    if config_type == 'NUMBER':
        try:
            float(value)
        except ValueError:
            raise ValidationError('config_value must be numeric for NUMBER configs')
    elif config_type == 'BOOLEAN':
        if value.lower() not in ('true', 'false'):
            raise ValidationError("config_value must be 'true' or 'false' for BOOLEAN configs")
    elif config_type == 'JSON':
        try:
            json.loads(value)
        except ValueError:
            raise ValidationError('config_value must be valid JSON for JSON configs')


def upsert_system_config(data, trust_id=None):
    check_config_value(data['config_value'], data['config_type'])

    config = SystemConfig.query.filter(
        SystemConfig.trust_id.is_(None) if trust_id is None else SystemConfig.trust_id == trust_id,
        SystemConfig.config_key == data['config_key'],
    ).first()
    if config is None:
        config = SystemConfig(trust_id=trust_id, config_key=data['config_key'])
        db.session.add(config)

    config.config_value = data['config_value']
    config.config_type = data['config_type']
    config.description = data.get('description')
    config.is_public = bool(data.get('is_public'))
    db.session.commit()
    return config.to_dict()


def ensure_trust_unique(trust_code, subdomain):
    existing = Trust.query.filter(
        (Trust.trust_code == trust_code) | (Trust.subdomain == subdomain)
    ).first()
    if existing:
        raise ConflictError(f"Trust with code '{trust_code}' or subdomain '{subdomain}' already exists")


def register_trust(data, user_id=None):
    ensure_trust_unique(data['trust_code'], data['subdomain'])

    trust = Trust(
        trust_name=data['trust_name'],
        trust_code=data['trust_code'],
        subdomain=data['subdomain'],
        is_active=data.get('is_active', True),
    )
    db.session.add(trust)
    db.session.flush()
    record_system_event('TRUST_REGISTERED', trust_id=trust.id, user_id=user_id, activity_id='00-005',
                        entity_type='trust', entity_id=trust.id, commit=False)
    db.session.commit()
    logger.info('Registered trust %s (%s)', trust.trust_code, trust.subdomain)
    return trust.to_dict()


def list_trusts():
    return [trust.to_dict() for trust in Trust.query.order_by(Trust.id).all()]


def update_trust(trust_id, data, user_id=None):
    trust = db.session.get(Trust, trust_id)
    if trust is None:
        raise TrustNotFoundError(f'Trust {trust_id} not found')

    for field in ('trust_name', 'contact_email', 'contact_phone', 'address'):
        if data.get(field) is not None:
            setattr(trust, field, data[field])

    deactivated = data.get('is_active') is False and trust.is_active
    if data.get('is_active') is not None:
        trust.is_active = data['is_active']

    record_system_event('TRUST_UPDATED', trust_id=trust.id, user_id=user_id,
                        entity_type='trust', entity_id=trust.id,
                        details={k: v for k, v in data.items() if v is not None}, commit=False)
    db.session.commit()

    # Cached context and pooled connections must not outlive the trust
    clear_trust_cache(trust.subdomain)
    if deactivated:
        get_connections().release(trust.id)
        logger.info('Deactivated trust %s', trust.trust_code)
    return trust.to_dict()


def create_system_user(data, user_id=None):
    if SystemUser.query.filter_by(email=data['email']).first():
        raise ConflictError('User with this email already exists')

    user = SystemUser(
        email=data['email'],
        password_hash=hash_password(data['password']),
        full_name=data.get('full_name'),
        role=data['role'],
    )
    db.session.add(user)
    db.session.flush()
    record_system_event('SYSTEM_USER_CREATED', user_id=user_id, activity_id='00-006',
                        entity_type='system_user', entity_id=user.id, commit=False)
    db.session.commit()
    return {'id': user.id, 'email': user.email, 'role': user.role, 'created_at': user.created_at}


def record_migration(data):
    if data.get('trust_id') and db.session.get(Trust, data['trust_id']) is None:
        raise TrustNotFoundError(f"Trust {data['trust_id']} not found")
    row = MigrationVersion(
        trust_id=data.get('trust_id'),
        migration_version=data['migration_version'],
        status=data['status'],
    )
    db.session.add(row)
    db.session.commit()
    return row.to_dict()


def _session_dict(row):
    return {
        'session_id': row.session_id,
        'user_id': row.user_id,
        'trust_id': row.trust_id,
        'expires_at': row.expires_at,
        'data': row.data,
        'created_at': row.created_at,
    }


def _expiry(expires_ms, default_hours):
    if expires_ms:
        return datetime.utcfromtimestamp(expires_ms / 1000.0)
    return datetime.utcnow() + timedelta(hours=default_hours)


def manage_session(data):
    action = data['action']
    lifetime = current_app.config['SESSION_LIFETIME_HOURS']

    if action == 'CREATE':
        row = UserSession(
            session_id=f'sess_{secrets.token_hex(16)}',
            user_id=data.get('user_id'),
            trust_id=data.get('trust_id'),
            data=data.get('session_data'),
            expires_at=_expiry(data.get('expires'), lifetime),
        )
        db.session.add(row)
        db.session.commit()
        return _session_dict(row)

    row = db.session.get(UserSession, data['session_id'])
    if row is None or (action != 'DELETE' and row.is_expired()):
        raise NotFoundError('Session not found or expired')

    if action == 'READ':
        return _session_dict(row)

    if action == 'UPDATE':
        if data.get('session_data') is not None:
            row.data = data['session_data']
        if data.get('expires'):
            row.expires_at = _expiry(data['expires'], lifetime)
        if data.get('user_id'):
            row.user_id = data['user_id']
        if data.get('trust_id'):
            row.trust_id = data['trust_id']
        db.session.commit()
        return _session_dict(row)

    db.session.delete(row)
    db.session.commit()
    return {'session_id': data['session_id'], 'deleted': True}


def write_system_audit(data):
    entry = record_system_event(
        data['event_type'],
        trust_id=data.get('trust_id'),
        user_id=data.get('user_id'),
        activity_id=data.get('activity_id'),
        entity_type=data.get('entity_type'),
        entity_id=data.get('entity_id'),
        details=data.get('details'),
        ip_address=data.get('ip_address'),
        user_agent=data.get('user_agent'),
    )
    return entry.to_dict()


def write_tenant_audit(data):
    trust_id = data['trust_id']
    session = trust_session(trust_id)
    entry = record_tenant_event(
        session,
        data['event_type'],
        trust_id=trust_id,
        user_id=data.get('user_id'),
        activity_id=data.get('activity_id'),
        entity_type=data.get('entity_type'),
        entity_id=data.get('entity_id'),
        details=data.get('details'),
        ip_address=data.get('ip_address'),
        user_agent=data.get('user_agent'),
        commit=True,
    )
    result = entry.to_dict()
    result.update(trust_id=trust_id, ip_address=entry.ip_address, user_agent=entry.user_agent)
    return result


def _cache_snapshot():
    mappings = {
        trust.subdomain: {'trust_id': trust.id, 'trust_code': trust.trust_code}
        for trust in Trust.query.filter_by(is_active=True).all()
    }
    configs = {
        row.config_key: {'value': row.config_value, 'type': row.config_type}
        for row in SystemConfig.query.filter_by(is_public=True).all()
    }
    return mappings, configs


def manage_config_cache(data):
    action = data['action']
    subdomain = data.get('subdomain')
    if not subdomain and data.get('trust_id'):
        trust = db.session.get(Trust, data['trust_id'])
        if trust is None:
            raise TrustNotFoundError(f"Trust {data['trust_id']} not found")
        subdomain = trust.subdomain

    if action == 'CLEAR':
        clear_trust_cache(subdomain)
        return {'cache_refreshed': False, 'cleared': subdomain or 'all', 'timestamp': datetime.utcnow()}

    mappings, configs = _cache_snapshot()
    if action == 'REFRESH':
        clear_trust_cache(subdomain)
    return {
        'cache_refreshed': action == 'REFRESH',
        'subdomain_mappings': mappings,
        'config_cache': configs,
        'cached_contexts': len(get_trust_cache()),
        'timestamp': datetime.utcnow(),
    }


def cleanup_connections(data):
    connections = get_connections()
    started = time.perf_counter()
    max_idle = data.get('max_idle_time') or 300000

    cleaned = 0
    if data['action'] == 'CLEANUP':
        cleaned = connections.cleanup(max_idle)['cleaned']
    elif data['action'] == 'FORCE_CLEANUP':
        cleaned = connections.cleanup(max_idle, force=True)['cleaned']

    status = connections.pool_status(max_idle)
    return {
        'cleaned_connections': cleaned,
        'active_connections': status['active'],
        'idle_connections': status['idle'],
        'total_connections': status['total'],
        'cleanup_time_ms': _elapsed_ms(started),
        'timestamp': datetime.utcnow(),
    }
