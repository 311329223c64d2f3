"""
SQL migration runner.

Migrations are plain ``NNN_name.sql`` files under ``master/`` or ``tenant/``.
Each file is applied once per database and recorded in the master
``migration_versions`` table.
"""
import logging
import os
import time

from sqlalchemy.exc import SQLAlchemyError

from school_erp.extensions import db
from school_erp.models.master import MigrationVersion

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.dirname(os.path.abspath(__file__))
SCOPES = ('master', 'tenant')


def discover(scope, directory=None):
    """Return ``(version, path)`` pairs for a scope, in file name order."""
    if scope not in SCOPES:
        raise ValueError(f'Unknown migration scope: {scope}')
    scope_dir = os.path.join(directory or MIGRATIONS_DIR, scope)
    if not os.path.isdir(scope_dir):
        return []
    files = sorted(name for name in os.listdir(scope_dir) if name.endswith('.sql'))
    return [(f'{scope}/{name[:-4]}', os.path.join(scope_dir, name)) for name in files]


def split_statements(sql):
    lines = [line for line in sql.splitlines() if not line.strip().startswith('--')]
    return [stmt.strip() for stmt in '\n'.join(lines).split(';') if stmt.strip()]


def applied_versions(trust_id=None):
    query = MigrationVersion.query.filter_by(status='SUCCESS')
    if trust_id is None:
        query = query.filter(MigrationVersion.trust_id.is_(None))
    else:
        query = query.filter(MigrationVersion.trust_id == trust_id)
    return {row.migration_version for row in query.all()}


def record_version(version, status, trust_id=None, error_message=None, execution_time_ms=None):
    row = MigrationVersion(
        trust_id=trust_id,
        migration_version=version,
        status=status,
        error_message=error_message,
        execution_time_ms=execution_time_ms,
    )
    db.session.add(row)
    db.session.commit()
    return row


def run_migrations(engine, scope, trust_id=None, directory=None):
    """Apply pending migrations for one database; returns the versions applied."""
    done = applied_versions(trust_id)
    applied = []
    for version, path in discover(scope, directory):
        if version in done:
            continue
        with open(path, encoding='utf-8') as fh:
            statements = split_statements(fh.read())

        started = time.perf_counter()
        try:
            with engine.begin() as conn:
                for statement in statements:
                    conn.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            logger.error('Migration %s failed (trust %s): %s', version, trust_id, e)
            record_version(version, 'FAILED', trust_id, error_message=str(e))
            raise

        elapsed = int((time.perf_counter() - started) * 1000)
        record_version(version, 'SUCCESS', trust_id, execution_time_ms=elapsed)
        logger.info('Applied migration %s (trust %s) in %d ms', version, trust_id, elapsed)
        applied.append(version)
    return applied


def latest_version(scope, directory=None):
    found = discover(scope, directory)
    return found[-1][0] if found else None
