"""
Connection manager for the master database and the per-trust databases.

The master database is the Flask-SQLAlchemy engine. Each trust gets its own
engine, created on first use and cached by trust id.
"""
import logging
import threading
import time
from urllib.parse import quote_plus

from flask import current_app
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from school_erp.errors import TrustNotFoundError
from school_erp.extensions import db
from school_erp.models.master import Trust
from school_erp.models.tenant import TenantModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDLE_MS = 300000


class TrustConnection:
    def __init__(self, trust_id, trust_code, schema, engine, clock):
        self.trust_id = trust_id
        self.trust_code = trust_code
        self.schema = schema
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._clock = clock
        self.last_used = clock()

    def touch(self):
        self.last_used = self._clock()

    def idle_ms(self):
        return (self._clock() - self.last_used) * 1000

    def session(self):
        self.touch()
        return self.session_factory()

    def dispose(self):
        self.engine.dispose()


class ConnectionManager:
    def __init__(self, app=None, clock=time.time):
        self._clock = clock
        self._connections = {}
        self._lock = threading.Lock()
        self.config = {}
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.config = app.config
        app.extensions['connections'] = self

    # Master

    @property
    def master_engine(self):
        return db.engine

    def test_master_connection(self):
        return probe_engine(self.master_engine)

    # Trusts

    def schema_name(self, trust_code):
        prefix = self.config.get('TRUST_SCHEMA_PREFIX', 'school_erp_trust_')
        return f'{prefix}{trust_code}'

    def trust_url(self, schema):
        template = self.config['TRUST_DATABASE_URL_TEMPLATE']
        return template.format(
            user=quote_plus(self.config.get('TRUST_DB_USER') or ''),
            password=quote_plus(self.config.get('TRUST_DB_PASS') or ''),
            host=self.config.get('TRUST_DB_HOST'),
            port=self.config.get('TRUST_DB_PORT'),
            schema=schema,
        )

    def _create_engine(self, schema):
        options = dict(self.config.get('TRUST_ENGINE_OPTIONS') or {})
        return create_engine(self.trust_url(schema), **options)

    def get_trust_connection(self, trust_id):
        """Return the cached connection for a trust, creating it on first use."""
        conn = self._connections.get(trust_id)
        if conn is not None:
            conn.touch()
            return conn

        with self._lock:
            conn = self._connections.get(trust_id)
            if conn is not None:
                conn.touch()
                return conn

            trust_code = db.session.query(Trust.trust_code).filter(
                Trust.id == trust_id, Trust.is_active.is_(True)
            ).scalar()
            if not trust_code:
                raise TrustNotFoundError(f'Trust {trust_id} not found or inactive')

            schema = self.schema_name(trust_code)
            conn = TrustConnection(trust_id, trust_code, schema, self._create_engine(schema), self._clock)
            self._connections[trust_id] = conn
            logger.info('Created connection for trust %s (%s)', trust_id, schema)
            return conn

    def trust_session(self, trust_id):
        return self.get_trust_connection(trust_id).session()

    def create_trust_schema(self, trust_code):
        """Create the trust database (MySQL) and every tenant table missing from it."""
        schema = self.schema_name(trust_code)
        engine = self._create_engine(schema)
        try:
            if engine.dialect.name == 'mysql':
                server_engine = create_engine(self.trust_url(''))
                try:
                    with server_engine.connect() as conn:
                        conn.execute(text(
                            f'CREATE DATABASE IF NOT EXISTS `{schema}` '
                            'CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci'
                        ))
                        conn.commit()
                finally:
                    server_engine.dispose()

            existing = set(inspect(engine).get_table_names())
            TenantModel.metadata.create_all(engine, checkfirst=True)
            created = [name for name in TenantModel.metadata.tables if name not in existing]
        finally:
            engine.dispose()

        logger.info('Initialized trust schema %s (%d tables created)', schema, len(created))
        return {'schema': schema, 'tables_created': created}

    def test_trust_connection(self, trust_id):
        conn = self.get_trust_connection(trust_id)
        result = probe_engine(conn.engine)
        result['trust_id'] = trust_id
        result['schema'] = conn.schema
        return result

    def release(self, trust_id):
        with self._lock:
            conn = self._connections.pop(trust_id, None)
        if conn is not None:
            conn.dispose()
            logger.info('Released connection for trust %s', trust_id)
        return conn is not None

    def cleanup(self, max_idle_ms=DEFAULT_MAX_IDLE_MS, force=False):
        """Dispose idle trust connections, or all of them when forced."""
        with self._lock:
            stale = [
                trust_id for trust_id, conn in self._connections.items()
                if force or conn.idle_ms() > max_idle_ms
            ]
            removed = [self._connections.pop(trust_id) for trust_id in stale]
        for conn in removed:
            conn.dispose()
        if removed:
            logger.info('Cleaned up %d trust connections', len(removed))
        return {'cleaned': len(removed), 'remaining': len(self._connections)}

    def pool_status(self, max_idle_ms=DEFAULT_MAX_IDLE_MS):
        connections = list(self._connections.values())
        idle = sum(1 for conn in connections if conn.idle_ms() > max_idle_ms)
        return {
            'active': len(connections) - idle,
            'idle': idle,
            'total': len(connections),
            'trusts': [
                {'trust_id': conn.trust_id, 'schema': conn.schema, 'idle_ms': int(conn.idle_ms())}
                for conn in connections
            ],
        }

    def close_all(self):
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for conn in connections:
            conn.dispose()

    def __contains__(self, trust_id):
        return trust_id in self._connections

    def __len__(self):
        return len(self._connections)


def probe_engine(engine):
    """Run a version probe and report reachability."""
    url = engine.url
    info = {'reachable': False, 'host': url.host, 'database': url.database}
    try:
        with engine.connect() as conn:
            if engine.dialect.name == 'mysql':
                info['version'] = conn.execute(text('SELECT VERSION()')).scalar()
                row = conn.execute(text("SHOW GLOBAL STATUS LIKE 'Uptime'")).first()
                if row is not None:
                    info['uptime'] = int(row[1])
            elif engine.dialect.name == 'sqlite':
                info['version'] = conn.execute(text('SELECT sqlite_version()')).scalar()
            else:
                conn.execute(text('SELECT 1'))
                info['version'] = None
        info['reachable'] = True
    except SQLAlchemyError as e:
        logger.error('Connection probe failed for %s: %s', url.render_as_string(hide_password=True), e)
        info['error'] = str(e)
    return info


def get_connections():
    return current_app.extensions['connections']
