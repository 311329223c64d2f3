"""
Trust (tenant) context resolution.

The trust is picked from the request subdomain, or from the ``X-Trust-Slug``
header in development. Resolved contexts are cached per slug.
"""
import json
import logging
import time

from flask import current_app, g, request

from school_erp.database import get_connections
from school_erp.errors import DomainConfigurationError, TrustNotFoundError
from school_erp.models.master import SystemConfig, Trust

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TYPES = ['pdf', 'jpg', 'jpeg', 'png', 'doc', 'docx', 'xlsx']


class TrustContextCache:
    """Slug -> context map whose entries expire after ``ttl`` seconds."""

    def __init__(self, ttl=15 * 60, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries = {}

    def get(self, slug):
        entry = self._entries.get(slug)
        if entry is None:
            return None
        context, expires_at = entry
        if expires_at <= self.clock():
            del self._entries[slug]
            return None
        return context

    def set(self, slug, context):
        self._entries[slug] = (context, self.clock() + self.ttl)

    def clear(self, slug=None):
        if slug is None:
            self._entries.clear()
        else:
            self._entries.pop(slug, None)

    def __len__(self):
        return len(self._entries)


def init_tenancy(app, cache=None):
    app.extensions['trust_cache'] = cache or TrustContextCache(ttl=app.config['TRUST_CACHE_TTL_SECONDS'])
    app.teardown_appcontext(close_trust_sessions)


def get_trust_cache():
    return current_app.extensions['trust_cache']


def clear_trust_cache(slug=None):
    get_trust_cache().clear(slug)
    logger.info('Cleared trust context cache (%s)', slug or 'all')


def resolve_slug():
    host = request.host.split(':')[0]
    parts = host.split('.')
    if len(parts) >= 3:
        return parts[0]
    if current_app.config.get('ENVIRONMENT') == 'development':
        header = current_app.config.get('TRUST_SLUG_HEADER', 'X-Trust-Slug')
        return request.headers.get(header) or current_app.config.get('DEFAULT_TRUST_SLUG', 'dev-trust')
    raise DomainConfigurationError(
        "Please access the system through your organization's subdomain"
    )


def parse_config_value(raw):
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def load_trust_context(slug):
    cache = get_trust_cache()
    context = cache.get(slug)
    if context is not None:
        return context

    trust = Trust.query.filter_by(subdomain=slug, is_active=True).first()
    if trust is None:
        raise TrustNotFoundError(
            f"Organization '{slug}' not found. Please check the URL or contact your administrator."
        )

    settings = {}
    for row in SystemConfig.query.filter_by(trust_id=trust.id).all():
        settings[row.config_key] = parse_config_value(row.config_value)

    base_path = current_app.config.get('UPLOAD_BASE_PATH', '/uploads')
    context = {
        'trust_id': trust.id,
        'trust_name': trust.trust_name,
        'trust_code': trust.trust_code,
        'subdomain': trust.subdomain,
        'settings': settings,
        'theme': settings.get('theme', 'default'),
        'theme_css': settings.get('theme_css', ''),
        'logo': settings.get('logo', ''),
        'storage_config': {
            'type': settings.get('storage_type') or trust.storage_type or 'local',
            'base_path': settings.get('storage_path') or trust.storage_path or f'{base_path}/{slug}',
            'max_file_size': settings.get('max_file_size', '10MB'),
            'allowed_types': settings.get('allowed_file_types', DEFAULT_ALLOWED_TYPES),
        },
    }
    cache.set(slug, context)
    logger.debug('Loaded trust context for %s', slug)
    return context


def ensure_trust_context():
    """Resolve the trust for this request and attach it to ``g``."""
    context = getattr(g, 'trust_context', None)
    if context is None:
        context = load_trust_context(resolve_slug())
        g.trust_context = context
    return context


def current_trust_id():
    context = getattr(g, 'trust_context', None)
    return context['trust_id'] if context else None


def trust_session(trust_id=None):
    """Session on the trust database, shared for the rest of the request."""
    if trust_id is None:
        trust_id = ensure_trust_context()['trust_id']
    sessions = g.setdefault('_trust_sessions', {})
    session = sessions.get(trust_id)
    if session is None:
        session = get_connections().trust_session(trust_id)
        sessions[trust_id] = session
    return session


def close_trust_sessions(exc=None):
    sessions = g.pop('_trust_sessions', None) or {}
    for session in sessions.values():
        if exc is not None:
            session.rollback()
        session.close()