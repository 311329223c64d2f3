"""Audit trail writers for the master and tenant databases."""
import logging

from flask import has_request_context, request

from school_erp.extensions import db
from school_erp.models.master import SystemAuditLog
from school_erp.models.tenant import AuditLog

logger = logging.getLogger(__name__)


def _request_origin(ip_address, user_agent):
    if has_request_context():
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get('User-Agent')
    return ip_address, (user_agent or '')[:500] or None


def record_system_event(event_type, trust_id=None, user_id=None, activity_id=None,
                        entity_type=None, entity_id=None, details=None,
                        ip_address=None, user_agent=None, commit=True):
    ip_address, user_agent = _request_origin(ip_address, user_agent)
    entry = SystemAuditLog(
        trust_id=trust_id,
        user_id=user_id,
        activity_id=activity_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    logger.debug('System audit: %s %s %s', event_type, entity_type, entity_id)
    return entry


def record_tenant_event(session, event_type, trust_id=None, user_id=None, activity_id=None,
                        entity_type=None, entity_id=None, details=None,
                        ip_address=None, user_agent=None, commit=False):
    """Add a row to the trust's ``audit_logs``; callers usually commit with their own work."""
    ip_address, user_agent = _request_origin(ip_address, user_agent)
    entry = AuditLog(
        trust_id=trust_id,
        user_id=user_id,
        activity_id=activity_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(entry)
    if commit:
        session.commit()
    return entry
