"""Master database models: trust registry, system users and global state."""
from datetime import datetime

from school_erp.extensions import db


class Trust(db.Model):
    __tablename__ = 'trusts'

    id = db.Column(db.Integer, primary_key=True)
    trust_name = db.Column(db.String(255), nullable=False)
    trust_code = db.Column(db.String(20), nullable=False, unique=True)
    subdomain = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.Text)
    contact_email = db.Column(db.String(255))
    contact_phone = db.Column(db.String(15))
    address = db.Column(db.Text)
    storage_type = db.Column(db.String(20))  # local, s3, azure
    storage_path = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'trust_name': self.trust_name,
            'trust_code': self.trust_code,
            'subdomain': self.subdomain,
            'is_active': bool(self.is_active),
            'created_at': self.created_at,
        }


class SystemConfig(db.Model):
    __tablename__ = 'system_config'

    id = db.Column(db.Integer, primary_key=True)
    trust_id = db.Column(db.Integer, db.ForeignKey('trusts.id'), nullable=True)  # NULL for global keys
    config_key = db.Column(db.String(100), nullable=False)
    config_value = db.Column(db.Text, nullable=False)
    config_type = db.Column(db.String(10), nullable=False, default='STRING')
    description = db.Column(db.Text)
    is_public = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('trust_id', 'config_key', name='unique_trust_config_key'),)

    def to_dict(self):
        return {
            'id': self.id,
            'config_key': self.config_key,
            'config_value': self.config_value,
            'config_type': self.config_type,
            'description': self.description,
            'is_public': bool(self.is_public),
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


class SystemUser(db.Model):
    __tablename__ = 'system_users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(20), nullable=False)  # SYSTEM_ADMIN or GROUP_ADMIN
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class MigrationVersion(db.Model):
    __tablename__ = 'migration_versions'

    id = db.Column(db.Integer, primary_key=True)
    trust_id = db.Column(db.Integer, nullable=True)
    migration_version = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(10), nullable=False, default='SUCCESS')  # PENDING, SUCCESS, FAILED
    error_message = db.Column(db.Text)
    execution_time_ms = db.Column(db.Integer)
    applied_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'trust_id': self.trust_id,
            'migration_version': self.migration_version,
            'applied_at': self.applied_at,
            'status': self.status,
        }


class UserSession(db.Model):
    __tablename__ = 'sessions'

    session_id = db.Column(db.String(128), primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)
    trust_id = db.Column(db.Integer, nullable=True)
    data = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, now=None):
        return self.expires_at <= (now or datetime.utcnow())


class SystemAuditLog(db.Model):
    __tablename__ = 'system_audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    trust_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    activity_id = db.Column(db.String(50))
    event_type = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50))
    entity_id = db.Column(db.Integer)
    details = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'trust_id': self.trust_id,
            'user_id': self.user_id,
            'activity_id': self.activity_id,
            'event_type': self.event_type,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'details': self.details,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': self.created_at,
        }
