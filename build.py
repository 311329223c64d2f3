#!/usr/bin/env python3
"""
Build script for deployment.
This script initializes the master database, applies migrations and creates
the default system administrator.
"""

from school_erp import create_app
from school_erp.models.master import SystemUser
from school_erp.modules.data.services import create_system_user, initialize_master_schema


def create_default_admin(app):
    """Create the SYSTEM_ADMIN account from DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD."""
    email = app.config['DEFAULT_ADMIN_EMAIL']
    password = app.config['DEFAULT_ADMIN_PASSWORD']
    if not password:
        print("DEFAULT_ADMIN_PASSWORD is not set; skipping default admin")
        return None
    if SystemUser.query.filter_by(email=email).first():
        print(f"Default admin {email} already exists")
        return None
    user = create_system_user({
        'email': email,
        'password': password,
        'full_name': 'System Administrator',
        'role': 'SYSTEM_ADMIN',
    })
    print(f"Created default admin {email}")
    return user


def initialize_database(app=None):
    """Initialize the master database for production deployment."""
    app = app or create_app()
    with app.app_context():
        print("Creating master tables and applying migrations...")
        result = initialize_master_schema({'force_recreate': False})
        print(f"Tables created: {len(result['tables_created'])}, "
              f"migrations applied: {len(result['migrations_applied'])}")

        print("Creating default admin user...")
        create_default_admin(app)

        print("Database initialization completed successfully!")
        return result


if __name__ == "__main__":
    initialize_database()
