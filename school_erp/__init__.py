"""
School ERP backend.

Multi-tenant Flask application: a master database for the trust registry and
one database per trust for school data.
"""
import logging
import os

from dotenv import load_dotenv

# Load environment variables before the config classes read them
load_dotenv()

from flask import Flask, request  # noqa: E402

from school_erp.config import config_by_name  # noqa: E402
from school_erp.database import ConnectionManager  # noqa: E402
from school_erp.errors import register_error_handlers  # noqa: E402
from school_erp.extensions import db, limiter  # noqa: E402
from school_erp.logging_setup import configure_logging  # noqa: E402
from school_erp.rbac import init_rbac  # noqa: E402
from school_erp.security import init_security  # noqa: E402
from school_erp.tenancy import init_tenancy  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(config_name=None, config_override=None):
    """Application factory"""
    config_name = config_name or os.environ.get('FLASK_ENV', 'development')
    config_class = config_by_name.get(config_name, config_by_name['development'])

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_override:
        app.config.update(config_override)
    config_class.init_app(app)

    configure_logging(app)
    db.init_app(app)
    limiter.init_app(app)
    init_security(app)
    register_error_handlers(app)

    @app.before_request
    def log_api_request():
        if request.path.startswith('/api/'):
            logger.debug('%s %s', request.method, request.path)

    ConnectionManager(app)
    init_tenancy(app)
    init_rbac(app)

    register_blueprints(app)

    with app.app_context():
        # Tenant tables live in per-trust databases; only master tables here
        db.create_all()

    return app


def register_blueprints(app):
    from school_erp.health import health_bp
    from school_erp.modules.attendance import attendance_bp
    from school_erp.modules.auth import auth_bp
    from school_erp.modules.communications import communications_bp
    from school_erp.modules.dashboards import dashboards_bp
    from school_erp.modules.data import data_bp
    from school_erp.modules.fees import fees_bp
    from school_erp.modules.reports import reports_bp
    from school_erp.modules.setup import setup_bp
    from school_erp.modules.students import students_bp
    from school_erp.modules.users import users_bp
    from school_erp.wizard.views import wizards_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(data_bp, url_prefix='/api/v1/system')
    app.register_blueprint(setup_bp, url_prefix='/api/v1/setup')
    app.register_blueprint(auth_bp, url_prefix='/api/v1/auth')
    app.register_blueprint(users_bp, url_prefix='/api/v1/users')
    app.register_blueprint(students_bp, url_prefix='/api/v1/students')
    app.register_blueprint(fees_bp, url_prefix='/api/v1/fees')
    app.register_blueprint(attendance_bp, url_prefix='/api/v1/attendance')
    app.register_blueprint(reports_bp, url_prefix='/api/v1/reports')
    app.register_blueprint(dashboards_bp, url_prefix='/api/v1/dashboards')
    app.register_blueprint(communications_bp, url_prefix='/api/v1/communications')
    app.register_blueprint(wizards_bp, url_prefix='/api/v1/wizards')
