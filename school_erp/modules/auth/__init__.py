from flask import Blueprint

auth_bp = Blueprint('auth', __name__)

from school_erp.modules.auth import views  # noqa: E402,F401
