from flask import Blueprint

setup_bp = Blueprint('setup', __name__)

from school_erp.modules.setup import views  # noqa: E402,F401
