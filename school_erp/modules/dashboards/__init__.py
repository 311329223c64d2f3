from flask import Blueprint

dashboards_bp = Blueprint('dashboards', __name__)

from school_erp.modules.dashboards import views  # noqa: E402,F401
