from flask import Blueprint

reports_bp = Blueprint('reports', __name__)

from school_erp.modules.reports import views  # noqa: E402,F401
