from flask import Blueprint

attendance_bp = Blueprint('attendance', __name__)

from school_erp.modules.attendance import views  # noqa: E402,F401
