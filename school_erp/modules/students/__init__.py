from flask import Blueprint

students_bp = Blueprint('students', __name__)

from school_erp.modules.students import views  # noqa: E402,F401
