from flask import Blueprint

users_bp = Blueprint('users', __name__)

from school_erp.modules.users import views  # noqa: E402,F401
