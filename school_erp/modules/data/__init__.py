from flask import Blueprint

data_bp = Blueprint('data', __name__)

from school_erp.modules.data import views  # noqa: E402,F401
