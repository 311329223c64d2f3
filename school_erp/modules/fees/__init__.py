from flask import Blueprint

fees_bp = Blueprint('fees', __name__)

from school_erp.modules.fees import views  # noqa: E402,F401
