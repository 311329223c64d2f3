from flask import Blueprint

communications_bp = Blueprint('communications', __name__)

from school_erp.modules.communications import views  # noqa: E402,F401
