from flask import current_app, session

from school_erp.extensions import limiter
from school_erp.forms import validated
from school_erp.modules.auth import auth_bp, services
from school_erp.modules.auth.forms import SessionLoginForm, TokenLoginForm
from school_erp.responses import ok


def auth_rate_limit():
    return current_app.config['AUTH_RATE_LIMIT']


@auth_bp.route('/sessions', methods=['POST'])
@limiter.limit(auth_rate_limit)
def session_login():
    return ok(services.session_login(validated(SessionLoginForm), session))


@auth_bp.route('/tokens', methods=['POST'])
@limiter.limit(auth_rate_limit)
def token_login():
    return ok(services.token_login(validated(TokenLoginForm)))


@auth_bp.route('/sessions', methods=['DELETE'])
@limiter.limit(auth_rate_limit)
def logout():
    return ok(services.logout(session))
