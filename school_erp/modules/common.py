"""Small helpers shared by the module services and views."""
from school_erp.errors import NotFoundError
from school_erp.rbac import current_user


def get_or_404(session, model, ident, message):
    obj = session.get(model, ident) if ident is not None else None
    if obj is None:
        raise NotFoundError(message)
    return obj


def actor():
    """The authenticated caller as a plain dict (empty outside a request)."""
    return current_user() or {}


def actor_id():
    return actor().get('user_id')


def money(value):
    return round(float(value or 0), 2)
