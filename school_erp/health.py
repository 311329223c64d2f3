from datetime import datetime

from flask import Blueprint, jsonify

from school_erp.responses import ok

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health():
    """Liveness probe for the load balancer"""
    return jsonify({
        'status': 'ok',
        'service': 'school-erp',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
    })


@health_bp.route('/api/v1/health')
def api_health():
    return ok({'ok': True, 'ts': datetime.utcnow()})
