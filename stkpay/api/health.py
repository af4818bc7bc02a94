"""
Health Check and System Monitoring Endpoints
"""

from flask import Blueprint, jsonify
from datetime import datetime, timezone
import os
import psutil

from stkpay.extensions import redis_client, stk_push

health_bp = Blueprint('health', __name__)

SERVICE_NAME = 'stkpay'
VERSION = '1.0.0'


def _now():
    return datetime.now(timezone.utc).isoformat()


@health_bp.route('/health/live', methods=['GET'])
def liveness_probe():
    """
    Kubernetes liveness probe
    Returns 200 if the application is running
    """
    return jsonify({
        'status': 'alive',
        'timestamp': _now()
    }), 200


@health_bp.route('/health/ready', methods=['GET'])
def readiness_probe():
    """
    Kubernetes readiness probe
    Returns 200 if the application is ready to serve traffic
    """
    ready = True
    checks = {}

    # Redis backs the idempotency guard; without it initiation is unsafe
    try:
        redis_client.ping()
        checks['redis'] = 'ready'
    except Exception:
        checks['redis'] = 'not_ready'
        ready = False

    sweeper = stk_push.state.sweeper
    if sweeper is not None:
        checks['correlation_sweeper'] = 'ready' if sweeper.is_alive() else 'not_ready'
        ready = ready and sweeper.is_alive()

    status_code = 200 if ready else 503

    return jsonify({
        'status': 'ready' if ready else 'not_ready',
        'checks': checks,
        'timestamp': _now()
    }), status_code


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Basic system metrics

    Returns:
        Process metrics and correlation tracker counts
    """
    memory = psutil.virtual_memory()
    process = psutil.Process()
    token = stk_push.state.token_manager.cached_token

    return jsonify({
        'timestamp': _now(),
        'system': {
            'cpu_percent': psutil.cpu_percent(interval=None),
            'memory': {
                'total': memory.total,
                'available': memory.available,
                'percent': memory.percent
            },
            'process': {
                'pid': os.getpid(),
                'threads': process.num_threads(),
                'rss': process.memory_info().rss
            }
        },
        'application': {
            'correlations': stk_push.tracker.stats(),
            'token': {
                'cached': token is not None,
                'expires_at': token.expires_at.isoformat() if token and token.expires_at else None
            }
        }
    }), 200


@health_bp.route('/version', methods=['GET'])
def version():
    """
    Get application version information
    """
    return jsonify({
        'service': SERVICE_NAME,
        'version': VERSION,
        'environment': os.getenv('FLASK_ENV', 'production')
    }), 200
