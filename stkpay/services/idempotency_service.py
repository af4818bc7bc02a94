import json
from functools import wraps
from typing import Optional
from flask import current_app, request, jsonify
from stkpay.extensions import redis_client
from stkpay.utils.validators import validate_idempotency_key


class IdempotencyService:
    """Handle request idempotency using Redis"""

    DEFAULT_TTL = 86400  # 24 hours

    # Claim lifetime when no gateway timeouts are configured
    IN_FLIGHT_TTL = 120

    # Slack on top of the slowest possible initiation (retry backoff, app overhead)
    IN_FLIGHT_MARGIN = 60

    _IN_FLIGHT = {'_in_flight': True}

    @staticmethod
    def get_key(idempotency_key: str) -> str:
        """Generate Redis key for idempotency"""
        return f'idempotency:{idempotency_key}'

    @staticmethod
    def get_cached_response(idempotency_key: str):
        """Get cached response (or in-flight marker) for idempotency key"""
        key = IdempotencyService.get_key(idempotency_key)
        cached = redis_client.get(key)

        if cached:
            return json.loads(cached)
        return None

    @staticmethod
    def claim(idempotency_key: str, ttl: int = IN_FLIGHT_TTL) -> bool:
        """Atomically reserve a key before doing the work; False if already taken"""
        key = IdempotencyService.get_key(idempotency_key)
        return bool(redis_client.set(key, json.dumps(IdempotencyService._IN_FLIGHT), ex=ttl, nx=True))

    @staticmethod
    def in_flight_ttl(config) -> int:
        """
        How long a claim must survive so it cannot lapse mid-request

        The slowest initiation is a retried token exchange plus the POST,
        done twice when a stale token is rejected with a 401.
        """
        try:
            token_exchange = (config['MPESA_TOKEN_RETRIES'] + 1) * config['MPESA_TOKEN_TIMEOUT']
            attempt = token_exchange + config['MPESA_REQUEST_TIMEOUT']
        except KeyError:
            return IdempotencyService.IN_FLIGHT_TTL
        return int(max(2 * attempt + IdempotencyService.IN_FLIGHT_MARGIN, IdempotencyService.IN_FLIGHT_TTL))

    @staticmethod
    def is_in_flight(cached) -> bool:
        return bool(cached) and cached.get('_in_flight') is True

    @staticmethod
    def cache_response(idempotency_key: str, response_data: dict, ttl: int = DEFAULT_TTL):
        """Cache response for future idempotent requests"""
        key = IdempotencyService.get_key(idempotency_key)
        redis_client.set(key, json.dumps(response_data), ex=ttl)

    @staticmethod
    def delete_cached_response(idempotency_key: str):
        """Delete cached response"""
        key = IdempotencyService.get_key(idempotency_key)
        redis_client.delete(key)


def _replay(cached):
    cached = dict(cached)
    status_code = cached.pop('_status_code', 200)
    response = jsonify(cached)
    response.headers['Idempotent-Replayed'] = 'true'
    return response, status_code


def _in_flight_response():
    return jsonify({
        'success': False,
        'error': 'Request in progress',
        'message': 'A request with this Idempotency-Key is still being processed'
    }), 409


def idempotent(ttl: Optional[int] = None):
    """
    Decorator to make endpoints idempotent

    Responses are kept for ttl seconds, or IDEMPOTENCY_TTL from the app
    config when ttl is not given.

    Every response is cached, including gateway timeouts: a client that
    retries a timed-out payment with the same key gets the stored answer
    instead of a second prompt on the payer's phone.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Get idempotency key from header
            idempotency_key = request.headers.get('Idempotency-Key')

            if not idempotency_key:
                return jsonify({
                    'success': False,
                    'error': 'Missing Idempotency-Key header',
                    'message': 'All mutation requests require an Idempotency-Key header'
                }), 400

            is_valid, error_message = validate_idempotency_key(idempotency_key)
            if not is_valid:
                return jsonify({
                    'success': False,
                    'error': 'Invalid Idempotency-Key header',
                    'message': error_message
                }), 400

            cache_ttl = ttl or current_app.config.get('IDEMPOTENCY_TTL', IdempotencyService.DEFAULT_TTL)
            claim_ttl = IdempotencyService.in_flight_ttl(current_app.config)

            if not IdempotencyService.claim(idempotency_key, claim_ttl):
                cached = IdempotencyService.get_cached_response(idempotency_key)
                if cached is None or IdempotencyService.is_in_flight(cached):
                    return _in_flight_response()
                return _replay(cached)

            try:
                result = f(*args, **kwargs)
            except Exception:
                IdempotencyService.delete_cached_response(idempotency_key)
                raise

            if isinstance(result, tuple):
                response_data, status_code = result
            else:
                response_data, status_code = result, 200

            if hasattr(response_data, 'get_json'):
                response_json = response_data.get_json()
            else:
                response_json = response_data

            response_json = dict(response_json or {})
            response_json['_status_code'] = status_code
            IdempotencyService.cache_response(idempotency_key, response_json, cache_ttl)

            return result

        return decorated_function

    return decorator
