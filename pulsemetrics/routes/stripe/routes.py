import logging
from functools import wraps

from flask import jsonify, request, make_response

from pulsemetrics.errors import PulseMetricsError, SignatureError, ConfigurationError
from pulsemetrics.system.auth.supabase import get_request_user_id
from . import bp
from .service import StripeService

# Setup logger
logger = logging.getLogger('stripe_routes')

ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


def _add_cors_headers(response):
    response.headers['Access-Control-Allow-Credentials'] = 'true'
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET,POST,OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


def _error(message, status_code):
    return jsonify({'error': message}), status_code


def api_endpoint(method, cors=True):
    """
    Accept every HTTP method on the route and handle the plumbing in one place:
    OPTIONS preflight (CORS endpoints only), 405 with an Allow header for the
    wrong method, and PulseMetricsError -> JSON error with its status code.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if cors and request.method == 'OPTIONS':
                return _add_cors_headers(make_response('', 200))

            if request.method != method:
                response = make_response(*_error('Method not allowed', 405))
                response.headers['Allow'] = method
                return _add_cors_headers(response) if cors else response

            try:
                response = make_response(f(*args, **kwargs))
            except PulseMetricsError as e:
                logger.warning(f"{request.path} failed with {e.status_code}: {e.message}")
                response = make_response(*_error(e.message, e.status_code))
            except Exception as e:
                logger.error(f"Unhandled error in {request.path}: {str(e)}")
                response = make_response(*_error(str(e) or 'Internal server error', 500))

            return _add_cors_headers(response) if cors else response
        return decorated_function
    return decorator


@bp.route('/create-checkout-session', methods=ALL_METHODS)
@api_endpoint('POST')
def create_checkout_session():
    """Create a Stripe Checkout session for a subscription price"""
    data = request.get_json(silent=True) or {}
    result = StripeService.create_checkout_session(
        data.get('priceId'),
        customer_id=data.get('customerId'),
        success_url=data.get('successUrl'),
        cancel_url=data.get('cancelUrl'),
        user_id=data.get('userId'),
        customer_email=data.get('customerEmail'),
    )
    return jsonify(result), 200


@bp.route('/create-portal-session', methods=ALL_METHODS)
@api_endpoint('POST')
def create_portal_session():
    """Create a Stripe customer portal session"""
    data = request.get_json(silent=True) or {}
    result = StripeService.create_portal_session(
        data.get('customerId'),
        return_url=data.get('returnUrl'),
    )
    return jsonify(result), 200


@bp.route('/subscription-status', methods=ALL_METHODS)
@api_endpoint('GET')
def subscription_status():
    """Current plan for ?userId= or ?customerId= (or the bearer token's user)"""
    user_id = request.args.get('userId')
    customer_id = request.args.get('customerId')

    if not user_id and not customer_id:
        user_id = get_request_user_id()

    return jsonify(StripeService.get_subscription_status(user_id=user_id, customer_id=customer_id)), 200


@bp.route('/webhook', methods=ALL_METHODS)
@api_endpoint('POST', cors=False)
def webhook():
    """Stripe webhook endpoint; the raw body is needed for signature verification"""
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature')

    try:
        event_type = StripeService.handle_webhook_event(payload, signature)
    except (SignatureError, ConfigurationError):
        raise
    except Exception as e:
        logger.error(f"Webhook handler error: {str(e)}")
        return _error('Webhook handler failed', 500)

    logger.info(f"Webhook processed: {event_type}")
    return jsonify({'received': True}), 200
