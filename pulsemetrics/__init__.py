import logging

from flask import Flask, jsonify, request

app_logger = logging.getLogger('pulsemetrics')


def create_app(config_overrides=None):
    """Build the Flask app with the billing API registered"""
    app = Flask(__name__)
    if config_overrides:
        app.config.update(config_overrides)

    from pulsemetrics.routes.stripe import bp as stripe_bp
    app.register_blueprint(stripe_bp)

    # Add request logging
    @app.before_request
    def log_request():
        app_logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")
        auth_header = request.headers.get('Authorization')
        if auth_header:
            token_part = auth_header.split(' ')[1] if len(auth_header.split(' ')) > 1 else 'NO_TOKEN'
            if len(token_part) > 10:
                app_logger.debug(f"Auth header present with token: {token_part[:5]}...{token_part[-5:]}")
            else:
                app_logger.debug("Auth header present with invalid token format")

    # Error handlers
    @app.errorhandler(404)
    def page_not_found(e):
        app_logger.warning(f"404 error: {request.path}")
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        app_logger.warning(f"405 error: {request.method} {request.path}")
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def server_error(e):
        app_logger.error(f"500 error: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'}), 200

    return app
