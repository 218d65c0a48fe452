"""
Flask application exposing the edge proxy.

Every path is handled by one catch-all view. The routing configuration is
read from the environment for each request and handed to a fresh
RequestRouter, so nothing is shared between requests.
"""

import logging
import os
import random

from flask import Flask, request

from edge_proxy.config import RoutingConfig
from edge_proxy.errors import ConfigurationError
from edge_proxy.logging_config import flask_request_middleware, set_context, setup_logging
from edge_proxy.router import OUTCOME_ROOT_DEFAULT, RequestRouter, decoy_response, text_response

logger = logging.getLogger(__name__)

app = Flask(__name__)
flask_request_middleware(app)

# Configuration
GATEWAY_HOST = os.environ.get('EDGE_PROXY_HOST', '0.0.0.0')
GATEWAY_PORT = int(os.environ.get('EDGE_PROXY_PORT', 8080))

ALLOWED_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']

# Optional overrides, mainly for tests:
#   OUTBOUND_SESSION - requests.Session used for every outbound call
#   RANDOM_SOURCE    - callable returning a float in [0, 1)
app.config.setdefault('OUTBOUND_SESSION', None)
app.config.setdefault('RANDOM_SOURCE', random.random)


def build_router():
    """Create the router for the current request from the environment."""
    return RequestRouter(
        RoutingConfig.from_env(),
        session=app.config['OUTBOUND_SESSION'],
        random_source=app.config['RANDOM_SOURCE'],
    )


@app.route('/', defaults={'path': ''}, methods=ALLOWED_METHODS)
@app.route('/<path:path>', methods=ALLOWED_METHODS)
def edge(path):
    """Route any request; only the path decides what happens."""
    try:
        router = build_router()
    except ConfigurationError as e:
        logger.error(f'Invalid configuration: {e}')
        if request.path == '/':
            set_context(outcome=OUTCOME_ROOT_DEFAULT)
            return decoy_response()
        return text_response(f'Server configuration error: {e}', 500)
    return router.route(request)


@app.errorhandler(500)
def internal_error(error):
    """Handle 500 errors."""
    logger.error(f'Internal server error: {error}')
    return text_response('Internal server error', 500)


if __name__ == '__main__':
    setup_logging()
    logger.info(f'Starting edge proxy on {GATEWAY_HOST}:{GATEWAY_PORT}')
    app.run(host=GATEWAY_HOST, port=GATEWAY_PORT, debug=False)
