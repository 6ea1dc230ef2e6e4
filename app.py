# app.py
from flask import Flask, jsonify, request, g
from flask_cors import CORS
from routes.orchestrator import orchestrator_bp
from config import Config
from database import create_supabase_client
from utils.transport import DirectTransport
import logging
import time
import sys
from werkzeug.middleware.proxy_fix import ProxyFix

# Configure logging to output to stdout
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def create_app(config=Config, transport=None):
    """Build the orchestrator service.

    The service answers the routed content contract with a DirectTransport
    using the service-role key; tests pass their own transport.
    """
    app = Flask(__name__)

    # Use ProxyFix to handle proxy headers properly
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    app.json.sort_keys = False  # Preserve order of keys in JSON responses
    app.json.compact = True
    app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024  # requests are small parameter bags
    app.url_map.strict_slashes = False

    CORS(app, resources={
        r"/functions/*": {
            "origins": "*",
            "methods": ["POST", "OPTIONS"],
            "allow_headers": ["authorization", "x-client-info", "apikey", "content-type"],
        }
    })

    if transport is None:
        try:
            logger.info("Initializing Supabase connection...")
            client = create_supabase_client(
                config.SUPABASE_URL,
                config.SUPABASE_SERVICE_KEY,
                timeout_seconds=config.FETCH_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(f"Error connecting to Supabase: {str(e)}")
            raise
        transport = DirectTransport(client, page_size=config.PAGE_SIZE)
    app.extensions['content_transport'] = transport

    app.register_blueprint(orchestrator_bp, url_prefix='/functions/orchestrator')

    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        duration = time.time() - g.start_time
        logger.info(f"Request to {request.path} took {duration:.2f} seconds")
        return response

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'healthy',
            'actions': list(app.extensions['content_transport'].actions),
            'timestamp': time.time()
        })

    return app


if __name__ == '__main__':
    print("Starting orchestrator service...")
    create_app().run(debug=True, port=Config.PORT)
