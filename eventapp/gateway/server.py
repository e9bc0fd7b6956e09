"""
API gateway: combines the auth and events blueprints.
This is the local entrypoint for development.
"""

import logging
import os

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(levelname)s] %(asctime)s - %(message)s",
)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",  # Local development gateway
]


def create_app(identity_verifier=None, static_dir=None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        identity_verifier: Object with fetch_userinfo(token); defaults to
            the Google verifier on first use.
        static_dir (str, optional): Built single-page-app assets to serve.
            Falls back to the STATIC_DIR environment variable.

    Returns:
        Flask: The configured Flask application.
    """
    from eventapp.auth_service.routes import auth_bp
    from eventapp.auth_service.session import resolve_session, apply_session_cookies
    from eventapp.events_service.routes import events_bp

    static_dir = static_dir or os.getenv("STATIC_DIR")
    if static_dir:
        static_dir = os.path.abspath(static_dir)

    app = Flask(__name__, static_folder=None)
    app.config["IDENTITY_VERIFIER"] = identity_verifier

    cors_env = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in cors_env.split(",") if o.strip()] or DEFAULT_CORS_ORIGINS
    CORS(app, resources={
        r"/api/*": {
            "origins": origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type"],
            "supports_credentials": True
        }
    })

    # --- SESSION RESOLUTION ---
    app.before_request(resolve_session)
    app.after_request(apply_session_cookies)

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(auth_bp)
    app.register_blueprint(events_bp)
    logging.info("All blueprints registered successfully.")

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    if static_dir:
        @app.route("/", defaults={"path": ""})
        @app.route("/<path:path>")
        def spa(path):
            """
            Serve built client assets; unknown paths fall back to index.html
            so client-side routes survive a reload.
            """
            if path.startswith("api/"):
                return jsonify({"error": "Not found"}), 404
            if path and os.path.isfile(os.path.join(static_dir, path)):
                return send_from_directory(static_dir, path)
            return send_from_directory(static_dir, "index.html")
    else:
        @app.route("/")
        def ping():
            """
            Root URL for simple 'online' check.
            """
            return jsonify({"status": "gateway_ok"}), 200

    # --- ERROR HANDLERS ---
    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        logging.exception(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({"error": "Internal Server Error"}), 500

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("GATEWAY_PORT", 3000))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG", "false").lower() == "true")
