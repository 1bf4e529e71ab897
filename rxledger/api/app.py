"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from rxledger.config import TOKEN_EXPIRY_HOURS, get_env
from rxledger.database import init_engine
from rxledger.service import PharmacyService
from rxledger.api.routes import register_routes


def create_app(engine=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if engine is None:
        try:
            print("[init] Initializing database connection...")
            engine = init_engine()
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    service = PharmacyService(engine)
    print("[init] ✓ API server ready")

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine, service)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("rxledger – Pharmacy Fulfillment API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"
    if not debug:
        _ = get_env("JWT_SECRET_KEY")  # fail early if missing

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/medications")
    print(f"  - POST http://{host}:{port}/api/prescriptions")
    print(f"  - GET  http://{host}:{port}/api/dashboard/stats")
    print(f"  - GET  http://{host}:{port}/api/refills/due?filter=today|soon")
    print(f"  - GET  http://{host}:{port}/api/patients?search=")
    print(f"  - GET  http://{host}:{port}/api/audit-logs")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
