#!/usr/bin/env python3
"""
Lead Relay — Application Entry Point
Creates the Flask app and registers the intake Blueprint.
"""

import os
import atexit
import logging
from flask import Flask

from logging_config import setup_logging


def create_app(context=None, configure_logging=True):
    """Application factory."""
    from leadrelay.core.config import startup_check
    from leadrelay.core.relay_context import build_context
    from leadrelay.core.startup_checks import run_startup_checks
    from leadrelay.api.routes import create_blueprint

    if configure_logging:
        setup_logging(log_dir=context.config.log_dir if context else None)
    if context is None:
        context = build_context()
    startup_check(config=context.config)
    if context.dispatcher is not None:
        # queued partner replications get a "dropped" outcome on interpreter exit
        atexit.register(context.dispatcher.shutdown)

    app = Flask(__name__)
    app.config["RELAY_CONTEXT"] = context
    app.register_blueprint(create_blueprint(context))

    # ── Runtime self-test — catches path/config bugs at boot ──────────────
    checks = run_startup_checks(context, app)
    if checks["failed"] > 0:
        logging.getLogger("leadrelay").error(
            "STARTUP: %d checks FAILED — review logs", checks["failed"])

    return app


# For gunicorn: gunicorn --threads 8 "app:create_app()"

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 4001))
    app = create_app()
    logging.getLogger("leadrelay").info("Lead relay listening on port %d", port)
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True)
