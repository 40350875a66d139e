"""
routes.py — HTTP surface of the lead relay

    POST /formnew/submit    intake (JSON or urlencoded), always {"ok": true}
    GET  /formnew/healthz   liveness
    GET  /formnew/status    masked settings + journal/replication counters

Paths keep the /formnew prefix the reverse proxy forwards to this service.
"""

import time
import logging

from flask import Blueprint, Response, jsonify, request

from leadrelay.core.config import validate_config
from leadrelay.core.models import InvalidSubmission
from leadrelay.agents.intake import IntakeCoordinator

log = logging.getLogger("leadrelay.api")

URL_PREFIX = "/formnew"


def _read_body():
    """JSON object, or urlencoded form flattened the way the widget sends it."""
    if request.is_json:
        return request.get_json(silent=True)
    body = {}
    for key, values in request.form.to_dict(flat=False).items():
        # tours[]=a&tours[]=b → tours: ["a", "b"]
        if key.endswith("[]"):
            body[key[:-2]] = values
        elif len(values) > 1:
            body[key] = values
        else:
            body[key] = values[0]
    return body


def create_blueprint(context) -> Blueprint:
    bp = Blueprint("leadrelay", __name__, url_prefix=URL_PREFIX)
    coordinator = IntakeCoordinator(context)
    allowed_origin = context.config.allowed_origin

    @bp.before_request
    def _log_request_start():
        request._start_time = time.time()

    @bp.after_request
    def _finish(response):
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers["Vary"] = "Origin"
        if request.method == "OPTIONS":
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        if hasattr(request, "_start_time") and request.path != f"{URL_PREFIX}/healthz":
            duration_ms = round((time.time() - request._start_time) * 1000, 1)
            log.info("%s %s → %d (%.0fms)",
                     request.method, request.path, response.status_code, duration_ms,
                     extra={"route": request.path, "method": request.method,
                            "duration_ms": duration_ms})
        return response

    @bp.route("/healthz", methods=["GET"])
    def healthz():
        return Response("OK - new form service", mimetype="text/plain")

    @bp.route("/submit", methods=["POST"])
    def submit():
        try:
            receipt = coordinator.handle(
                _read_body(),
                headers=request.headers,
                remote_addr=request.remote_addr,
            )
        except InvalidSubmission as e:
            log.warning("Rejected submission: %s", e)
            return jsonify({"ok": False, "error": str(e)}), 400

        resp = jsonify(receipt.ack)
        # Runs once the reply has been handed to the client
        resp.call_on_close(lambda: coordinator.follow_up(receipt))
        return resp

    @bp.route("/status", methods=["GET"])
    def status():
        report = validate_config(config=context.config)
        return jsonify({
            "ok": not report["warnings"],
            "settings": report["settings"],
            "warnings": report["warnings"],
            **context.describe(),
        })

    return bp
