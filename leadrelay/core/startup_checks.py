"""
leadrelay/core/startup_checks.py — Runtime Self-Test on App Boot

Runs when the app starts. A failed check is logged loudly but never
stops the service: an intake that cannot relay still captures leads.

  1. Journal directory exists and is writable
  2. Settings present (SHEET_URL, partner form)
  3. Routes registered (submit, healthz)
"""

import logging

log = logging.getLogger("leadrelay.startup")

REQUIRED_ENDPOINTS = ("leadrelay.submit", "leadrelay.healthz")


def run_startup_checks(context, app=None) -> dict:
    """Run all startup validation checks. Call from app.py after blueprint registration.

    Returns:
        {"passed": int, "failed": int, "warnings": int, "details": [...]}
    """
    results = {"passed": 0, "failed": 0, "warnings": 0, "details": []}

    def _pass(msg):
        results["passed"] += 1
        results["details"].append(("PASS", msg))
        log.info("✅ %s", msg)

    def _fail(msg):
        results["failed"] += 1
        results["details"].append(("FAIL", msg))
        log.error("❌ STARTUP CHECK FAILED: %s", msg)

    def _warn(msg):
        results["warnings"] += 1
        results["details"].append(("WARN", msg))
        log.warning("⚠️  %s", msg)

    # ── 1. Journal directory ──────────────────────────────────────────────────
    from leadrelay.core.paths import validate_paths
    path_result = validate_paths(context.config.log_dir)
    if path_result["ok"]:
        _pass(f"Journal dir writable ({context.config.log_dir})")
    else:
        for err in path_result["errors"]:
            _fail(err)
    for warn in path_result["warnings"]:
        _warn(warn)

    # ── 2. Settings ───────────────────────────────────────────────────────────
    cfg = context.config
    if cfg.sheet_url:
        _pass("SHEET_URL set")
    else:
        _warn("SHEET_URL not set — leads will only be kept in local journals")
    if context.dispatcher is None:
        _warn("Partner form replication disabled")
    elif cfg.partner_url:
        _pass(f"Partner form: {cfg.partner_url} "
              f"({cfg.max_browser_sessions} sessions, {cfg.max_pending_replications} queued max)")
    else:
        _fail("Partner form URL empty while replication is enabled")

    # ── 3. Routes ─────────────────────────────────────────────────────────────
    if app is not None:
        endpoints = {r.endpoint for r in app.url_map.iter_rules()}
        missing = [e for e in REQUIRED_ENDPOINTS if e not in endpoints]
        if missing:
            _fail(f"Routes missing: {', '.join(missing)}")
        else:
            _pass(f"Flask routes registered: {len(endpoints)}")

    total = results["passed"] + results["failed"] + results["warnings"]
    if results["failed"] > 0:
        log.error("STARTUP: %d/%d checks FAILED — relay may not work correctly",
                  results["failed"], total)
    else:
        log.info("STARTUP: All %d checks passed (%d warnings)",
                 results["passed"], results["warnings"])
    return results
