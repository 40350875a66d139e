"""
leadrelay/core/paths.py — Centralized Path Configuration

Single source of truth for directory paths across the service.
Journals, the process log and any future state live under DATA_DIR.
Directories are created on first write, not at import.
"""

import os
import logging

log = logging.getLogger("leadrelay.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_DEFAULT_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


# Priority: LEADRELAY_DATA_DIR env → project data/
def _resolve_data_dir() -> str:
    """Find the data directory."""
    env_dir = os.environ.get("LEADRELAY_DATA_DIR", "")
    if env_dir:
        return os.path.abspath(env_dir)
    return _DEFAULT_DATA_DIR


DATA_DIR = _resolve_data_dir()
LOG_DIR = os.environ.get("LEADRELAY_LOG_DIR", "") or os.path.join(DATA_DIR, "logs")


def validate_paths(log_dir: str = None) -> dict:
    """Runtime validation — call at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "warnings": [str], "resolved": {name: path}}
    """
    log_dir = log_dir or LOG_DIR
    result = {"ok": True, "errors": [], "warnings": [],
              "resolved": {"PROJECT_ROOT": PROJECT_ROOT, "DATA_DIR": DATA_DIR,
                           "LOG_DIR": log_dir}}

    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError as e:
        result["errors"].append(f"LOG_DIR cannot be created: {e}")
        result["ok"] = False
        return result

    test_file = os.path.join(log_dir, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"LOG_DIR not writable: {e}")
        result["ok"] = False

    if not os.environ.get("LEADRELAY_DATA_DIR") and not os.environ.get("LEADRELAY_LOG_DIR"):
        result["warnings"].append(
            f"Journals are written inside the project tree ({log_dir}); "
            "set LEADRELAY_DATA_DIR to a persistent volume in production"
        )
    return result
