"""
config.py — Centralized Settings for the Lead Relay

Single source of truth for every value the relay pipeline consumes.
Each setting is bound to an environment variable with an optional
alias and a default.

Env vars:
  SHEET_URL               — Google Apps Script endpoint receiving raw leads
  PARTNER_FORM_URL        — Partner affiliate form (alias: ROCKETOUR_URL)
  AFFILIATE_ID            — Our affiliate id on the partner form
  DESTINATION_CITY        — Fixed destination typed into the partner form
  ALLOWED_ORIGIN          — CORS origin allowed to post leads
  LEADRELAY_LOG_DIR       — Journal directory (default: DATA_DIR/logs)
  RELAY_TIMEOUT           — Seconds to wait for the sheet endpoint
  PARTNER_NAV_TIMEOUT_MS  — Partner page navigation bound
  PARTNER_SUCCESS_WAIT_MS — Wait for the green success box after submit
  PARTNER_MAX_SESSIONS    — Concurrent headless browsers
  PARTNER_MAX_PENDING     — Queued replications before shedding
  PARTNER_REPLICATION     — "false" disables partner replication entirely

Security:
  - The sheet URL embeds a deployment key; it is never shown in full
  - Status endpoint shows which settings are set, masked
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from leadrelay.core.paths import LOG_DIR

log = logging.getLogger("leadrelay.config")

_FALSE = ("false", "0", "off", "no")

# ─── Setting Definitions ────────────────────────────────────────────────────

_REGISTRY = {
    "sheet_url": {
        "env": "SHEET_URL",
        "required": True,
        "desc": "Spreadsheet store endpoint (Apps Script web app)",
        "stages": ["sheet"],
        "sensitive": True,
    },
    "partner_url": {
        "env": "PARTNER_FORM_URL",
        "fallback": "ROCKETOUR_URL",
        "required": True,
        "desc": "Partner affiliate form URL",
        "stages": ["partner_form"],
        "default": "https://rocketour.co/affiliate-form/",
    },
    "affiliate_id": {
        "env": "AFFILIATE_ID",
        "required": True,
        "desc": "Affiliate identifier typed into the partner form",
        "stages": ["partner_form"],
        "default": "242",
    },
    "destination_city": {
        "env": "DESTINATION_CITY",
        "required": False,
        "desc": "Fixed destination city typed into the partner form",
        "stages": ["partner_form"],
        "default": "רומא",
    },
    "allowed_origin": {
        "env": "ALLOWED_ORIGIN",
        "required": False,
        "desc": "CORS origin allowed to call the intake endpoint",
        "stages": ["http"],
        "default": "https://saveforyourtrip.com",
    },
    "log_dir": {
        "env": "LEADRELAY_LOG_DIR",
        "required": False,
        "desc": "Directory of the append-only journals",
        "stages": ["journal"],
        "default": LOG_DIR,
    },
    "relay_timeout": {
        "env": "RELAY_TIMEOUT",
        "required": False,
        "desc": "Sheet relay timeout (seconds)",
        "stages": ["sheet"],
        "default": "15",
        "type": float,
    },
    "navigation_timeout_ms": {
        "env": "PARTNER_NAV_TIMEOUT_MS",
        "required": False,
        "desc": "Partner page navigation timeout (ms)",
        "stages": ["partner_form"],
        "default": "30000",
        "type": int,
    },
    "success_wait_ms": {
        "env": "PARTNER_SUCCESS_WAIT_MS",
        "required": False,
        "desc": "Wait for partner success indicator after submit (ms)",
        "stages": ["partner_form"],
        "default": "5000",
        "type": int,
    },
    "max_browser_sessions": {
        "env": "PARTNER_MAX_SESSIONS",
        "required": False,
        "desc": "Concurrent headless browser sessions",
        "stages": ["partner_form"],
        "default": "2",
        "type": int,
    },
    "max_pending_replications": {
        "env": "PARTNER_MAX_PENDING",
        "required": False,
        "desc": "Queued partner replications before new ones are shed",
        "stages": ["partner_form"],
        "default": "50",
        "type": int,
    },
    "replication_enabled": {
        "env": "PARTNER_REPLICATION",
        "required": False,
        "desc": "Replicate form leads into the partner form",
        "stages": ["partner_form"],
        "default": "true",
        "type": bool,
    },
}


class ConfigError(ValueError):
    """A setting is present but cannot be parsed."""


# ─── Public API ──────────────────────────────────────────────────────────────

def get_setting(name: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Get a raw setting by registry name. Returns empty string if not set."""
    entry = _REGISTRY.get(name)
    if not entry:
        log.warning("Unknown setting requested: %s", name)
        return ""
    environ = os.environ if environ is None else environ

    val = environ.get(entry["env"], "")
    if not val and "fallback" in entry:
        val = environ.get(entry["fallback"], "")
    if not val and "default" in entry:
        val = entry["default"]
    return val


def _coerce(name: str, raw: str):
    kind = _REGISTRY[name].get("type", str)
    if kind is bool:
        return str(raw).strip().lower() not in _FALSE
    if kind is str:
        return raw
    try:
        return kind(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{_REGISTRY[name]['env']}={raw!r} is not a valid {kind.__name__}")


@dataclass(frozen=True)
class RelayConfig:
    """Immutable snapshot of every value the pipeline reads."""
    sheet_url: str = ""
    partner_url: str = _REGISTRY["partner_url"]["default"]
    affiliate_id: str = _REGISTRY["affiliate_id"]["default"]
    destination_city: str = _REGISTRY["destination_city"]["default"]
    allowed_origin: str = _REGISTRY["allowed_origin"]["default"]
    log_dir: str = LOG_DIR
    relay_timeout: float = 15.0
    navigation_timeout_ms: int = 30000
    success_wait_ms: int = 5000
    max_browser_sessions: int = 2
    max_pending_replications: int = 50
    replication_enabled: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        values = {name: _coerce(name, get_setting(name, environ)) for name in _REGISTRY}
        if values["max_browser_sessions"] < 1:
            raise ConfigError("PARTNER_MAX_SESSIONS must be at least 1")
        if values["max_pending_replications"] < 1:
            raise ConfigError("PARTNER_MAX_PENDING must be at least 1")
        return cls(**values)


def mask(value: str) -> str:
    """Mask a value for safe logging. Shows first 8 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return value[:4] + "****"
    return value[:8] + "****" + f"({len(value)} chars)"


def _raw_values(environ, config) -> dict:
    """Registry name → string value, from a live RelayConfig or from the env."""
    if config is not None:
        out = {}
        for name in _REGISTRY:
            val = getattr(config, name)
            if isinstance(val, bool):
                val = "true" if val else "false"
            out[name] = "" if val is None else str(val)
        return out
    return {name: get_setting(name, environ) for name in _REGISTRY}


def validate_config(environ: Optional[Mapping[str, str]] = None,
                    config: Optional[RelayConfig] = None) -> dict:
    """Validate all settings. Returns status report.

    With `config`, reports the values the running relay actually uses;
    otherwise reads the environment.
    """
    environ = os.environ if environ is None else environ
    values = _raw_values(environ, config)
    results = {}
    warnings = []
    for name, entry in _REGISTRY.items():
        val = values[name]
        is_set = bool(val)
        if config is not None:
            if "default" in entry:
                from_default = getattr(config, name) == _coerce(name, entry["default"])
            else:
                from_default = not is_set
        else:
            from_default = not environ.get(entry["env"]) and not (
                "fallback" in entry and environ.get(entry["fallback"]))
        results[name] = {
            "set": is_set,
            "env": entry["env"],
            "desc": entry["desc"],
            "value": mask(val) if entry.get("sensitive") else (val or "(not set)"),
            "required": entry.get("required", False),
            "stages": entry["stages"],
            "from_default": from_default,
        }
        if entry.get("required") and not is_set:
            warnings.append(f"REQUIRED setting missing: {entry['env']} ({entry['desc']})")
        if config is None and entry.get("type", str) is not str and is_set:
            try:
                _coerce(name, val)
            except ConfigError as e:
                warnings.append(str(e))

    return {
        "settings": results,
        "total": len(results),
        "set": sum(1 for r in results.values() if r["set"]),
        "missing": sum(1 for r in results.values() if not r["set"]),
        "warnings": warnings,
    }


def startup_check(environ: Optional[Mapping[str, str]] = None,
                  config: Optional[RelayConfig] = None) -> dict:
    """Run on startup. Logs warnings for missing settings."""
    report = validate_config(environ, config=config)
    log.info("Settings: %d/%d configured", report["set"], report["total"])
    for w in report["warnings"]:
        log.warning("CONFIG: %s", w)
    return report
