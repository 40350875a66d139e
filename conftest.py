"""
Shared pytest fixtures for the lead relay test suite.

Every test gets its own journal directory under tmp_path. No test
touches the network or launches a real browser: the sheet endpoint is
patched and the partner form is a FakePage driven through the same
session_factory hook the real Chromium session uses.
"""
import os
import sys
from contextlib import contextmanager

import pytest
from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from leadrelay.core.config import RelayConfig
from leadrelay.core.journal import JournalWriter
from leadrelay.core.relay_context import build_context
from leadrelay.agents.partner_form import (
    AFFILIATE_FIELD, CITY_FIELD, NAME_FIELD, NOTES_FIELD, PHONE_FIELD,
)

SHEET_URL = "https://script.google.test/macros/s/TESTDEPLOY/exec"
PARTNER_URL = "https://partner.test/affiliate-form/"

ALL_FIELDS = (AFFILIATE_FIELD, CITY_FIELD, NAME_FIELD, PHONE_FIELD, NOTES_FIELD)
SUBMIT_BUTTON = 'form button[type="submit"]'


# ── Fake partner page ─────────────────────────────────────────────────────────

class FakeElement:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    def click(self):
        self.page.clicked.append(self.selector)


class FakePage:
    """Just enough of playwright's sync Page for the replicator."""

    def __init__(self, present=ALL_FIELDS + (SUBMIT_BUTTON,), success=True, goto_error=None,
                 fill_errors=()):
        self.present = set(present)
        self.success = success
        self.goto_error = goto_error
        self.fill_errors = set(fill_errors)
        self.visited = []
        self.filled = {}
        self.clicked = []
        self.queried = []
        self.opened = 0
        self.closed = 0

    def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error:
            raise self.goto_error
        self.visited.append((url, wait_until, timeout))

    def query_selector(self, selector):
        self.queried.append(selector)
        return FakeElement(self, selector) if selector in self.present else None

    def fill(self, selector, value, timeout=None):
        if selector not in self.present:
            raise AssertionError(f"filled a field that is not on the page: {selector}")
        if selector in self.fill_errors:
            raise PlaywrightError(f"Element is not editable: {selector}")
        self.filled[selector] = value

    def wait_for_selector(self, selector, timeout=None):
        if not self.success:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        return FakeElement(self, selector)


def session_for(page):
    """session_factory that hands out `page` and counts open/close."""
    @contextmanager
    def factory():
        page.opened += 1
        try:
            yield page
        finally:
            page.closed += 1
    return factory


# ── Config / context ─────────────────────────────────────────────────────────

@pytest.fixture
def log_dir(tmp_path):
    return str(tmp_path / "logs")


@pytest.fixture
def relay_config(log_dir):
    return RelayConfig(
        sheet_url=SHEET_URL,
        partner_url=PARTNER_URL,
        affiliate_id="242",
        destination_city="רומא",
        allowed_origin="https://saveforyourtrip.com",
        log_dir=log_dir,
        relay_timeout=2.0,
        navigation_timeout_ms=30000,
        success_wait_ms=5000,
        max_browser_sessions=1,
        max_pending_replications=5,
    )


@pytest.fixture
def journal(log_dir):
    return JournalWriter(log_dir)


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def context(relay_config, fake_page):
    ctx = build_context(relay_config, session_factory=session_for(fake_page))
    yield ctx
    if ctx.dispatcher is not None:
        ctx.dispatcher.wait_idle(timeout=5)


@pytest.fixture
def app(context):
    """Flask app over the test context (no logging reconfiguration)."""
    from app import create_app
    flask_app = create_app(context, configure_logging=False)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


# ── Sample data factories ─────────────────────────────────────────────────────

@pytest.fixture
def form_payload():
    return {
        "source": "form",
        "name": "Dana Levi",
        "phone": "0521234567",
        "email": "dana@example.com",
        "datetour": "2026-11-02",
        "npart": "4",
        "tour_details": "Vatican morning tour",
        "tours": ["Colosseum", "Vatican Museums"],
    }


@pytest.fixture
def whatsapp_payload():
    return {
        "source": "WhatsApp",
        "name": "Avi Cohen",
        "phone": "0539876543",
        "participants": "2",
        "tours": "Trastevere food tour",
    }
