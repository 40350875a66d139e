"""
partner_form.py — Replicate form leads into the partner affiliate form
Runs in background workers, never on the request thread.

Uses Playwright (headless Chromium) to open the partner's own intake
form, type in the lead, press submit and look for the green success box.
The partner page is not ours and changes without notice, so every field
is looked up before it is filled; a missing or uneditable field is skipped,
not fatal.

Flow per lead:
  1. Navigate (bounded by PARTNER_NAV_TIMEOUT_MS)
  2. Fill affiliateId / city / leadName / leadPhone if present
  3. Compose notes from participants + tour info + channel marker
  4. Find a submit control → none = no_submit_button_found
  5. Click, wait PARTNER_SUCCESS_WAIT_MS for div[class*="bg-green"]
       found     → success_detected
       timed out → submitted_no_indicator (not an error)
  6. Close the browser, write exactly one line to rockettour.log

ReplicationDispatcher bounds how many browsers run at once: a fixed pool
of worker threads over a bounded queue. When the queue is full the lead
is shed (logged as status "shed") instead of spawning another Chromium.
On process exit shutdown() records every replication that will never run
as status "dropped".
"""

import re
import time
import queue
import logging
import threading
from contextlib import contextmanager
from enum import Enum

from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from leadrelay.core.journal import Channel, JournalWriter
from leadrelay.core.models import OutcomeRecord, Source, SubmissionRecord

log = logging.getLogger("leadrelay.partner_form")

STAGE = "partner_form"

BROWSER_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# Selectors on the partner form
AFFILIATE_FIELD = 'input[name="affiliateId"]'
CITY_FIELD = 'input[name="city"]'
NAME_FIELD = 'input[name="leadName"]'
PHONE_FIELD = 'input[name="leadPhone"]'
NOTES_FIELD = 'textarea[name="notes"]'
SUBMIT_SELECTORS = [
    'form button[type="submit"]',
    'form input[type="submit"]',
    'button[type="submit"]',
    'input[type="submit"]',
]
SUCCESS_SELECTOR = 'div[class*="bg-green"]'
FILL_TIMEOUT_MS = 5000

# Notes text (the partner form is in Hebrew)
PARTICIPANTS_LABEL = "מספר משתתפים"
CHANNEL_MARKERS = {
    Source.FORM: "נשלח בטופס",
    Source.WHATSAPP: "נשלח בוואטסאפ",
}
_TOUR_SPLIT = re.compile(r"[,;\n]")


class ReplicationState(str, Enum):
    IDLE = "idle"
    NAVIGATED = "navigated"
    FIELDS_FILLED = "fields_filled"
    SUBMITTED = "submitted"
    SUCCESS_DETECTED = "success_detected"
    INCONCLUSIVE = "inconclusive"
    ERRORED = "errored"
    CLOSED = "closed"


def normalize_tours(tours) -> str:
    """List or delimited string → "A, B, C". Both shapes give the same text."""
    if tours is None:
        return ""
    if isinstance(tours, (list, tuple)):
        items = [str(t).strip() for t in tours]
    else:
        items = [t.strip() for t in _TOUR_SPLIT.split(str(tours))]
    return ", ".join(t for t in items if t)


def compose_notes(record: SubmissionRecord) -> str:
    parts = []
    if record.npart:
        parts.append(f"{PARTICIPANTS_LABEL}: {record.npart}")
    if record.participants:
        parts.append(f"{PARTICIPANTS_LABEL}: {record.participants}")
    if record.tour_details:
        parts.append(record.tour_details)
    parts.append(normalize_tours(record.tours))
    parts.append(CHANNEL_MARKERS[record.source])
    return "\n".join(p for p in parts if p)


@contextmanager
def chromium_page(headless: bool = True):
    """Fresh headless Chromium + context per lead. Always closed on exit."""
    with sync_playwright() as p:
        browser = p.chromium.launch(headless=headless, args=BROWSER_ARGS)
        try:
            ctx = browser.new_context(user_agent=USER_AGENT,
                                      viewport={"width": 1280, "height": 900})
            yield ctx.new_page()
        finally:
            browser.close()


class PartnerFormReplicator:

    def __init__(self, partner_url: str, affiliate_id: str, destination_city: str,
                 journal: JournalWriter, navigation_timeout_ms: int = 30000,
                 success_wait_ms: int = 5000, session_factory=chromium_page):
        self.partner_url = partner_url
        self.affiliate_id = affiliate_id
        self.destination_city = destination_city
        self.journal = journal
        self.navigation_timeout_ms = navigation_timeout_ms
        self.success_wait_ms = success_wait_ms
        self._session_factory = session_factory

    def _field_values(self, record: SubmissionRecord) -> list:
        return [
            (AFFILIATE_FIELD, self.affiliate_id),
            (CITY_FIELD, self.destination_city),
            (NAME_FIELD, record.name or ""),
            (PHONE_FIELD, record.phone or ""),
            (NOTES_FIELD, compose_notes(record)),
        ]

    def _fill_fields(self, page, record: SubmissionRecord):
        extra = {"submission_id": record.submission_id, "stage": STAGE}
        filled, skipped = [], []
        for selector, value in self._field_values(record):
            if page.query_selector(selector) is None:
                skipped.append(selector)
                continue
            try:
                page.fill(selector, str(value), timeout=FILL_TIMEOUT_MS)
            except PlaywrightError as e:
                # detached / disabled / readonly: skip it like a missing field
                log.warning("Partner form: could not fill %s: %s", selector, e, extra=extra)
                skipped.append(selector)
                continue
            filled.append(selector)
        if skipped:
            log.info("Partner form: fields skipped: %s", ", ".join(skipped), extra=extra)
        return filled, skipped

    @staticmethod
    def _find_submit(page):
        for selector in SUBMIT_SELECTORS:
            handle = page.query_selector(selector)
            if handle is not None:
                return handle
        return None

    def replicate(self, record: SubmissionRecord) -> OutcomeRecord:
        """Run one replication attempt. Never raises; always writes one outcome."""
        extra = {"submission_id": record.submission_id, "stage": STAGE}
        t0 = time.time()
        state = ReplicationState.IDLE
        outcome = None
        filled, skipped = [], []
        log.info("Partner form submission started", extra=extra)

        try:
            with self._session_factory() as page:
                page.goto(self.partner_url, wait_until="networkidle",
                          timeout=self.navigation_timeout_ms)
                state = ReplicationState.NAVIGATED

                filled, skipped = self._fill_fields(page, record)
                state = ReplicationState.FIELDS_FILLED

                submit = self._find_submit(page)
                if submit is None:
                    state = ReplicationState.ERRORED
                    outcome = ("error", "no_submit_button_found")
                else:
                    submit.click()
                    state = ReplicationState.SUBMITTED
                    try:
                        page.wait_for_selector(SUCCESS_SELECTOR, timeout=self.success_wait_ms)
                        state = ReplicationState.SUCCESS_DETECTED
                        outcome = ("success_detected", None)
                    except PlaywrightTimeoutError:
                        state = ReplicationState.INCONCLUSIVE
                        outcome = ("submitted_no_indicator", None)
        except Exception as e:  # background job: no caller to raise to
            if outcome is None:
                outcome = ("error", str(e) or type(e).__name__)
                failed_at, state = state, ReplicationState.ERRORED
                log.error("Partner form error at %s: %s", failed_at.value, e, extra=extra)
            else:
                log.warning("Partner form: browser close failed: %s", e, extra=extra)

        last_state = state
        state = ReplicationState.CLOSED
        status, detail = outcome
        result = OutcomeRecord.for_record(
            record, STAGE, status, detail=detail,
            state=last_state.value,
            filled_fields=filled, skipped_fields=skipped,
            duration_ms=round((time.time() - t0) * 1000),
        )
        self.journal.append(Channel.PARTNER_FORM, result.to_log_fields())

        if status == "success_detected":
            log.info("Partner form: success box detected", extra={**extra, "status": status})
        elif status == "submitted_no_indicator":
            log.info("Partner form: submitted but no success box found",
                     extra={**extra, "status": status})
        elif detail == "no_submit_button_found":
            log.warning("Partner form: no submit button found on page",
                        extra={**extra, "status": status})
        return result


class ReplicationDispatcher:
    """Fixed pool of background workers over a bounded queue."""

    def __init__(self, replicator: PartnerFormReplicator, journal: JournalWriter,
                 max_sessions: int = 2, max_pending: int = 50, autostart: bool = True):
        self.replicator = replicator
        self.journal = journal
        self.max_sessions = max_sessions
        self.max_pending = max_pending
        self.autostart = autostart
        self._queue = queue.Queue(maxsize=max_pending)
        self._workers = []
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._outstanding = 0
        self._active = {}
        self._stopped = False
        self._counts = {"submitted": 0, "completed": 0, "shed": 0, "dropped": 0}

    def start(self):
        """Start the worker threads (idempotent)."""
        with self._lock:
            if self._stopped:
                return
            while len(self._workers) < self.max_sessions:
                t = threading.Thread(
                    target=self._run, daemon=True,
                    name=f"partner-form-{len(self._workers) + 1}",
                )
                t.start()
                self._workers.append(t)

    def submit(self, record: SubmissionRecord) -> bool:
        """Queue a replication. Returns False if it was shed or dropped."""
        if self.autostart and len(self._workers) < self.max_sessions:
            self.start()
        with self._lock:
            stopped, shed = self._stopped, False
            if not stopped:
                try:
                    self._queue.put_nowait(record)
                except queue.Full:
                    self._counts["shed"] += 1
                    shed = True
                else:
                    self._outstanding += 1
                    self._counts["submitted"] += 1

        if stopped:
            self._drop(record, "shutdown")
            return False
        if shed:
            log.warning("Partner form queue full (%d pending), lead shed", self.max_pending,
                        extra={"submission_id": record.submission_id, "stage": STAGE,
                               "status": "shed"})
            outcome = OutcomeRecord.for_record(record, STAGE, "shed", detail="queue_full",
                                               max_pending=self.max_pending)
            self.journal.append(Channel.PARTNER_FORM, outcome.to_log_fields())
            return False
        return True

    def _run(self):
        me = threading.get_ident()
        while True:
            record = self._queue.get()
            with self._lock:
                self._active[me] = record
            try:
                self.replicator.replicate(record)
            except Exception:
                log.exception("Partner form worker crashed on %s", record.submission_id)
            finally:
                self._queue.task_done()
                with self._idle:
                    self._active.pop(me, None)
                    self._outstanding -= 1
                    self._counts["completed"] += 1
                    self._idle.notify_all()

    def _drop(self, record: SubmissionRecord, detail: str):
        with self._lock:
            self._counts["dropped"] += 1
        log.warning("Partner form replication dropped (%s)", detail,
                    extra={"submission_id": record.submission_id, "stage": STAGE,
                           "status": "dropped"})
        outcome = OutcomeRecord.for_record(record, STAGE, "dropped", detail=detail)
        self.journal.append(Channel.PARTNER_FORM, outcome.to_log_fields())

    def shutdown(self, grace: float = 5.0) -> int:
        """Stop taking work and account for what will never run.

        Queued replications get a "dropped" outcome right away. Running ones
        get `grace` seconds to finish; any still running after that are
        recorded as dropped too. Returns how many were dropped.
        """
        with self._lock:
            if self._stopped:
                return 0
            self._stopped = True

        dropped = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            with self._idle:
                self._outstanding -= 1
                self._idle.notify_all()
            self._drop(record, "shutdown")
            dropped += 1

        if not self.wait_idle(timeout=grace):
            with self._lock:
                running = list(self._active.values())
            for record in running:
                self._drop(record, "shutdown_in_flight")
                dropped += 1

        if dropped:
            log.warning("Partner form dispatcher stopped, %d replication(s) dropped", dropped)
        return dropped

    def wait_idle(self, timeout: float = None) -> bool:
        """Block until every queued replication has finished. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._outstanding:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stats(self) -> dict:
        with self._lock:
            return {
                "workers": len(self._workers),
                "pending": self._queue.qsize(),
                "in_flight": len(self._active),
                "max_pending": self.max_pending,
                "max_sessions": self.max_sessions,
                "stopped": self._stopped,
                **self._counts,
            }
