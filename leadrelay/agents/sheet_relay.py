"""
sheet_relay.py — Forward leads to the Google Sheets store

One synchronous POST per submission, bounded by RELAY_TIMEOUT.
Failures are written to sheet_fail.log and swallowed: by the time this
runs the lead is already in submission.log, so a failed relay only means
the sheet is missing a row. No retry.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from leadrelay.core.journal import Channel, JournalWriter
from leadrelay.core.models import OutcomeRecord, SubmissionRecord

log = logging.getLogger("leadrelay.sheet")

STAGE = "sheet"
MAX_ERROR_TEXT = 2000


@dataclass(frozen=True)
class RelayResult:
    ok: bool
    status_code: Optional[int] = None
    text: str = ""
    error: Optional[str] = None


class SheetRelay:

    def __init__(self, sheet_url: str, journal: JournalWriter, timeout: float = 15.0,
                 session: requests.Session = None):
        self.sheet_url = sheet_url
        self.journal = journal
        self.timeout = timeout
        self._http = session or requests

    def relay(self, record: SubmissionRecord) -> RelayResult:
        """POST the raw payload. Never raises."""
        extra = {"submission_id": record.submission_id, "stage": STAGE}
        if not self.sheet_url:
            log.warning("SHEET_URL not set, lead kept locally only", extra=extra)
            return self._fail(record, RelayResult(ok=False, error="sheet_url_not_configured"))

        try:
            resp = self._http.post(self.sheet_url, json=record.payload_dict(),
                                   timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("Google Sheets exception (saved locally): %s", e, extra=extra)
            return self._fail(record, RelayResult(ok=False, error=str(e) or type(e).__name__))
        except Exception as e:
            # urllib3 URL parse errors (empty/IDNA host labels) escape requests' wrapping
            log.error("Google Sheets relay error (saved locally): %s", e, extra=extra)
            return self._fail(record, RelayResult(ok=False, error=str(e) or type(e).__name__))

        if resp.ok:
            log.info("Saved to Google Sheets (%d)", resp.status_code, extra=extra)
            return RelayResult(ok=True, status_code=resp.status_code)

        try:
            text = resp.text[:MAX_ERROR_TEXT]
        except (requests.RequestException, UnicodeDecodeError):
            text = ""
        log.warning("Google Sheets returned non-OK: %d %s", resp.status_code, text[:200],
                    extra=extra)
        return self._fail(record, RelayResult(ok=False, status_code=resp.status_code, text=text))

    def _fail(self, record: SubmissionRecord, result: RelayResult) -> RelayResult:
        if result.error:
            outcome = OutcomeRecord.for_record(record, STAGE, "error", detail=result.error)
        else:
            outcome = OutcomeRecord.for_record(
                record, STAGE, "error", detail=f"http_{result.status_code}",
                status_code=result.status_code, text=result.text)
        self.journal.append(Channel.SHEET_FAIL, outcome.to_log_fields())
        return result
