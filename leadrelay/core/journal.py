"""
journal.py — Append-only lead journals

First point of guaranteed persistence: every lead is written here before
any network call is made for it. One JSON object per line, stamped with
`ts` at write time. Files are created on demand and never truncated,
rotated or compacted.

Channels:
    general       submission.log   every submission
    whatsapp      whatsapp.log     chat-widget submissions only
    sheet_fail    sheet_fail.log   spreadsheet relay failures
    partner_form  rockettour.log   partner form replication outcomes

Usage:
    journal = JournalWriter("/data/logs")
    journal.append(Channel.GENERAL, {"id": rec.submission_id, "payload": {...}})
"""

import json
import os
import logging
import threading
from datetime import datetime, timezone

log = logging.getLogger("leadrelay.journal")


class Channel:
    GENERAL = "general"
    WHATSAPP = "whatsapp"
    SHEET_FAIL = "sheet_fail"
    PARTNER_FORM = "partner_form"


# File names kept compatible with the logs already on the server
CHANNEL_FILES = {
    Channel.GENERAL: "submission.log",
    Channel.WHATSAPP: "whatsapp.log",
    Channel.SHEET_FAIL: "sheet_fail.log",
    Channel.PARTNER_FORM: "rockettour.log",
}


class JournalWriter:
    """Thread-safe JSON-lines appender over a fixed set of channels."""

    def __init__(self, log_dir: str, files: dict = None):
        self.log_dir = log_dir
        self._files = dict(files or CHANNEL_FILES)
        self._lock = threading.Lock()

    def path_for(self, channel: str) -> str:
        return os.path.join(self.log_dir, self._files[channel])

    def paths(self) -> dict:
        return {ch: self.path_for(ch) for ch in self._files}

    def append(self, channel: str, fields: dict) -> bool:
        """Append one record. Never raises on I/O; returns False if the write failed."""
        path = self.path_for(channel)
        entry = {"ts": datetime.now(timezone.utc).isoformat(), **fields}
        try:
            line = json.dumps(entry, ensure_ascii=False, default=str) + "\n"
        except (TypeError, ValueError) as e:
            log.error("Journal %s: record not serializable: %s", channel, e)
            return False

        data = line.encode("utf-8")
        try:
            with self._lock:
                os.makedirs(self.log_dir, exist_ok=True)
                # O_APPEND + one write() per record: lines never interleave
                fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
                try:
                    os.write(fd, data)
                finally:
                    os.close(fd)
        except OSError as e:
            log.error("Journal write failed (%s → %s): %s", channel, path, e,
                      extra={"submission_id": fields.get("id")})
            return False
        return True

    def read_entries(self, channel: str) -> list:
        """Read a channel back. Missing file → []. Corrupt lines are skipped."""
        path = self.path_for(channel)
        entries = []
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        log.warning("Skipping corrupt line in %s", path)
        except FileNotFoundError:
            return []
        return entries

    def counts(self) -> dict:
        """Entries per channel, for the status endpoint."""
        out = {}
        for ch in self._files:
            try:
                with open(self.path_for(ch), "rb") as f:
                    out[ch] = sum(1 for line in f if line.strip())
            except FileNotFoundError:
                out[ch] = 0
            except OSError as e:
                log.warning("Cannot count %s: %s", ch, e)
                out[ch] = None
        return out
