"""
intake.py — Intake coordinator for one lead submission

Order per submission (never reordered):
  1. submission.log          (every lead)
  2. whatsapp.log            (chat-widget leads only)
  3. Google Sheets relay     (awaited, failure logged and ignored)
  4. acknowledgement         {"ok": true}, unconditional after step 1
  5. partner form replication, form leads only, after the reply is out

Steps 1-3 run on the request thread. Step 5 is queued on the
ReplicationDispatcher by follow_up(), which the HTTP layer calls from
response.call_on_close.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from leadrelay.core.journal import Channel
from leadrelay.core.models import Source, SubmissionRecord
from leadrelay.agents.sheet_relay import RelayResult

log = logging.getLogger("leadrelay.intake")

ACK = {"ok": True}


@dataclass(frozen=True)
class IntakeReceipt:
    record: SubmissionRecord
    ack: dict
    captured: bool
    relay: Optional[RelayResult] = None


class IntakeCoordinator:

    def __init__(self, context):
        self.ctx = context

    def handle(self, payload, headers=None, remote_addr=None) -> IntakeReceipt:
        """Capture + relay. Raises InvalidSubmission only for a non-object body."""
        record = SubmissionRecord.from_payload(payload, headers=headers, remote_addr=remote_addr)
        extra = {"submission_id": record.submission_id, "source": record.source.value}
        journal = self.ctx.journal

        captured = journal.append(Channel.GENERAL, {
            "id": record.submission_id,
            "ip": record.client_ip,
            "source": record.source.value,
            "payload": record.payload_dict(),
        })
        if record.source is Source.WHATSAPP:
            captured = journal.append(Channel.WHATSAPP, {
                "id": record.submission_id,
                "ip": record.client_ip,
                "payload": record.payload_dict(),
            }) and captured
        if not captured:
            log.error("Lead NOT captured locally, relaying anyway", extra=extra)
        log.info("Lead received from %s", record.client_ip or "unknown", extra=extra)

        relay = self.ctx.sheet.relay(record)
        return IntakeReceipt(record=record, ack=dict(ACK), captured=captured, relay=relay)

    def follow_up(self, receipt: IntakeReceipt) -> bool:
        """Schedule partner replication for form leads. Returns True if queued."""
        record = receipt.record
        if not record.replicable:
            return False
        dispatcher = self.ctx.dispatcher
        if dispatcher is None:
            return False
        return dispatcher.submit(record)

    def process(self, payload, headers=None, remote_addr=None) -> dict:
        """handle() then follow_up(), for callers without a response cycle."""
        receipt = self.handle(payload, headers=headers, remote_addr=remote_addr)
        ack = receipt.ack
        self.follow_up(receipt)
        return ack
