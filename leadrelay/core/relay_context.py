"""
relay_context.py — Everything one relay pipeline needs, passed explicitly.

The coordinator and the blueprint receive a RelayContext instead of
reading module globals, so tests can build one over a tmp directory
with fake sinks.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from leadrelay.core.config import RelayConfig
from leadrelay.core.journal import JournalWriter
from leadrelay.agents.sheet_relay import SheetRelay
from leadrelay.agents.partner_form import (
    PartnerFormReplicator, ReplicationDispatcher, chromium_page,
)

log = logging.getLogger("leadrelay.context")


@dataclass
class RelayContext:
    config: RelayConfig
    journal: JournalWriter
    sheet: SheetRelay
    dispatcher: Optional[ReplicationDispatcher]

    def describe(self) -> dict:
        return {
            "log_dir": self.config.log_dir,
            "journals": self.journal.counts(),
            "replication": self.dispatcher.stats() if self.dispatcher else None,
        }


def build_context(config: RelayConfig = None, session_factory=chromium_page,
                  autostart: bool = True) -> RelayContext:
    """Wire journal → sheet relay → partner replicator from one config."""
    config = config or RelayConfig.from_env()
    journal = JournalWriter(config.log_dir)
    sheet = SheetRelay(config.sheet_url, journal, timeout=config.relay_timeout)

    dispatcher = None
    if config.replication_enabled:
        replicator = PartnerFormReplicator(
            partner_url=config.partner_url,
            affiliate_id=config.affiliate_id,
            destination_city=config.destination_city,
            journal=journal,
            navigation_timeout_ms=config.navigation_timeout_ms,
            success_wait_ms=config.success_wait_ms,
            session_factory=session_factory,
        )
        dispatcher = ReplicationDispatcher(
            replicator, journal,
            max_sessions=config.max_browser_sessions,
            max_pending=config.max_pending_replications,
            autostart=autostart,
        )
    else:
        log.warning("Partner form replication disabled (PARTNER_REPLICATION=false)")

    return RelayContext(config=config, journal=journal, sheet=sheet, dispatcher=dispatcher)
