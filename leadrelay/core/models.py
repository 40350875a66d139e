"""
models.py — Submission and outcome records

A SubmissionRecord is built once per inbound lead and never changes.
Every downstream stage reads it and writes its own OutcomeRecord.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class InvalidSubmission(ValueError):
    """Inbound body is not a JSON object / form mapping."""


class Source(str, Enum):
    FORM = "form"
    WHATSAPP = "whatsapp"

    @classmethod
    def resolve(cls, raw) -> "Source":
        """Case-insensitive match; anything unrecognized is a form lead."""
        value = str(raw or "").strip().lower()
        if value == cls.WHATSAPP.value:
            return cls.WHATSAPP
        return cls.FORM


# Transport hints for the client address, most trusted first
CLIENT_IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For")


def client_ip_from(headers: Optional[Mapping[str, str]], remote_addr: Optional[str]) -> str:
    """Best-effort originating address. Not authoritative."""
    headers = headers or {}
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name) or headers.get(name.lower())
        if value:
            # X-Forwarded-For: client, proxy1, proxy2
            return value.split(",")[0].strip()
    return remote_addr or ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _opt_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class SubmissionRecord:
    source: Source
    payload: Mapping
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    npart: Optional[str] = None
    participants: Optional[str] = None
    tour_details: Optional[str] = None
    tours: object = None
    client_ip: str = ""
    submission_id: str = field(default_factory=lambda: f"sub_{uuid.uuid4().hex[:12]}")
    received_at: str = field(default_factory=_now_iso)

    @classmethod
    def from_payload(cls, payload, headers=None, remote_addr=None) -> "SubmissionRecord":
        if not isinstance(payload, Mapping):
            raise InvalidSubmission(
                f"submission body must be an object, got {type(payload).__name__}")
        raw = dict(payload)
        tours = raw.get("tours")
        if isinstance(tours, list):
            tours = tuple(tours)
        return cls(
            source=Source.resolve(raw.get("source")),
            payload=MappingProxyType(raw),
            name=_opt_str(raw.get("name")),
            phone=_opt_str(raw.get("phone")),
            email=_opt_str(raw.get("email")),
            npart=_opt_str(raw.get("npart")),
            participants=_opt_str(raw.get("participants")),
            tour_details=_opt_str(raw.get("tour_details")),
            tours=tours,
            client_ip=client_ip_from(headers, remote_addr),
        )

    @property
    def replicable(self) -> bool:
        """Only web-form leads are re-entered into the partner form."""
        return self.source is Source.FORM

    def payload_dict(self) -> dict:
        """Plain copy of the original body, safe to serialize."""
        return dict(self.payload)


@dataclass(frozen=True)
class OutcomeRecord:
    stage: str
    status: str
    submission_id: str
    payload: Mapping
    detail: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)
    extra: Mapping = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    def to_log_fields(self) -> dict:
        """Journal shape. The writer stamps `ts`; `outcome_at` is when the stage finished."""
        fields = {
            "id": self.submission_id,
            "stage": self.stage,
            "status": self.status,
        }
        if self.detail is not None:
            fields["detail"] = self.detail
        if self.is_error:
            fields["error"] = self.detail
        fields.update(self.extra)
        fields["outcome_at"] = self.timestamp
        fields["payload"] = dict(self.payload)
        return fields

    @classmethod
    def for_record(cls, record: SubmissionRecord, stage: str, status: str,
                   detail: Optional[str] = None, **extra) -> "OutcomeRecord":
        return cls(stage=stage, status=status, submission_id=record.submission_id,
                   payload=record.payload, detail=detail, extra=extra)
