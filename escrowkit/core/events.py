"""
escrowkit/core/events.py

Escrow Event Ledger

Every committed operation leaves one or more signed, hash-chained records.

CONTRACT 1: Signing
    bytes_signed = canonicalize(record.to_signing_dict())
    algorithm    = Ed25519, base64url without padding

CONTRACT 2: Chain
    causal_hash  = SHA-256(canonicalize(prev.to_signing_dict()))
    first_record = GENESIS_HASH ("0" * 64)

CONTRACT 3: Ordering
    sequence starts at 0 and increases by exactly one per record
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from escrowkit.core.canonical import canonical_hash, canonicalize, to_plain
from escrowkit.core.clock import utc_timestamp
from escrowkit.core.crypto import Ed25519KeyManager
from escrowkit.core.exceptions import LedgerError
from escrowkit.core.transaction import Event


logger = logging.getLogger("escrowkit.events")

GENESIS_HASH = "0" * 64


# ─────────────────────────────────────────────────────────────
# EventRecord
# ─────────────────────────────────────────────────────────────

@dataclass
class EventRecord:
    record_id:         str
    sequence:          int
    event:             str
    emitter:           str
    timestamp:         str
    causal_hash:       str
    payload:           Dict[str, Any]
    signer_public_key: str
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        event:             str,
        emitter:           str,
        payload:           Dict[str, Any],
        sequence:          int,
        signer_public_key: str,
        prev:              Optional["EventRecord"] = None,
    ) -> "EventRecord":
        """Create an unsigned record chained onto prev."""
        return cls(
            record_id=         f"evt-{uuid.uuid4()}",
            sequence=          sequence,
            event=             event,
            emitter=           emitter,
            timestamp=         utc_timestamp(),
            causal_hash=       cls.chain_hash(prev),
            payload=           to_plain(payload),
            signer_public_key= signer_public_key,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventRecord":
        return cls(
            record_id=         data["record_id"],
            sequence=          data["sequence"],
            event=             data["event"],
            emitter=           data["emitter"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signer_public_key= data["signer_public_key"],
            signature=         data.get("signature"),
        )

    def to_signing_dict(self) -> Dict[str, Any]:
        """Everything except the signature."""
        return {
            "causal_hash":       self.causal_hash,
            "emitter":           self.emitter,
            "event":             self.event,
            "payload":           self.payload,
            "record_id":         self.record_id,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def chain_hash(prev: Optional["EventRecord"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    def sign(self, key_manager: Ed25519KeyManager) -> "EventRecord":
        self.signature = key_manager.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return Ed25519KeyManager.verify_detached(
            canonicalize(self.to_signing_dict()),
            self.signature,
            self.signer_public_key,
        )

    def verify_chain(self, prev: Optional["EventRecord"]) -> bool:
        return self.causal_hash == self.chain_hash(prev)


# ─────────────────────────────────────────────────────────────
# EventLedger
# ─────────────────────────────────────────────────────────────

class EventLedger:
    """
    Append-only signed event log.

    Records are always kept in memory. With a ledger_path, each record is
    also appended to a JSONL file, and an existing file is resumed from
    its last record.
    """

    def __init__(
        self,
        key_manager: Ed25519KeyManager,
        ledger_path: Optional[Path] = None,
    ) -> None:
        self.key_manager = key_manager
        self.records: List[EventRecord] = []
        self._ledger_file = Path(ledger_path) if ledger_path else None
        self._sequence = 0
        self._last: Optional[EventRecord] = None

        if self._ledger_file is not None:
            self._ledger_file.parent.mkdir(parents=True, exist_ok=True)
            self._restore_state()

    def __call__(self, event: Event) -> EventRecord:
        return self.record(event.name, event.emitter, event.payload)

    def record(self, name: str, emitter: str, payload: Dict[str, Any]) -> EventRecord:
        """Sign, chain, persist, then advance. State never advances on a failed write."""
        rec = EventRecord.create(
            event=             name,
            emitter=           emitter,
            payload=           payload,
            sequence=          self._sequence,
            signer_public_key= self.key_manager.public_key_hex,
            prev=              self._last,
        ).sign(self.key_manager)

        if self._ledger_file is not None:
            try:
                with open(self._ledger_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(rec.to_dict()) + "\n")
            except OSError as exc:
                raise LedgerError(
                    f"event ledger write failed: {exc}",
                    {"event": name, "sequence": rec.sequence},
                ) from exc

        self.records.append(rec)
        self._sequence += 1
        self._last = rec
        logger.debug("event %s #%d from %s", name, rec.sequence, emitter)
        return rec

    def named(self, name: str) -> List[EventRecord]:
        return [r for r in self.records if r.event == name]

    @property
    def last(self) -> Optional[EventRecord]:
        return self._last

    def _restore_state(self) -> None:
        if not self._ledger_file.exists():
            return
        records = load_records(self._ledger_file)
        if records:
            self._last = records[-1]
            self._sequence = self._last.sequence + 1


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

@dataclass
class ChainViolation:
    at_sequence:    int
    record_id:      str
    violation_type: str   # "chain_break" | "invalid_signature" | "sequence_gap"
    detail:         str


@dataclass
class LedgerReport:
    total_records:      int = 0
    valid_signatures:   int = 0
    invalid_signatures: int = 0
    violations:         List[ChainViolation] = field(default_factory=list)
    event_counts:       Dict[str, int] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid":              self.valid,
            "total_records":      self.total_records,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "event_counts":       dict(self.event_counts),
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "record_id":      v.record_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
        }


def load_records(path: Path) -> List[EventRecord]:
    """
    Read a JSONL event ledger.
    Raises LedgerError on a missing file, malformed JSON, or missing field.
    """
    path = Path(path)
    if not path.exists():
        raise LedgerError(f"event ledger not found: {path}")

    records: List[EventRecord] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_num, raw in enumerate(f, 1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                records.append(EventRecord.from_dict(json.loads(raw)))
            except json.JSONDecodeError as exc:
                raise LedgerError(f"malformed JSON at line {line_num}: {exc}") from exc
            except KeyError as exc:
                raise LedgerError(f"missing field at line {line_num}: {exc}") from exc
    return records


def verify_records(records: List[EventRecord]) -> LedgerReport:
    """Check sequence, chain linkage and signatures of every record."""
    report = LedgerReport(total_records=len(records))
    prev: Optional[EventRecord] = None

    for index, rec in enumerate(records):
        report.event_counts[rec.event] = report.event_counts.get(rec.event, 0) + 1

        if rec.sequence != index:
            report.violations.append(ChainViolation(
                rec.sequence, rec.record_id, "sequence_gap",
                f"expected sequence {index}, got {rec.sequence}",
            ))
        if not rec.verify_chain(prev):
            report.violations.append(ChainViolation(
                rec.sequence, rec.record_id, "chain_break",
                f"causal_hash ...{rec.causal_hash[-12:]} does not match predecessor",
            ))
        if rec.verify_signature():
            report.valid_signatures += 1
        else:
            report.invalid_signatures += 1
            report.violations.append(ChainViolation(
                rec.sequence, rec.record_id, "invalid_signature",
                "signature does not verify against signer_public_key",
            ))
        prev = rec

    return report


def verify_ledger(path: Path) -> LedgerReport:
    return verify_records(load_records(path))
