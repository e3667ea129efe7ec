"""
tests/test_events.py

Signed, hash-chained event ledger and the `escrowkit verify` command.
"""

import json

import pytest
from click.testing import CliRunner

from escrowkit.cli import cli
from escrowkit.core.clock import ManualClock
from escrowkit.core.config import EscrowConfig
from escrowkit.core.crypto import Ed25519KeyManager
from escrowkit.core.events import (
    GENESIS_HASH,
    EventLedger,
    EventRecord,
    load_records,
    verify_ledger,
    verify_records,
)
from escrowkit.core.exceptions import LedgerError
from escrowkit.core.models import EscrowType, Status
from escrowkit.registry.roles import Role
from escrowkit.runtime.context import EscrowRuntime

from helpers.builders import CLIENT, CONTRACTOR, DATA, SALT, TOKEN, TREASURY, deposit_fixed


@pytest.fixture
def key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def ledger_file(tmp_path, key):
    path = tmp_path / "events.jsonl"
    ledger = EventLedger(key, path)
    for i in range(5):
        ledger.record("Deposited", "escrow:fixed_price:1", {"contract_id": i, "amount": 100 * i})
    return path


def rewrite(path, records):
    with open(path, "w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec.to_dict()) + "\n")


class TestRecords:

    def test_first_record_chains_to_genesis(self, key):
        ledger = EventLedger(key)
        rec = ledger.record("FeesSet", "fee-manager", {"tier": "default"})
        assert rec.sequence == 0
        assert rec.causal_hash == GENESIS_HASH
        assert rec.verify_signature()

    def test_records_chain(self, key):
        ledger = EventLedger(key)
        a = ledger.record("A", "x", {})
        b = ledger.record("B", "x", {})
        assert b.causal_hash == EventRecord.chain_hash(a)
        assert b.verify_chain(a)

    def test_payload_tamper_breaks_signature(self, key):
        rec = EventLedger(key).record("A", "x", {"amount": 1})
        rec.payload = {"amount": 2}
        assert not rec.verify_signature()

    def test_enum_payloads_are_plain(self, key):
        rec = EventLedger(key).record("A", "x", {"status": Status.ACTIVE, "ids": (1, 2)})
        assert rec.payload == {"status": "active", "ids": [1, 2]}


class TestPersistence:

    def test_file_verifies(self, ledger_file):
        report = verify_ledger(ledger_file)
        assert report.valid
        assert report.total_records == 5
        assert report.event_counts == {"Deposited": 5}

    def test_resume_continues_chain(self, ledger_file, key):
        ledger = EventLedger(key, ledger_file)
        rec = ledger.record("Claimed", "escrow:fixed_price:1", {})
        assert rec.sequence == 5
        assert verify_ledger(ledger_file).valid

    def test_detects_payload_tamper(self, ledger_file):
        records = load_records(ledger_file)
        records[2].payload["amount"] = 999_999
        rewrite(ledger_file, records)
        report = verify_ledger(ledger_file)
        kinds = {v.violation_type for v in report.violations}
        assert "invalid_signature" in kinds
        assert "chain_break" in kinds

    def test_detects_deleted_record(self, ledger_file):
        records = load_records(ledger_file)
        del records[1]
        report = verify_records(records)
        kinds = {v.violation_type for v in report.violations}
        assert kinds == {"sequence_gap", "chain_break"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(LedgerError):
            load_records(tmp_path / "nope.jsonl")

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "bad.jsonl"
        path.write_text("{not json\n", encoding="utf-8")
        with pytest.raises(LedgerError):
            load_records(path)


class TestRuntimeLedger:

    def test_runtime_persists_operations(self, tmp_path, admin_key):
        path = tmp_path / "platform.jsonl"
        clock = ManualClock()
        rt = EscrowRuntime.from_config(
            EscrowConfig(treasury=TREASURY, ledger_path=str(path)), clock=clock
        )
        rt.roles.grant_role(rt.owner, admin_key.public_key_hex, Role.ADMIN)
        token = rt.add_token(TOKEN)
        token.mint(CLIENT, 10_000)
        escrow = rt.deploy(EscrowType.FIXED_PRICE)
        token.approve(CLIENT, escrow.identity, 10_000)

        cid = deposit_fixed(escrow, admin_key, clock)
        escrow.submit(CONTRACTOR, cid, DATA, SALT)
        escrow.approve(CLIENT, cid, 1000, CONTRACTOR)
        escrow.claim(CONTRACTOR, cid)

        records = load_records(path)
        assert [r.event for r in records] == ["Deposited", "Submitted", "Approved", "Claimed"]
        assert all(r.emitter == escrow.identity for r in records)
        assert verify_records(records).valid

    def test_sink_failure_keeps_committed_state(self, fixed, admin_key, clock, runtime):
        def broken_sink(event):
            raise LedgerError("disk full")

        runtime.journal.sink = broken_sink
        with pytest.raises(LedgerError):
            deposit_fixed(fixed, admin_key, clock)
        assert fixed.contract_status(1) is Status.ACTIVE


class TestVerifyCommand:

    def test_valid_ledger_exit_zero(self, ledger_file):
        result = CliRunner().invoke(cli, ["verify", str(ledger_file)])
        assert result.exit_code == 0
        assert "VALID" in result.output

    def test_json_output(self, ledger_file):
        result = CliRunner().invoke(cli, ["verify", str(ledger_file), "--format", "json"])
        assert result.exit_code == 0
        out = json.loads(result.output)["escrowkit_verify"]
        assert out["valid"] is True
        assert out["total_records"] == 5
        assert len(out["head_hash"]) == 64

    def test_tampered_ledger_exit_one(self, ledger_file):
        records = load_records(ledger_file)
        records[0].event = "Withdrawn"
        rewrite(ledger_file, records)
        result = CliRunner().invoke(cli, ["verify", str(ledger_file)])
        assert result.exit_code == 1
        assert "INVALID" in result.output

    def test_quiet(self, ledger_file):
        result = CliRunner().invoke(cli, ["verify", str(ledger_file), "--quiet"])
        assert result.exit_code == 0
        assert result.output == ""

    def test_missing_file_exit_two(self, tmp_path):
        result = CliRunner().invoke(cli, ["verify", str(tmp_path / "missing.jsonl")])
        assert result.exit_code == 2


class TestQuoteCommand:

    def test_quote_client_covers_all(self):
        result = CliRunner().invoke(
            cli, ["quote", "1000", "--fee-config", "client_covers_all", "--json"]
        )
        assert result.exit_code == 0
        out = json.loads(result.output)
        assert out["deposit_total"] == 1080
        assert out["claimable"] == 1000
        assert out["platform_total"] == 80

    def test_quote_rejects_contractor_covers_claim(self):
        result = CliRunner().invoke(
            cli, ["quote", "1000", "--fee-config", "contractor_covers_claim"]
        )
        assert result.exit_code == 1

    def test_quote_rate_ceiling(self):
        result = CliRunner().invoke(cli, ["quote", "1000", "--coverage", "6000"])
        assert result.exit_code == 2
