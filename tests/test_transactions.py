"""
tests/test_transactions.py

All-or-nothing execution: snapshots, rollback, nested scopes, event
buffering.
"""

import pytest

from escrowkit.core.exceptions import InsufficientBalance, UnauthorizedReceiver
from escrowkit.core.transaction import Journal, Journaled, atomic
from escrowkit.tokens.token import Token

from helpers.builders import CLIENT, CONTRACTOR, DATA, SALT, deposit_fixed


class Counter(Journaled):
    _journaled = ("value", "history")

    def __init__(self, journal):
        self.journal = journal
        self.value = 0
        self.history = []
        journal.register(self)

    @atomic
    def bump(self, by, fail=False):
        self.value += by
        self.history.append(by)
        self.journal.emit("Bumped", "counter", {"by": by})
        if fail:
            raise RuntimeError("boom")

    @atomic
    def bump_twice(self, by, fail_second=False):
        self.bump(by)
        self.bump(by, fail=fail_second)


class TestJournal:

    def test_commit_flushes_events(self):
        seen = []
        journal = Journal(sink=seen.append)
        counter = Counter(journal)
        counter.bump(2)
        assert counter.value == 2
        assert [e.name for e in seen] == ["Bumped"]

    def test_failure_restores_state_and_drops_events(self):
        seen = []
        journal = Journal(sink=seen.append)
        counter = Counter(journal)
        counter.bump(1)
        with pytest.raises(RuntimeError):
            counter.bump(5, fail=True)
        assert counter.value == 1
        assert counter.history == [1]
        assert len(seen) == 1

    def test_nested_scope_joins_outer(self):
        seen = []
        journal = Journal(sink=seen.append)
        counter = Counter(journal)
        with pytest.raises(RuntimeError):
            counter.bump_twice(3, fail_second=True)
        assert counter.value == 0
        assert seen == []
        assert not journal.in_transaction

    def test_nested_success_flushes_once_at_outer_commit(self):
        seen = []
        journal = Journal(sink=seen.append)
        counter = Counter(journal)
        counter.bump_twice(1)
        assert counter.value == 2
        assert len(seen) == 2

    def test_emit_outside_transaction(self):
        with pytest.raises(RuntimeError):
            Journal().emit("X", "y", {})

    def test_token_transfer_rolls_back(self):
        journal = Journal()
        token = Token("TST")
        journal.register(token)
        token.mint("a", 10)
        with pytest.raises(InsufficientBalance):
            with journal.atomic():
                token.transfer("a", "b", 7)
                token.transfer("a", "b", 7)
        assert token.balance_of("a") == 10
        assert token.balance_of("b") == 0


class TestEscrowAtomicity:

    def test_failed_claim_moves_nothing(self, runtime, fixed, admin_key, clock, token):
        cid = deposit_fixed(fixed, admin_key, clock)
        fixed.submit(CONTRACTOR, cid, DATA, SALT)
        fixed.approve(CLIENT, cid, 1000, CONTRACTOR)

        # Drain the escrow behind its back so the payout transfer fails.
        token._balances[fixed.identity] = 10
        with pytest.raises(InsufficientBalance):
            fixed.claim(CONTRACTOR, cid)

        unit = fixed.get_deposit(cid)
        assert unit.amount_to_claim == 1000
        assert unit.status.value == "approved"
        assert token.balance_of(CONTRACTOR) == 0

    def test_rejected_call_leaves_status(self, fixed, admin_key, clock):
        cid = deposit_fixed(fixed, admin_key, clock)
        fixed.submit(CONTRACTOR, cid, DATA, SALT)
        with pytest.raises(UnauthorizedReceiver):
            fixed.approve(CLIENT, cid, 10, CLIENT)
        assert fixed.get_deposit(cid).amount_to_claim == 0
