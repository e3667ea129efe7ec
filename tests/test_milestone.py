"""
tests/test_milestone.py

Milestone escrow: batched deposits, per-milestone lifecycle, bulk claims.
"""

import pytest

from escrowkit.core.config import EscrowConfig
from escrowkit.core.exceptions import (
    BatchTooLarge,
    CommitmentMismatch,
    ContractNotFound,
    EmptyBatch,
    InvalidRange,
    InvalidStatus,
    NothingToClaim,
    UnauthorizedAccount,
    ZeroAmount,
)
from escrowkit.core.models import EscrowType, FeeConfig, MilestoneDepositRequest, Status, Winner
from escrowkit.registry.roles import Role
from escrowkit.runtime.context import EscrowRuntime

from helpers.builders import (
    CLIENT,
    CONTRACTOR,
    SALT,
    STRANGER,
    TOKEN,
    TREASURY,
    authorize,
    deposit_milestones,
    milestone_data,
    milestone_request,
)


@pytest.fixture
def cid(milestone, admin_key, clock):
    return deposit_milestones(milestone, admin_key, clock, amounts=(500, 700, 300))


def approve_all(milestone, cid):
    for mid in range(milestone.milestone_count(cid)):
        amount = milestone.get_milestone(cid, mid).amount
        milestone.submit(CONTRACTOR, cid, mid, milestone_data(mid), SALT)
        milestone.approve(CLIENT, cid, mid, amount, CONTRACTOR)


class TestDeposit:

    def test_batch_creates_milestones(self, milestone, cid, token):
        assert milestone.milestone_count(cid) == 3
        assert [m.amount for m in milestone.get_contract(cid).milestones] == [500, 700, 300]
        assert all(m.status is Status.ACTIVE for m in milestone.get_contract(cid).milestones)
        assert token.balance_of(milestone.identity) == 1500 + 120

    def test_append_to_existing_contract(self, milestone, cid, admin_key, clock):
        deposit_milestones(
            milestone, admin_key, clock, amounts=(100,), contract_id=cid, first_index=3
        )
        assert milestone.milestone_count(cid) == 4
        assert milestone.get_milestone(cid, 3).amount == 100

    def test_append_only_by_client(self, milestone, cid, admin_key, clock, token):
        token.mint(STRANGER, 10_000)
        token.approve(STRANGER, milestone.identity, 10_000)
        request = milestone_request(amounts=(100,), contract_id=cid)
        auth = authorize(admin_key, milestone, request, clock, client=STRANGER)
        with pytest.raises(UnauthorizedAccount):
            milestone.deposit(STRANGER, request, auth)

    def test_empty_batch(self, milestone, admin_key, clock):
        request = MilestoneDepositRequest(contract_id=0, payment_token=TOKEN, milestones=())
        with pytest.raises(EmptyBatch):
            milestone.deposit(CLIENT, request, authorize(admin_key, milestone, request, clock))

    def test_batch_limit(self, milestone, admin_key, clock):
        with pytest.raises(BatchTooLarge):
            deposit_milestones(milestone, admin_key, clock, amounts=(1,) * 11)
        assert deposit_milestones(milestone, admin_key, clock, amounts=(1,) * 10) == 1

    def test_per_milestone_fee_config(self, milestone, admin_key, clock, token):
        request = milestone_request(amounts=(1000,), fee_config=FeeConfig.NO_FEES)
        milestone.deposit(CLIENT, request, authorize(admin_key, milestone, request, clock))
        assert token.balance_of(milestone.identity) == 1000

    def test_bad_milestone_rolls_back_whole_batch(self, milestone, admin_key, clock, token):
        with pytest.raises(ZeroAmount):
            deposit_milestones(milestone, admin_key, clock, amounts=(500, 0))
        assert milestone.milestone_count(1) == 0
        assert token.balance_of(milestone.identity) == 0


class TestLifecycle:

    def test_milestones_are_independent(self, milestone, cid):
        milestone.submit(CONTRACTOR, cid, 1, milestone_data(1), SALT)
        assert milestone.get_milestone(cid, 0).status is Status.ACTIVE
        assert milestone.get_milestone(cid, 1).status is Status.SUBMITTED

    def test_claim_completes_milestone(self, milestone, cid, token):
        milestone.submit(CONTRACTOR, cid, 0, milestone_data(0), SALT)
        milestone.approve(CLIENT, cid, 0, 500, CONTRACTOR)
        assert milestone.claim(CONTRACTOR, cid, 0) == 500
        assert milestone.get_milestone(cid, 0).status is Status.COMPLETED
        assert token.balance_of(TREASURY) == 40

    def test_refill_milestone(self, milestone, cid):
        milestone.refill(CLIENT, cid, 2, 200)
        assert milestone.get_milestone(cid, 2).amount == 500

    def test_return_and_withdraw(self, milestone, cid, token):
        milestone.request_return(CLIENT, cid, 0)
        milestone.approve_return(CONTRACTOR, cid, 0)
        assert milestone.get_milestone(cid, 0).status is Status.CANCELED
        assert milestone.withdraw(CLIENT, cid, 0) == 500
        assert milestone.get_milestone(cid, 1).status is Status.ACTIVE

    def test_cancel_return(self, milestone, cid):
        milestone.request_return(CLIENT, cid, 0)
        milestone.cancel_return(CLIENT, cid, 0)
        assert milestone.get_milestone(cid, 0).status is Status.ACTIVE

    def test_dispute(self, milestone, cid, admin_key):
        milestone.submit(CONTRACTOR, cid, 1, milestone_data(1), SALT)
        milestone.create_dispute(CLIENT, cid, 1)
        milestone.resolve_dispute(admin_key.public_key_hex, cid, 1, Winner.CONTRACTOR, 0, 700)
        assert milestone.claim(CONTRACTOR, cid, 1) == 700
        assert milestone.get_milestone(cid, 1).status is Status.COMPLETED

    def test_unknown_milestone(self, milestone, cid):
        with pytest.raises(ContractNotFound):
            milestone.get_milestone(cid, 3)
        with pytest.raises(ContractNotFound):
            milestone.submit(CONTRACTOR, cid, 9, milestone_data(9), SALT)

    def test_submit_wrong_milestone_data(self, milestone, cid):
        with pytest.raises(CommitmentMismatch):
            milestone.submit(CONTRACTOR, cid, 0, milestone_data(1), SALT)

    def test_approve_requires_submission(self, milestone, cid):
        with pytest.raises(InvalidStatus):
            milestone.approve(CLIENT, cid, 0, 100, CONTRACTOR)


class TestClaimAll:

    def test_claim_all_single_payout(self, runtime, milestone, cid, token):
        approve_all(milestone, cid)
        paid = milestone.claim_all(CONTRACTOR, cid, 0, 2)
        assert paid == 1500
        assert token.balance_of(CONTRACTOR) == 1500
        assert token.balance_of(TREASURY) == 120
        assert token.balance_of(milestone.identity) == 0

        bulk = runtime.ledger.named("BulkClaimed")
        assert len(bulk) == 1
        assert bulk[0].payload["milestone_ids"] == [0, 1, 2]
        assert runtime.ledger.named("Claimed") == []

    def test_claim_all_skips_unapproved(self, milestone, cid):
        milestone.submit(CONTRACTOR, cid, 1, milestone_data(1), SALT)
        milestone.approve(CLIENT, cid, 1, 700, CONTRACTOR)
        assert milestone.claim_all(CONTRACTOR, cid, 0, 2) == 700
        assert milestone.get_milestone(cid, 0).status is Status.ACTIVE

    def test_claim_all_nothing(self, milestone, cid):
        with pytest.raises(NothingToClaim):
            milestone.claim_all(CONTRACTOR, cid, 0, 2)

    def test_claim_all_only_own_milestones(self, milestone, cid):
        approve_all(milestone, cid)
        with pytest.raises(NothingToClaim):
            milestone.claim_all(STRANGER, cid, 0, 2)

    def test_range_bounds(self, milestone, cid):
        with pytest.raises(InvalidRange):
            milestone.claim_all(CONTRACTOR, cid, 0, 3)
        with pytest.raises(InvalidRange):
            milestone.claim_all(CONTRACTOR, cid, 2, 1)

    def test_range_width_limit(self, admin_key, clock):
        rt = EscrowRuntime.from_config(
            EscrowConfig(treasury=TREASURY, max_claim_range=2), clock=clock
        )
        rt.roles.grant_role(rt.owner, admin_key.public_key_hex, Role.ADMIN)
        tok = rt.add_token(TOKEN)
        tok.mint(CLIENT, 10_000)
        escrow = rt.deploy(EscrowType.MILESTONE)
        tok.approve(CLIENT, escrow.identity, 10_000)
        cid = deposit_milestones(escrow, admin_key, clock, amounts=(10, 10, 10))
        with pytest.raises(InvalidRange):
            escrow.claim_all(CONTRACTOR, cid, 0, 2)


class TestOwnership:

    def test_contractor_transfer_is_per_milestone(self, runtime, milestone, cid):
        module = runtime.registry.recovery_module
        milestone.transfer_contractor_ownership(module, cid, 1, STRANGER)
        assert milestone.get_milestone(cid, 1).contractor == STRANGER
        assert milestone.get_milestone(cid, 0).contractor == CONTRACTOR

    def test_client_transfer_is_whole_contract(self, runtime, milestone, cid):
        module = runtime.registry.recovery_module
        milestone.transfer_client_ownership(module, cid, STRANGER)
        assert milestone.get_contract(cid).client == STRANGER
        with pytest.raises(UnauthorizedAccount):
            milestone.request_return(CLIENT, cid, 0)

    def test_client_cannot_become_a_milestone_contractor(self, runtime, milestone, cid):
        module = runtime.registry.recovery_module
        milestone.transfer_contractor_ownership(module, cid, 2, STRANGER)
        for contractor in (CONTRACTOR, STRANGER):
            with pytest.raises(UnauthorizedAccount):
                milestone.transfer_client_ownership(module, cid, contractor)
        assert milestone.get_contract(cid).client == CLIENT


class TestFeeAccounting:

    def test_each_milestone_holds_its_own_fee(self, milestone, cid):
        assert [m.fee_held for m in milestone.get_contract(cid).milestones] == [40, 56, 24]

    def test_refill_then_claim_all_stays_solvent(self, milestone, admin_key, clock, token):
        cid = deposit_milestones(milestone, admin_key, clock, amounts=(1006, 1000))
        milestone.refill(CLIENT, cid, 0, 7)
        assert token.balance_of(milestone.identity) == 1093 + 1080

        milestone.submit(CONTRACTOR, cid, 0, milestone_data(0), SALT)
        milestone.approve(CLIENT, cid, 0, 1013, CONTRACTOR)
        assert milestone.claim(CONTRACTOR, cid, 0) == 1013
        assert token.balance_of(milestone.identity) == 1080

        milestone.submit(CONTRACTOR, cid, 1, milestone_data(1), SALT)
        milestone.approve(CLIENT, cid, 1, 1000, CONTRACTOR)
        assert milestone.claim_all(CONTRACTOR, cid, 0, 1) == 1000
        assert token.balance_of(milestone.identity) == 0
        assert token.balance_of(TREASURY) == 160
