"""
Milestone escrow: an ordered list of independently approved milestones
per contract, all paid in the contract's payment token.
"""

from typing import Dict, List, Optional

from escrowkit.authorization.verifier import DepositAuthorization
from escrowkit.core.exceptions import (
    BatchTooLarge,
    ContractNotFound,
    EmptyBatch,
    NothingToClaim,
    PaymentTokenMismatch,
    UnauthorizedAccount,
    ZeroAddress,
)
from escrowkit.core.models import (
    REFILLABLE,
    EscrowType,
    Milestone,
    MilestoneContract,
    MilestoneDepositRequest,
    Winner,
)
from escrowkit.core.transaction import atomic
from escrowkit.escrow import lifecycle
from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.fees.fee_manager import ClaimBreakdown, compute_deposit_amount_and_fee


class MilestoneEscrow(EscrowBase):

    escrow_type = EscrowType.MILESTONE
    _journaled = ("_contracts", "_next_contract_id")

    def __init__(self, identity: str, deps: EscrowDependencies):
        self._contracts: Dict[int, MilestoneContract] = {}
        super().__init__(identity, deps)

    # ── Views ─────────────────────────────────────────────────

    def get_contract(self, contract_id: int) -> MilestoneContract:
        try:
            return self._contracts[contract_id]
        except KeyError:
            raise ContractNotFound("no such contract", {"contract_id": contract_id}) from None

    def get_milestone(self, contract_id: int, milestone_id: int) -> Milestone:
        milestones = self.get_contract(contract_id).milestones
        if not 0 <= milestone_id < len(milestones):
            raise ContractNotFound(
                "no such milestone", {"contract_id": contract_id, "milestone_id": milestone_id}
            )
        return milestones[milestone_id]

    def milestone_count(self, contract_id: int) -> int:
        contract = self._contracts.get(contract_id)
        return len(contract.milestones) if contract else 0

    # ── Deposit ───────────────────────────────────────────────

    @atomic
    def deposit(
        self,
        caller: str,
        request: MilestoneDepositRequest,
        authorization: Optional[DepositAuthorization],
    ) -> int:
        """
        Create a contract with a batch of milestones, or append a batch to
        an existing one. Returns the contract id.
        """
        self._require_address(caller, "client")
        batch = list(request.milestones)
        if not batch:
            raise EmptyBatch("deposit needs at least one milestone")
        limit = self.deps.config.max_milestones_per_tx
        if len(batch) > limit:
            raise BatchTooLarge(
                "too many milestones in one deposit", {"count": len(batch), "limit": limit}
            )
        self._allowed_token(request.payment_token)
        self.deps.verifier.verify(self.identity, caller, request, authorization)

        contract = self._contracts.get(request.contract_id) if request.contract_id else None
        if contract is None:
            contract_id = request.contract_id or self._new_contract_id(self._contracts)
            contract = MilestoneContract(client=caller, payment_token=request.payment_token)
        else:
            contract_id = request.contract_id
            self._only(caller, contract.client, "client")
            if request.payment_token != contract.payment_token:
                raise PaymentTokenMismatch(
                    "contract is funded in another token",
                    {"expected": contract.payment_token, "got": request.payment_token},
                )

        rates = self._resolve_rates(contract_id, caller)
        first_id = len(contract.milestones)
        new: List[Milestone] = []
        total = fee = 0
        for item in batch:
            lifecycle.require_positive(item.amount)
            if not item.contractor_data:
                raise ZeroAddress("contractor commitment must be set")
            item_total, item_fee = compute_deposit_amount_and_fee(rates, item.amount, item.fee_config)
            total += item_total
            fee += item_fee
            new.append(Milestone(
                contractor=      item.contractor or None,
                amount=          item.amount,
                contractor_data= item.contractor_data,
                fee_config=      item.fee_config,
                fee_rates=       rates,
                fee_held=        item_fee,
            ))

        contract.milestones.extend(new)
        self._contracts[contract_id] = contract
        self._pull(contract.payment_token, caller, total)

        self._emit(
            "Deposited",
            contract_id=   contract_id,
            client=        caller,
            payment_token= contract.payment_token,
            milestone_ids= list(range(first_id, first_id + len(new))),
            amounts=       [m.amount for m in new],
            fee=           fee,
            total=         total,
        )
        return contract_id

    # ── Work ──────────────────────────────────────────────────

    @atomic
    def submit(
        self, caller: str, contract_id: int, milestone_id: int, data: str, salt: str
    ) -> None:
        milestone = self.get_milestone(contract_id, milestone_id)
        lifecycle.submit(milestone, caller, data, salt)
        self._emit(
            "Submitted", contract_id=contract_id, milestone_id=milestone_id, contractor=caller
        )

    @atomic
    def approve(
        self, caller: str, contract_id: int, milestone_id: int, amount: int, receiver: str
    ) -> None:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._client_or_admin(caller, contract.client)
        before = milestone.amount_to_claim
        lifecycle.approve(milestone, amount, receiver)
        self._emit(
            "Approved",
            contract_id=           contract_id,
            milestone_id=          milestone_id,
            approver=              caller,
            receiver=              receiver,
            amount=                amount,
            amount_to_claim_before=before,
            amount_to_claim_after= milestone.amount_to_claim,
        )

    @atomic
    def refill(self, caller: str, contract_id: int, milestone_id: int, amount: int) -> None:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._only(caller, contract.client, "client")
        before = milestone.amount
        lifecycle.refill(milestone, amount, REFILLABLE)
        total, fee = self._charge(contract.payment_token, caller, amount, milestone)
        self._emit(
            "Refilled",
            contract_id=  contract_id,
            milestone_id= milestone_id,
            client=       caller,
            amount=       amount,
            fee=          fee,
            amount_before=before,
            amount_after= milestone.amount,
        )

    # ── Payouts ───────────────────────────────────────────────

    @atomic
    def claim(self, caller: str, contract_id: int, milestone_id: int) -> int:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._only(caller, milestone.contractor, "contractor")
        claimed, breakdown = lifecycle.claim(milestone)
        platform_fee = self._pay_claim(contract.payment_token, caller, breakdown)
        self._emit(
            "Claimed",
            contract_id= contract_id,
            milestone_id=milestone_id,
            contractor=  caller,
            claimed=     claimed,
            paid=        breakdown.claimable,
            fee=         breakdown.fee_deducted,
            client_fee=  breakdown.client_fee,
            platform_fee=platform_fee,
            status=      milestone.status,
        )
        return breakdown.claimable

    @atomic
    def claim_all(
        self, caller: str, contract_id: int, start_milestone_id: int, end_milestone_id: int
    ) -> int:
        """
        Claim every approved milestone the caller holds in the inclusive
        range, with one payout and one fee transfer.
        """
        contract = self.get_contract(contract_id)
        lifecycle.check_claim_range(
            start_milestone_id, end_milestone_id,
            len(contract.milestones), self.deps.config.max_claim_range,
        )

        claimed_ids: List[int] = []
        claimed = 0
        totals = ClaimBreakdown(0, 0, 0)
        for milestone_id in range(start_milestone_id, end_milestone_id + 1):
            milestone = contract.milestones[milestone_id]
            if milestone.contractor != caller or milestone.amount_to_claim == 0:
                continue
            amount, breakdown = lifecycle.claim(milestone)
            claimed += amount
            totals = ClaimBreakdown(*(a + b for a, b in zip(totals, breakdown)))
            claimed_ids.append(milestone_id)

        if not claimed_ids:
            raise NothingToClaim(
                "nothing approved in range",
                {"start": start_milestone_id, "end": end_milestone_id},
            )

        platform_fee = self._pay_claim(contract.payment_token, caller, totals)
        self._emit(
            "BulkClaimed",
            contract_id=  contract_id,
            contractor=   caller,
            milestone_ids=claimed_ids,
            claimed=      claimed,
            paid=         totals.claimable,
            fee=          totals.fee_deducted,
            client_fee=   totals.client_fee,
            platform_fee= platform_fee,
        )
        return totals.claimable

    @atomic
    def withdraw(self, caller: str, contract_id: int, milestone_id: int) -> int:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._only(caller, contract.client, "client")
        amount, fee = lifecycle.withdraw(milestone)
        self._refund(contract.payment_token, caller, amount, fee)
        self._emit(
            "Withdrawn",
            contract_id= contract_id,
            milestone_id=milestone_id,
            client=      caller,
            amount=      amount,
            fee=         fee,
            status=      milestone.status,
        )
        return amount

    # ── Returns and disputes ──────────────────────────────────

    @atomic
    def request_return(self, caller: str, contract_id: int, milestone_id: int) -> None:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._only(caller, contract.client, "client")
        lifecycle.request_return(milestone)
        self._emit(
            "ReturnRequested",
            contract_id=    contract_id,
            milestone_id=   milestone_id,
            client=         caller,
            previous_status=milestone.previous_status,
        )

    @atomic
    def approve_return(self, caller: str, contract_id: int, milestone_id: int) -> None:
        milestone = self.get_milestone(contract_id, milestone_id)
        self._contractor_or_admin(caller, milestone.contractor)
        lifecycle.approve_return(milestone)
        self._emit(
            "ReturnApproved",
            contract_id=       contract_id,
            milestone_id=      milestone_id,
            approver=          caller,
            amount_to_withdraw=milestone.amount_to_withdraw,
            status=            milestone.status,
        )

    @atomic
    def cancel_return(self, caller: str, contract_id: int, milestone_id: int) -> None:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._only(caller, contract.client, "client")
        lifecycle.cancel_return(milestone)
        self._emit(
            "ReturnCanceled",
            contract_id= contract_id,
            milestone_id=milestone_id,
            status=      milestone.status,
        )

    @atomic
    def create_dispute(self, caller: str, contract_id: int, milestone_id: int) -> None:
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        self._either_party(caller, contract.client, milestone.contractor)
        lifecycle.create_dispute(milestone)
        self._emit(
            "DisputeCreated", contract_id=contract_id, milestone_id=milestone_id, sender=caller
        )

    @atomic
    def resolve_dispute(
        self,
        caller: str,
        contract_id: int,
        milestone_id: int,
        winner: Winner,
        client_amount: int,
        contractor_amount: int,
    ) -> None:
        self._only_admin(caller)
        milestone = self.get_milestone(contract_id, milestone_id)
        lifecycle.resolve_dispute(milestone, winner, client_amount, contractor_amount)
        self._emit(
            "DisputeResolved",
            contract_id=      contract_id,
            milestone_id=     milestone_id,
            winner=           winner,
            client_amount=    client_amount,
            contractor_amount=contractor_amount,
        )

    # ── Ownership ─────────────────────────────────────────────

    @atomic
    def transfer_client_ownership(self, caller: str, contract_id: int, new_client: str) -> None:
        self._only_recovery(caller)
        self._require_address(new_client, "new client")
        contract = self.get_contract(contract_id)
        if any(m.contractor == new_client for m in contract.milestones):
            raise UnauthorizedAccount(
                "client and contractor must differ", {"contract_id": contract_id}
            )
        previous, contract.client = contract.client, new_client
        self._emit(
            "ClientOwnershipTransferred",
            contract_id=contract_id,
            previous=   previous,
            new=        new_client,
        )

    @atomic
    def transfer_contractor_ownership(
        self, caller: str, contract_id: int, milestone_id: int, new_contractor: str
    ) -> None:
        self._only_recovery(caller)
        self._require_address(new_contractor, "new contractor")
        contract = self.get_contract(contract_id)
        milestone = self.get_milestone(contract_id, milestone_id)
        if new_contractor == contract.client:
            raise UnauthorizedAccount("client and contractor must differ")
        previous, milestone.contractor = milestone.contractor, new_contractor
        self._emit(
            "ContractorOwnershipTransferred",
            contract_id= contract_id,
            milestone_id=milestone_id,
            previous=    previous,
            new=         new_contractor,
        )

