"""
Hourly escrow.

The client prepays into a contract-level pool. Each approval moves hours
worth of principal out of the pool into a WeeklyEntry the contractor can
claim on its own schedule. Hourly work is approved directly; there is no
submission step.

Contract-level status:
    ACTIVE → RETURN_REQUESTED → REFUND_APPROVED | CANCELED | DISPUTED
    DISPUTED → RESOLVED → CANCELED
Weekly entries:
    APPROVED → COMPLETED
"""

from typing import Dict, List

from escrowkit.core.exceptions import (
    AmountExceedsPrincipal,
    ContractNotFound,
    InvalidFeeConfig,
    InvalidStatus,
    NothingToClaim,
    NothingToWithdraw,
    PaymentTokenMismatch,
    UnauthorizedAccount,
    UnauthorizedReceiver,
    ZeroAmount,
)
from escrowkit.core.models import (
    WITHDRAWABLE,
    EscrowType,
    HourlyContract,
    HourlyDepositRequest,
    RefillType,
    Status,
    WeeklyEntry,
    Winner,
)
from escrowkit.core.transaction import atomic
from escrowkit.escrow import lifecycle
from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.fees.fee_manager import (
    ClaimBreakdown,
    compute_claimable_amount_and_fee,
    compute_deposit_amount_and_fee,
)


class HourlyEscrow(EscrowBase):

    escrow_type = EscrowType.HOURLY
    _journaled = ("_contracts", "_next_contract_id")

    def __init__(self, identity: str, deps: EscrowDependencies):
        self._contracts: Dict[int, HourlyContract] = {}
        super().__init__(identity, deps)

    # ── Views ─────────────────────────────────────────────────

    def get_contract(self, contract_id: int) -> HourlyContract:
        try:
            return self._contracts[contract_id]
        except KeyError:
            raise ContractNotFound("no such contract", {"contract_id": contract_id}) from None

    def get_week(self, contract_id: int, week_id: int) -> WeeklyEntry:
        weeks = self.get_contract(contract_id).weeks
        if not 0 <= week_id < len(weeks):
            raise ContractNotFound(
                "no such week", {"contract_id": contract_id, "week_id": week_id}
            )
        return weeks[week_id]

    def week_count(self, contract_id: int) -> int:
        contract = self._contracts.get(contract_id)
        return len(contract.weeks) if contract else 0

    # ── Deposit ───────────────────────────────────────────────

    @atomic
    def deposit(self, caller: str, request: HourlyDepositRequest) -> int:
        """
        Open a contract, or top up an ACTIVE one. A non-zero
        amount_to_claim is approved straight into a new week.
        """
        self._require_address(caller, "client")
        self._require_address(request.contractor, "contractor")
        if request.contractor == caller:
            raise UnauthorizedAccount("client and contractor must differ")
        principal = request.prepayment_amount + request.amount_to_claim
        if request.prepayment_amount < 0 or request.amount_to_claim < 0 or principal == 0:
            raise ZeroAmount("deposit must fund the pool or a week", {"amount": principal})
        self._allowed_token(request.payment_token)

        contract = self._contracts.get(request.contract_id) if request.contract_id else None
        if contract is None:
            contract_id = request.contract_id or self._new_contract_id(self._contracts)
            rates = self._resolve_rates(contract_id, caller)
            total, fee = compute_deposit_amount_and_fee(rates, principal, request.fee_config)
            contract = HourlyContract(
                client=            caller,
                contractor=        request.contractor,
                payment_token=     request.payment_token,
                prepayment_amount= request.prepayment_amount,
                fee_config=        request.fee_config,
                fee_rates=         rates,
                fee_held=          fee,
            )
            self._contracts[contract_id] = contract
        else:
            contract_id = request.contract_id
            self._only(caller, contract.client, "client")
            lifecycle.require_status(contract, (Status.ACTIVE,), "deposit")
            if request.payment_token != contract.payment_token:
                raise PaymentTokenMismatch(
                    "contract is funded in another token",
                    {"expected": contract.payment_token, "got": request.payment_token},
                )
            if request.fee_config is not contract.fee_config:
                raise InvalidFeeConfig("fee config is fixed at creation")
            if request.contractor != contract.contractor:
                raise UnauthorizedAccount("contractor does not match the contract")
            total, fee = compute_deposit_amount_and_fee(
                contract.fee_rates, principal, contract.fee_config
            )
            contract.prepayment_amount += request.prepayment_amount
            contract.fee_held += fee

        week_id = None
        if request.amount_to_claim:
            week_id = len(contract.weeks)
            contract.weeks.append(WeeklyEntry(amount_to_claim=request.amount_to_claim))

        self._pull(contract.payment_token, caller, total)
        self._emit(
            "Deposited",
            contract_id=      contract_id,
            client=           caller,
            contractor=       contract.contractor,
            payment_token=    contract.payment_token,
            prepayment_amount=request.prepayment_amount,
            amount_to_claim=  request.amount_to_claim,
            week_id=          week_id,
            fee=              fee,
            total=            total,
        )
        return contract_id

    # ── Work ──────────────────────────────────────────────────

    @atomic
    def approve(
        self, caller: str, contract_id: int, week_id: int, amount: int, receiver: str
    ) -> None:
        """Move amount from the prepayment pool into week_id (== week_count opens a week)."""
        contract = self.get_contract(contract_id)
        self._client_or_admin(caller, contract.client)
        lifecycle.require_status(contract, (Status.ACTIVE,), "approve")
        lifecycle.require_positive(amount)
        if receiver != contract.contractor:
            raise UnauthorizedReceiver("receiver is not the contractor", {"receiver": receiver})
        if not 0 <= week_id <= len(contract.weeks):
            raise ContractNotFound("no such week", {"week_id": week_id})
        if week_id < len(contract.weeks):
            self._require_open_week(contract.weeks[week_id], week_id, "approve")
        available = contract.prepayment_amount - contract.amount_to_withdraw
        if amount > available:
            raise AmountExceedsPrincipal(
                "approval exceeds prepaid balance",
                {"requested": amount, "available": available},
            )

        contract.prepayment_amount -= amount
        if week_id == len(contract.weeks):
            contract.weeks.append(WeeklyEntry(amount_to_claim=0))
        week = contract.weeks[week_id]
        before = week.amount_to_claim
        week.amount_to_claim += amount
        week.status = Status.APPROVED

        self._emit(
            "Approved",
            contract_id=           contract_id,
            week_id=               week_id,
            approver=              caller,
            receiver=              receiver,
            amount=                amount,
            amount_to_claim_before=before,
            amount_to_claim_after= week.amount_to_claim,
            prepayment_after=      contract.prepayment_amount,
        )

    @atomic
    def refill(
        self,
        caller: str,
        contract_id: int,
        week_id: int,
        amount: int,
        refill_type: RefillType,
    ) -> None:
        """Top up the prepayment pool, or pay directly into an existing week."""
        contract = self.get_contract(contract_id)
        self._only(caller, contract.client, "client")
        lifecycle.require_status(contract, (Status.ACTIVE,), "refill")
        lifecycle.require_positive(amount)

        if refill_type is RefillType.PREPAYMENT:
            before = contract.prepayment_amount
            contract.prepayment_amount += amount
            after = contract.prepayment_amount
        else:
            week = self.get_week(contract_id, week_id)
            self._require_open_week(week, week_id, "refill")
            before = week.amount_to_claim
            week.amount_to_claim += amount
            week.status = Status.APPROVED
            after = week.amount_to_claim

        total, fee = self._charge(contract.payment_token, caller, amount, contract)
        self._emit(
            "Refilled",
            contract_id=  contract_id,
            week_id=      week_id if refill_type is RefillType.WEEK_PAYMENT else None,
            refill_type=  refill_type,
            client=       caller,
            amount=       amount,
            fee=          fee,
            amount_before=before,
            amount_after= after,
        )

    # ── Payouts ───────────────────────────────────────────────

    def _claim_week(self, contract: HourlyContract, week: WeeklyEntry) -> ClaimBreakdown:
        breakdown = compute_claimable_amount_and_fee(
            contract.fee_rates, week.amount_to_claim, contract.fee_config
        )
        week.amount_to_claim = 0
        week.status = Status.COMPLETED
        return breakdown._replace(client_fee=lifecycle.release_fee(contract, breakdown.client_fee))

    @staticmethod
    def _sweep_if_settled(contract: HourlyContract) -> int:
        """The held fee goes to the treasury once no principal is left."""
        return lifecycle.sweep_fee(contract) if contract.outstanding() == 0 else 0

    @atomic
    def claim(self, caller: str, contract_id: int, week_id: int) -> int:
        contract = self.get_contract(contract_id)
        self._only(caller, contract.contractor, "contractor")
        week = self.get_week(contract_id, week_id)
        claimed = week.amount_to_claim
        if claimed == 0:
            raise NothingToClaim("nothing approved for this week", {"week_id": week_id})
        breakdown = self._claim_week(contract, week)
        breakdown = breakdown._replace(
            client_fee=breakdown.client_fee + self._sweep_if_settled(contract)
        )
        platform_fee = self._pay_claim(contract.payment_token, caller, breakdown)
        self._emit(
            "Claimed",
            contract_id= contract_id,
            week_id=     week_id,
            contractor=  caller,
            claimed=     claimed,
            paid=        breakdown.claimable,
            fee=         breakdown.fee_deducted,
            client_fee=  breakdown.client_fee,
            platform_fee=platform_fee,
        )
        return breakdown.claimable

    @atomic
    def claim_all(self, caller: str, contract_id: int, start_week_id: int, end_week_id: int) -> int:
        contract = self.get_contract(contract_id)
        self._only(caller, contract.contractor, "contractor")
        lifecycle.check_claim_range(
            start_week_id, end_week_id, len(contract.weeks), self.deps.config.max_claim_range
        )

        claimed_ids: List[int] = []
        claimed = 0
        totals = ClaimBreakdown(0, 0, 0)
        for week_id in range(start_week_id, end_week_id + 1):
            week = contract.weeks[week_id]
            if week.amount_to_claim == 0:
                continue
            claimed += week.amount_to_claim
            breakdown = self._claim_week(contract, week)
            totals = ClaimBreakdown(*(a + b for a, b in zip(totals, breakdown)))
            claimed_ids.append(week_id)

        if not claimed_ids:
            raise NothingToClaim(
                "nothing approved in range", {"start": start_week_id, "end": end_week_id}
            )

        totals = totals._replace(client_fee=totals.client_fee + self._sweep_if_settled(contract))
        platform_fee = self._pay_claim(contract.payment_token, caller, totals)
        self._emit(
            "BulkClaimed",
            contract_id= contract_id,
            contractor=  caller,
            week_ids=    claimed_ids,
            claimed=     claimed,
            paid=        totals.claimable,
            fee=         totals.fee_deducted,
            client_fee=  totals.client_fee,
            platform_fee=platform_fee,
        )
        return totals.claimable

    @atomic
    def withdraw(self, caller: str, contract_id: int) -> int:
        contract = self.get_contract(contract_id)
        self._only(caller, contract.client, "client")
        lifecycle.require_status(contract, WITHDRAWABLE, "withdraw")
        amount = contract.amount_to_withdraw
        if amount == 0:
            raise NothingToWithdraw("nothing approved to withdraw")
        fee = lifecycle.release_fee(
            contract, lifecycle.withdraw_fee(contract.fee_rates, amount, contract.fee_config)
        )

        contract.prepayment_amount -= amount
        contract.amount_to_withdraw = 0
        if contract.prepayment_amount == 0:
            contract.status = Status.CANCELED
        fee += self._sweep_if_settled(contract)

        self._refund(contract.payment_token, caller, amount, fee)
        self._emit(
            "Withdrawn",
            contract_id=contract_id,
            client=     caller,
            amount=     amount,
            fee=        fee,
            status=     contract.status,
        )
        return amount

    # ── Returns and disputes ──────────────────────────────────

    @atomic
    def request_return(self, caller: str, contract_id: int) -> None:
        contract = self.get_contract(contract_id)
        self._only(caller, contract.client, "client")
        lifecycle.request_return(contract)
        self._emit(
            "ReturnRequested",
            contract_id=    contract_id,
            client=         caller,
            previous_status=contract.previous_status,
        )

    @atomic
    def approve_return(self, caller: str, contract_id: int) -> None:
        """Return the whole prepaid pool. With no weeks ever approved, the contract is canceled."""
        contract = self.get_contract(contract_id)
        self._contractor_or_admin(caller, contract.contractor)
        lifecycle.require_status(contract, (Status.RETURN_REQUESTED,), "approve_return")
        contract.amount_to_withdraw = contract.prepayment_amount
        contract.status = Status.REFUND_APPROVED if contract.weeks else Status.CANCELED
        self._emit(
            "ReturnApproved",
            contract_id=       contract_id,
            approver=          caller,
            amount_to_withdraw=contract.amount_to_withdraw,
            status=            contract.status,
        )

    @atomic
    def cancel_return(self, caller: str, contract_id: int) -> None:
        contract = self.get_contract(contract_id)
        self._only(caller, contract.client, "client")
        lifecycle.cancel_return(contract)
        self._emit("ReturnCanceled", contract_id=contract_id, status=contract.status)

    @atomic
    def create_dispute(self, caller: str, contract_id: int) -> None:
        contract = self.get_contract(contract_id)
        self._either_party(caller, contract.client, contract.contractor)
        lifecycle.create_dispute(contract)
        self._emit("DisputeCreated", contract_id=contract_id, sender=caller)

    @atomic
    def resolve_dispute(
        self,
        caller: str,
        contract_id: int,
        winner: Winner,
        client_amount: int,
        contractor_amount: int,
    ) -> None:
        """
        Split the prepaid pool. The contractor's share opens a new approved
        week; the client's share becomes withdrawable.
        """
        self._only_admin(caller)
        contract = self.get_contract(contract_id)
        lifecycle.require_status(contract, (Status.DISPUTED,), "resolve_dispute")
        lifecycle.check_resolution(
            winner, client_amount, contractor_amount, contract.prepayment_amount
        )

        week_id = None
        if contractor_amount:
            contract.prepayment_amount -= contractor_amount
            week_id = len(contract.weeks)
            contract.weeks.append(WeeklyEntry(amount_to_claim=contractor_amount))
        contract.amount_to_withdraw = client_amount
        contract.winner = winner
        contract.status = Status.RESOLVED

        self._emit(
            "DisputeResolved",
            contract_id=      contract_id,
            winner=           winner,
            client_amount=    client_amount,
            contractor_amount=contractor_amount,
            week_id=          week_id,
        )

    # ── Ownership ─────────────────────────────────────────────

    @atomic
    def transfer_client_ownership(self, caller: str, contract_id: int, new_client: str) -> None:
        self._only_recovery(caller)
        self._require_address(new_client, "new client")
        contract = self.get_contract(contract_id)
        if new_client == contract.contractor:
            raise UnauthorizedAccount("client and contractor must differ")
        previous, contract.client = contract.client, new_client
        self._emit(
            "ClientOwnershipTransferred",
            contract_id=contract_id,
            previous=   previous,
            new=        new_client,
        )

    @atomic
    def transfer_contractor_ownership(
        self, caller: str, contract_id: int, new_contractor: str
    ) -> None:
        self._only_recovery(caller)
        self._require_address(new_contractor, "new contractor")
        contract = self.get_contract(contract_id)
        if new_contractor == contract.client:
            raise UnauthorizedAccount("client and contractor must differ")
        previous, contract.contractor = contract.contractor, new_contractor
        self._emit(
            "ContractorOwnershipTransferred",
            contract_id=contract_id,
            previous=   previous,
            new=        new_contractor,
        )
