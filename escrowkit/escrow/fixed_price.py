"""
Fixed-price escrow: one deposit per contract, released on approval.
"""

from typing import Dict, Optional

from escrowkit.authorization.verifier import DepositAuthorization
from escrowkit.core.exceptions import (
    ContractNotFound,
    InvalidFeeConfig,
    PaymentTokenMismatch,
    UnauthorizedAccount,
    ZeroAddress,
)
from escrowkit.core.models import REFILLABLE, Deposit, DepositRequest, EscrowType, Status, Winner
from escrowkit.core.transaction import atomic
from escrowkit.escrow import lifecycle
from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.fees.fee_manager import compute_deposit_amount_and_fee


class FixedPriceEscrow(EscrowBase):

    escrow_type = EscrowType.FIXED_PRICE
    _journaled = ("_deposits", "_next_contract_id")

    def __init__(self, identity: str, deps: EscrowDependencies):
        self._deposits: Dict[int, Deposit] = {}
        super().__init__(identity, deps)

    # ── Views ─────────────────────────────────────────────────

    def get_deposit(self, contract_id: int) -> Deposit:
        try:
            return self._deposits[contract_id]
        except KeyError:
            raise ContractNotFound("no such contract", {"contract_id": contract_id}) from None

    def contract_exists(self, contract_id: int) -> bool:
        return contract_id in self._deposits

    def contract_status(self, contract_id: int) -> Status:
        unit = self._deposits.get(contract_id)
        return unit.status if unit else Status.NONE

    # ── Deposit ───────────────────────────────────────────────

    @atomic
    def deposit(
        self,
        caller: str,
        request: DepositRequest,
        authorization: Optional[DepositAuthorization],
    ) -> int:
        """
        Create a contract (contract_id 0 or unused) or add principal to an
        ACTIVE one. Returns the contract id.
        """
        self._require_address(caller, "client")
        lifecycle.require_positive(request.amount)
        self._allowed_token(request.payment_token)
        self.deps.verifier.verify(self.identity, caller, request, authorization)

        existing = self._deposits.get(request.contract_id) if request.contract_id else None
        if existing is not None:
            return self._augment(caller, request, existing)

        if not request.contractor_data:
            raise ZeroAddress("contractor commitment must be set")
        contract_id = request.contract_id or self._new_contract_id(self._deposits)
        rates = self._resolve_rates(contract_id, caller)
        total, fee = compute_deposit_amount_and_fee(rates, request.amount, request.fee_config)

        self._deposits[contract_id] = Deposit(
            client=          caller,
            contractor=      request.contractor or None,
            payment_token=   request.payment_token,
            amount=          request.amount,
            contractor_data= request.contractor_data,
            fee_config=      request.fee_config,
            fee_rates=       rates,
            fee_held=        fee,
        )
        self._pull(request.payment_token, caller, total)

        self._emit(
            "Deposited",
            contract_id=   contract_id,
            client=        caller,
            contractor=    request.contractor or None,
            payment_token= request.payment_token,
            amount=        request.amount,
            fee=           fee,
            total=         total,
            fee_config=    request.fee_config,
        )
        return contract_id

    def _augment(self, caller: str, request: DepositRequest, unit: Deposit) -> int:
        self._only(caller, unit.client, "client")
        lifecycle.require_status(unit, (Status.ACTIVE,), "deposit")
        if request.payment_token != unit.payment_token:
            raise PaymentTokenMismatch(
                "contract is funded in another token",
                {"expected": unit.payment_token, "got": request.payment_token},
            )
        if request.fee_config is not unit.fee_config:
            raise InvalidFeeConfig("fee config is fixed at creation")

        before = unit.amount
        unit.amount += request.amount
        total, fee = self._charge(unit.payment_token, caller, request.amount, unit)
        self._emit(
            "Deposited",
            contract_id=   request.contract_id,
            client=        caller,
            contractor=    unit.contractor,
            payment_token= unit.payment_token,
            amount=        request.amount,
            fee=           fee,
            total=         total,
            amount_before= before,
            amount_after=  unit.amount,
        )
        return request.contract_id

    # ── Work ──────────────────────────────────────────────────

    @atomic
    def submit(self, caller: str, contract_id: int, data: str, salt: str) -> None:
        unit = self.get_deposit(contract_id)
        lifecycle.submit(unit, caller, data, salt)
        self._emit("Submitted", contract_id=contract_id, contractor=caller)

    @atomic
    def approve(self, caller: str, contract_id: int, amount: int, receiver: str) -> None:
        unit = self.get_deposit(contract_id)
        self._client_or_admin(caller, unit.client)
        before = unit.amount_to_claim
        lifecycle.approve(unit, amount, receiver)
        self._emit(
            "Approved",
            contract_id=           contract_id,
            approver=              caller,
            receiver=              receiver,
            amount=                amount,
            amount_to_claim_before=before,
            amount_to_claim_after= unit.amount_to_claim,
        )

    @atomic
    def refill(self, caller: str, contract_id: int, amount: int) -> None:
        unit = self.get_deposit(contract_id)
        self._only(caller, unit.client, "client")
        before = unit.amount
        lifecycle.refill(unit, amount, REFILLABLE)
        total, fee = self._charge(unit.payment_token, caller, amount, unit)
        self._emit(
            "Refilled",
            contract_id=  contract_id,
            client=       caller,
            amount=       amount,
            fee=          fee,
            amount_before=before,
            amount_after= unit.amount,
        )

    # ── Payouts ───────────────────────────────────────────────

    @atomic
    def claim(self, caller: str, contract_id: int) -> int:
        """Pay out everything approved. Returns what the contractor received."""
        unit = self.get_deposit(contract_id)
        self._only(caller, unit.contractor, "contractor")
        claimed, breakdown = lifecycle.claim(unit)
        platform_fee = self._pay_claim(unit.payment_token, caller, breakdown)
        self._emit(
            "Claimed",
            contract_id= contract_id,
            contractor=  caller,
            claimed=     claimed,
            paid=        breakdown.claimable,
            fee=         breakdown.fee_deducted,
            client_fee=  breakdown.client_fee,
            platform_fee=platform_fee,
            status=      unit.status,
        )
        return breakdown.claimable

    @atomic
    def withdraw(self, caller: str, contract_id: int) -> int:
        unit = self.get_deposit(contract_id)
        self._only(caller, unit.client, "client")
        amount, fee = lifecycle.withdraw(unit)
        self._refund(unit.payment_token, caller, amount, fee)
        self._emit(
            "Withdrawn",
            contract_id=contract_id,
            client=     caller,
            amount=     amount,
            fee=        fee,
            status=     unit.status,
        )
        return amount

    # ── Returns and disputes ──────────────────────────────────

    @atomic
    def request_return(self, caller: str, contract_id: int) -> None:
        unit = self.get_deposit(contract_id)
        self._only(caller, unit.client, "client")
        lifecycle.request_return(unit)
        self._emit(
            "ReturnRequested",
            contract_id=    contract_id,
            client=         caller,
            previous_status=unit.previous_status,
        )

    @atomic
    def approve_return(self, caller: str, contract_id: int) -> None:
        unit = self.get_deposit(contract_id)
        self._contractor_or_admin(caller, unit.contractor)
        lifecycle.approve_return(unit)
        self._emit(
            "ReturnApproved",
            contract_id=       contract_id,
            approver=          caller,
            amount_to_withdraw=unit.amount_to_withdraw,
            status=            unit.status,
        )

    @atomic
    def cancel_return(self, caller: str, contract_id: int) -> None:
        unit = self.get_deposit(contract_id)
        self._only(caller, unit.client, "client")
        lifecycle.cancel_return(unit)
        self._emit("ReturnCanceled", contract_id=contract_id, status=unit.status)

    @atomic
    def create_dispute(self, caller: str, contract_id: int) -> None:
        unit = self.get_deposit(contract_id)
        self._either_party(caller, unit.client, unit.contractor)
        lifecycle.create_dispute(unit)
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
        self._only_admin(caller)
        unit = self.get_deposit(contract_id)
        lifecycle.resolve_dispute(unit, winner, client_amount, contractor_amount)
        self._emit(
            "DisputeResolved",
            contract_id=      contract_id,
            winner=           winner,
            client_amount=    client_amount,
            contractor_amount=contractor_amount,
        )

    # ── Ownership ─────────────────────────────────────────────

    @atomic
    def transfer_client_ownership(self, caller: str, contract_id: int, new_client: str) -> None:
        self._only_recovery(caller)
        self._require_address(new_client, "new client")
        unit = self.get_deposit(contract_id)
        if new_client == unit.contractor:
            raise UnauthorizedAccount("client and contractor must differ")
        previous, unit.client = unit.client, new_client
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
        unit = self.get_deposit(contract_id)
        if new_contractor == unit.client:
            raise UnauthorizedAccount("client and contractor must differ")
        previous, unit.contractor = unit.contractor, new_contractor
        self._emit(
            "ContractorOwnershipTransferred",
            contract_id=contract_id,
            previous=   previous,
            new=        new_contractor,
        )
