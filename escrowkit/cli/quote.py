"""
escrowkit quote: fee arithmetic for a single deposit.
"""

import json

import click

from escrowkit.core.config import BPS_CEILING
from escrowkit.core.exceptions import EscrowError
from escrowkit.core.models import FeeConfig, FeeRates
from escrowkit.fees.fee_manager import (
    compute_claimable_amount_and_fee,
    compute_deposit_amount_and_fee,
)


@click.command(name="quote")
@click.argument("amount", type=click.IntRange(min=1))
@click.option(
    "--fee-config",
    type=click.Choice([c.value for c in FeeConfig], case_sensitive=False),
    default=FeeConfig.CLIENT_COVERS_ALL.value,
    show_default=True,
)
@click.option("--coverage", type=click.IntRange(0, BPS_CEILING), default=300, show_default=True,
              help="Coverage fee in basis points.")
@click.option("--claim", type=click.IntRange(0, BPS_CEILING), default=500, show_default=True,
              help="Claim fee in basis points.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit JSON.")
def quote_command(amount: int, fee_config: str, coverage: int, claim: int, as_json: bool) -> None:
    """
    Show the deposit total and the claim payout for AMOUNT.

    \b
    Example:
      escrowkit quote 1000 --fee-config client_covers_all --coverage 300 --claim 500
    """
    cfg = FeeConfig(fee_config.lower())
    rates = FeeRates(coverage, claim)
    try:
        total, deposit_fee = compute_deposit_amount_and_fee(rates, amount, cfg)
    except EscrowError as e:
        raise click.ClickException(str(e)) from e
    payout = compute_claimable_amount_and_fee(rates, amount, cfg)

    result = {
        "amount":          amount,
        "fee_config":      cfg.value,
        "rates":           rates.to_dict(),
        "deposit_total":   total,
        "deposit_fee":     deposit_fee,
        "claimable":       payout.claimable,
        "fee_deducted":    payout.fee_deducted,
        "client_fee":      payout.client_fee,
        "platform_total":  payout.fee_deducted + payout.client_fee,
    }
    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"  Deposit      {amount:,} + fee {deposit_fee:,} = {total:,}")
    click.echo(f"  Claim        contractor receives {payout.claimable:,}")
    click.echo(f"  Platform     {payout.fee_deducted + payout.client_fee:,}")
