"""
escrowkit verify: event ledger verification.

Usage:
    escrowkit verify <ledger>                  Human output (default)
    escrowkit verify <ledger> --format json    Machine-readable JSON
    escrowkit verify <ledger> --quiet          Exit code only

Exit codes:
    0  Ledger fully valid (sequence + chain + signatures)
    1  Ledger has violations
    2  Error (file missing, malformed JSON, missing field)
"""

import json
import sys
from pathlib import Path

import click

from escrowkit.core.events import EventRecord, LedgerReport, load_records, verify_records
from escrowkit.core.exceptions import LedgerError


@click.command(name="verify")
@click.argument("ledger", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format: text (default) or json (CI/automation).",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(ledger: str, fmt: str, quiet: bool) -> None:
    """
    Verify an escrow event ledger: sequence, hash chain, signatures.

    LEDGER is the path to a .jsonl event ledger.
    """
    try:
        records = load_records(Path(ledger))
    except LedgerError as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)

    report = verify_records(records)

    if quiet:
        sys.exit(0 if report.valid else 1)

    if fmt == "json":
        out = report.to_dict()
        out["ledger"] = ledger
        out["head_hash"] = EventRecord.chain_hash(records[-1]) if records else None
        click.echo(json.dumps({"escrowkit_verify": out}, indent=2))
    else:
        _output_text(report, ledger)

    sys.exit(0 if report.valid else 1)


def _output_text(report: LedgerReport, ledger: str) -> None:
    bar = "─" * 60
    click.echo()
    click.echo(f"  Ledger       {ledger}")
    click.echo(f"  Records      {report.total_records:,}")
    click.echo(
        f"  Signatures   {report.valid_signatures:,} valid, "
        f"{report.invalid_signatures:,} invalid"
    )
    if report.event_counts:
        counts = "  ".join(f"{k}: {v}" for k, v in sorted(report.event_counts.items()))
        click.echo(f"  Events       {counts}")
    click.echo()

    if report.violations:
        click.echo(f"  {bar}")
        for v in report.violations:
            click.echo(f"  {v.at_sequence:>6}  {v.violation_type:<18}  {v.detail}")
        click.echo(f"  {bar}")
        click.echo()

    if report.valid:
        click.echo("  VALID    0 violations")
    else:
        click.echo(f"  INVALID  {len(report.violations)} violation(s)")
    click.echo()


def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"escrowkit_verify": {"error": msg, "valid": False}}))
    else:
        click.echo(f"\n  ERROR: {msg}\n", err=True)
