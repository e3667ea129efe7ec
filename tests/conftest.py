"""
tests/conftest.py

Shared fixtures: a fully wired runtime on a manual clock, one payment
token, a funded client, and an admin key that co-signs deposits.
"""

import pytest

from escrowkit.core.clock import ManualClock
from escrowkit.core.config import EscrowConfig
from escrowkit.core.crypto import Ed25519KeyManager
from escrowkit.core.models import EscrowType
from escrowkit.registry.roles import Role
from escrowkit.runtime.context import EscrowRuntime

from helpers.builders import CLIENT, GUARDIAN, START_BALANCE, TOKEN, TREASURY


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def admin_key():
    """EOA admin: its identity is its public key hex."""
    return Ed25519KeyManager.generate()


@pytest.fixture
def config():
    return EscrowConfig(treasury=TREASURY)


@pytest.fixture
def runtime(config, clock, admin_key):
    rt = EscrowRuntime.from_config(config, clock=clock)
    rt.roles.grant_role(rt.owner, admin_key.public_key_hex, Role.ADMIN)
    rt.roles.grant_role(rt.owner, GUARDIAN, Role.GUARDIAN)
    return rt


@pytest.fixture
def token(runtime):
    tok = runtime.add_token(TOKEN)
    tok.mint(CLIENT, START_BALANCE)
    return tok


def _deploy(runtime, token, escrow_type):
    escrow = runtime.deploy(escrow_type)
    token.approve(CLIENT, escrow.identity, START_BALANCE)
    return escrow


@pytest.fixture
def fixed(runtime, token):
    return _deploy(runtime, token, EscrowType.FIXED_PRICE)


@pytest.fixture
def milestone(runtime, token):
    return _deploy(runtime, token, EscrowType.MILESTONE)


@pytest.fixture
def hourly(runtime, token):
    return _deploy(runtime, token, EscrowType.HOURLY)
