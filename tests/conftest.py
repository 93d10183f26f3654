from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from cogs.ledger import LedgerStore


@pytest.fixture
def ledger_path(tmp_path):
    return str(tmp_path / "data.json")


@pytest.fixture
def store(ledger_path):
    return LedgerStore(ledger_path)


def make_interaction(*, guild_id=1, user_id=10, name="Alice", admin=False):
    """Just enough of discord.Interaction for the Deposit handlers."""
    user = SimpleNamespace(id=user_id, name=name.lower(), display_name=name, bot=False)
    response = SimpleNamespace(send_message=AsyncMock(), is_done=lambda: False)
    return SimpleNamespace(
        guild_id=guild_id,
        user=user,
        permissions=SimpleNamespace(administrator=admin),
        response=response,
        followup=SimpleNamespace(send=AsyncMock()),
        command=None,
    )


@pytest.fixture
def interaction():
    return make_interaction
