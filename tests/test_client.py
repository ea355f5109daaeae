from __future__ import annotations

import pytest

from pymailroom import MailroomClient, MailroomConfig
from pymailroom.adapter import RemoteStoreAdapter
from pymailroom.exceptions import MailroomConfigError, MailroomError


class _UnusedSession:
    closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_client_requires_base_url() -> None:
    with pytest.raises(MailroomConfigError):
        async with MailroomClient(MailroomConfig(feed_enabled=False)):
            pass


@pytest.mark.asyncio
async def test_client_wires_adapter_and_keeps_external_session_open() -> None:
    session = _UnusedSession()
    config = MailroomConfig(base_url="https://store.example.test", feed_enabled=False, tick_interval=0)

    client = MailroomClient(config, session=session)  # type: ignore[arg-type]
    with pytest.raises(MailroomError):
        _ = client.adapter

    async with client:
        assert isinstance(client.adapter, RemoteStoreAdapter)
        board = client.board()
        assert not board.loaded
        assert not board.ticking

    assert session.closed is False
    with pytest.raises(MailroomError):
        _ = client.adapter
