"""Fixtures compartilhadas para todos os testes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.fakes import FakeChannel, FakeRecognitionClient, FakeTranscoder
from voxrelay.config.settings import SessionSettings
from voxrelay.session.registry import SessionRegistry
from voxrelay.session.relay import RelaySession

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


@pytest.fixture
def recognition_client() -> FakeRecognitionClient:
    return FakeRecognitionClient()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings()


@pytest.fixture
async def make_session(
    channel: FakeChannel,
    recognition_client: FakeRecognitionClient,
    transcoder: FakeTranscoder,
    registry: SessionRegistry,
    session_settings: SessionSettings,
) -> AsyncIterator[Callable[..., RelaySession]]:
    """Factory de RelaySession registrada. Sessoes ainda abertas sao encerradas no teardown."""

    def _make(connection_id: str = "conn_test", settings: SessionSettings | None = None) -> RelaySession:
        session = RelaySession(
            connection_id=connection_id,
            channel=channel,
            recognition_client=recognition_client,
            transcoder=transcoder,
            registry=registry,
            settings=settings or session_settings,
        )
        registry.register(connection_id, session)
        return session

    yield _make
    await registry.stop_all("test_teardown")
