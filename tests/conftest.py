"""Shared test fixtures for Wryft Chat."""

import pytest

from wryft_chat.adapters.transport.memory import LoopbackHub
from wryft_chat.config.schema import ApiConfig, ClientConfig, UserConfig
from wryft_chat.models.channel import DirectMessage, ServerChannel
from wryft_chat.models.mention import MemberCandidate


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock starting at an arbitrary instant."""
    return FakeClock()


@pytest.fixture
def general() -> ServerChannel:
    """Return the ``srv1/general`` channel key (topic ``srv1-general``)."""
    return ServerChannel(guild_id="srv1", channel_name="general")


@pytest.fixture
def random_channel() -> ServerChannel:
    """Return a second channel in the same guild."""
    return ServerChannel(guild_id="srv1", channel_name="random")


@pytest.fixture
def dm() -> DirectMessage:
    """Return a direct-message channel key."""
    return DirectMessage(dm_id="d42")


@pytest.fixture
def client_config() -> ClientConfig:
    """Create a test client configuration for alice#0001."""
    return ClientConfig(
        api=ApiConfig(base_url="http://chat.test/api", token="test-token"),
        user=UserConfig(id="u1", username="alice", discriminator="0001"),
    )


@pytest.fixture
def hub() -> LoopbackHub:
    """Return an in-process transport hub."""
    return LoopbackHub()


@pytest.fixture
def members() -> list[MemberCandidate]:
    """Return a roster in server order."""
    return [
        MemberCandidate(id="u1", username="alice", discriminator="0001"),
        MemberCandidate(id="u2", username="bob", discriminator="0002"),
        MemberCandidate(id="u3", username="Albert", discriminator="0003"),
        MemberCandidate(id="u4", username="carol", discriminator="0004"),
        MemberCandidate(id="u5", username="malak", discriminator="0005"),
        MemberCandidate(id="u6", username="sally", discriminator="0006"),
        MemberCandidate(id="u7", username="alfred", discriminator="0007"),
        MemberCandidate(id="u8", username="hal", discriminator="0008"),
    ]
