"""REST adapter for message persistence and the member roster.

Implements both the MessagePersistence and RosterProvider protocols over
the backend's bearer-authenticated HTTP API using httpx.

Routes:
- Server channel messages: ``/messages/{topic}[/{message_id}]``
- Direct messages: ``/dms/{user_id}/{dm_id}/messages[/{message_id}]``
- Guild members: ``/guilds/{guild_id}/members``
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from cachetools import TTLCache

from ...models.channel import ChannelKey, DirectMessage, ServerChannel
from ...models.mention import MemberCandidate
from ...models.message import Message, split_identity
from ...utils.async_helpers import (
    PersistenceError,
    TransientNetworkError,
    create_retry,
    error_for_status,
)

if TYPE_CHECKING:
    from types import TracebackType

    from ...config.schema import ApiConfig, RetryConfig, RosterConfig, UserConfig

log = structlog.get_logger()


class RestClient:
    """Bearer-authenticated client for the chat backend.

    Writes (create, edit, delete) are attempted once; a failure is raised
    to the caller so the user can retry. Reads (history, members) are
    retried on transient network errors.

    Example:
        async with RestClient(config.api, config.user) as rest:
            message = await rest.create_message(key, "hi", "alice#0001")
    """

    def __init__(
        self,
        api: ApiConfig,
        user: UserConfig,
        retry: RetryConfig | None = None,
        roster: RosterConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            api: Base URL, token and timeout.
            user: Local user; its id scopes the DM routes.
            retry: Retry policy for idempotent reads. Defaults apply if None.
            roster: Member cache settings. Defaults apply if None.
            client: Preconfigured httpx client (tests inject a mock transport).
        """
        self._api = api
        self._user = user
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=api.base_url,
            headers={"Authorization": f"Bearer {api.token}"},
            timeout=api.timeout,
        )

        max_attempts = retry.max_attempts if retry else 3
        min_wait = retry.min_wait if retry else 1.0
        max_wait = retry.max_wait if retry else 30.0
        read_retry = create_retry(max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait)
        self._fetch_history_with_retry = read_retry(self._fetch_history)
        self._list_members_with_retry = read_retry(self._list_members)

        cache_ttl = roster.cache_ttl if roster else 60
        # guild id -> members
        self._member_cache: TTLCache[str, list[MemberCandidate]] = TTLCache(
            maxsize=64,
            ttl=max(cache_ttl, 1),
        )
        self._cache_enabled = cache_ttl > 0

    async def __aenter__(self) -> RestClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # MessagePersistence
    # -------------------------------------------------------------------------

    async def create_message(
        self,
        channel_key: ChannelKey,
        text: str,
        author_identity: str,
    ) -> Message:
        author, discriminator = split_identity(author_identity)
        body = {"text": text, "author": author, "author_discriminator": discriminator}

        response = await self._request("POST", self._messages_path(channel_key), json=body)
        message = self._parse_message(channel_key, self._json(response))
        log.debug("message_created", channel=str(channel_key), message_id=message.id)
        return message

    async def edit_message(self, channel_key: ChannelKey, message_id: str, text: str) -> None:
        await self._request(
            "PATCH",
            f"{self._messages_path(channel_key)}/{message_id}",
            json={"text": text},
        )

    async def delete_message(self, channel_key: ChannelKey, message_id: str) -> None:
        await self._request("DELETE", f"{self._messages_path(channel_key)}/{message_id}")

    async def fetch_history(self, channel_key: ChannelKey) -> Sequence[Message]:
        return await self._fetch_history_with_retry(channel_key)

    # -------------------------------------------------------------------------
    # RosterProvider
    # -------------------------------------------------------------------------

    async def list_members(self, channel_key: ChannelKey) -> Sequence[MemberCandidate]:
        """Return the guild roster; direct messages have no roster."""
        if isinstance(channel_key, DirectMessage):
            return []

        guild_id = channel_key.guild_id
        if self._cache_enabled and guild_id in self._member_cache:
            log.debug("member_cache_hit", guild_id=guild_id)
            return list(self._member_cache[guild_id])

        members = await self._list_members_with_retry(guild_id)
        if self._cache_enabled:
            self._member_cache[guild_id] = members
        return list(members)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _fetch_history(self, channel_key: ChannelKey) -> list[Message]:
        response = await self._request("GET", self._messages_path(channel_key))
        payload = self._json(response)
        if not isinstance(payload, list):
            raise PersistenceError("History response is not a list", response.status_code)
        return [self._parse_message(channel_key, item) for item in payload]

    async def _list_members(self, guild_id: str) -> list[MemberCandidate]:
        response = await self._request("GET", f"/guilds/{guild_id}/members")
        payload = self._json(response)
        if not isinstance(payload, list):
            raise PersistenceError("Members response is not a list", response.status_code)

        members = [
            MemberCandidate(
                id=str(item.get("id", "")),
                username=str(item.get("username", "")),
                discriminator=str(item.get("discriminator", "")),
            )
            for item in payload
            if isinstance(item, Mapping) and item.get("username")
        ]
        log.debug("members_fetched", guild_id=guild_id, count=len(members))
        return members

    def _messages_path(self, channel_key: ChannelKey) -> str:
        if isinstance(channel_key, ServerChannel):
            return f"/messages/{channel_key.topic}"
        return f"/dms/{self._user.id}/{channel_key.dm_id}/messages"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and map failures onto the client error taxonomy.

        Raises:
            TransientNetworkError: On connection errors, timeouts and 5xx
            AuthenticationError: On 401
            NotFoundError: On 404
            PersistenceError: On any other non-success status
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        log.warning("api_request_failed", method=method, path=path, status=status)
        raise error_for_status(status, f"{method} {path}")

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            log.warning(
                "malformed_response_body",
                path=response.request.url.path,
                content_type=response.headers.get("content-type"),
            )
            raise PersistenceError("Malformed response body", response.status_code) from e

    @staticmethod
    def _parse_message(channel_key: ChannelKey, data: Any) -> Message:
        if not isinstance(data, Mapping) or not data.get("id"):
            raise PersistenceError("Message response is missing an id")

        author = str(data.get("author", ""))
        discriminator = data.get("author_discriminator")
        if discriminator is None:
            author, discriminator = split_identity(author)

        return Message(
            id=str(data["id"]),
            channel_key=channel_key,
            text=str(data.get("text", data.get("content", ""))),
            author=author,
            author_discriminator=str(discriminator),
            timestamp=str(data.get("timestamp", data.get("created_at", ""))),
            edited=bool(data.get("edited", False)),
        )
