"""Run a homeserver's blueprint instructions against its client API."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .blueprints import Homeserver, Room, User
from .errors import InstructionError

logger = logging.getLogger(__name__)


class InstructionRunner:
    """Registers users and creates rooms for one blueprint's homeservers.

    Access tokens obtained while running are kept per homeserver name so the
    builder can persist them on the committed image.
    """

    def __init__(
        self,
        blueprint_name: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.blueprint_name = blueprint_name
        self._client = client or httpx.Client(timeout=timeout)
        self._tokens: dict[str, dict[str, str]] = {}
        self._lock = Lock()

    def close(self) -> None:
        self._client.close()

    def access_tokens(self, hs_name: str) -> dict[str, str]:
        """User id to access token for every user registered on ``hs_name``."""
        with self._lock:
            return dict(self._tokens.get(hs_name, {}))

    def run(self, hs: Homeserver, base_url: str) -> None:
        """Execute ``hs``'s instructions. Raises InstructionError."""
        context = f"{self.blueprint_name}.{hs.name}"
        tokens: dict[str, str] = {}
        localpart_tokens: dict[str, str] = {}

        for user in hs.users:
            user_id, token = self._register(base_url, user, context)
            tokens[user_id] = token
            localpart_tokens[user.localpart] = token
            if user.display_name:
                self._set_display_name(base_url, user_id, token, user.display_name, context)

        with self._lock:
            self._tokens[hs.name] = tokens

        for room in hs.rooms:
            token = localpart_tokens.get(room.creator)
            if token is None:
                raise InstructionError(f"{context} : room creator {room.creator!r} is not a user on {hs.name}")
            self._create_room(base_url, room, token, context)

    def _request(
        self,
        method: str,
        url: str,
        context: str,
        json: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        logger.debug(f"{context} : {method} {url}")
        try:
            res = self._client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise InstructionError(f"{context} : {method} {url} => error: {e}") from e
        if res.status_code != 200:
            raise InstructionError(f"{context} : {method} {url} => HTTP {res.status_code}: {res.text}")
        try:
            body = res.json()
        except ValueError as e:
            raise InstructionError(f"{context} : {method} {url} => invalid JSON response") from e
        if not isinstance(body, dict):
            raise InstructionError(f"{context} : {method} {url} => expected a JSON object, got {type(body).__name__}")
        return body

    def _register(self, base_url: str, user: User, context: str) -> tuple[str, str]:
        body = self._request(
            "POST",
            f"{base_url}/_matrix/client/v3/register",
            context,
            json={
                "username": user.localpart,
                "password": user.effective_password,
                "auth": {"type": "m.login.dummy"},
            },
        )
        user_id = body.get("user_id")
        token = body.get("access_token")
        if not user_id or not token:
            raise InstructionError(f"{context} : register {user.localpart} returned no user_id/access_token")
        logger.debug(f"{context} : registered {user_id}")
        return user_id, token

    def _set_display_name(self, base_url: str, user_id: str, token: str, display_name: str, context: str) -> None:
        self._request(
            "PUT",
            f"{base_url}/_matrix/client/v3/profile/{quote(user_id)}/displayname",
            context,
            json={"displayname": display_name},
            token=token,
        )

    def _create_room(self, base_url: str, room: Room, token: str, context: str) -> str:
        body = self._request(
            "POST",
            f"{base_url}/_matrix/client/v3/createRoom",
            context,
            json=dict(room.create_room),
            token=token,
        )
        room_id = body.get("room_id", "")
        logger.debug(f"{context} : {room.creator} created room {room_id}")
        return room_id
