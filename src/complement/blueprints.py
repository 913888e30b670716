"""Blueprint models: named groups of homeservers to build into images."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import BlueprintError


@dataclass(frozen=True)
class User:
    """A user registered on a homeserver while it is being built."""
    localpart: str
    display_name: Optional[str] = None
    password: Optional[str] = None

    @property
    def effective_password(self) -> str:
        return self.password or f"complement_meets_min_password_req_{self.localpart}"

    @classmethod
    def from_dict(cls, data: dict | str) -> "User":
        if isinstance(data, str):
            return cls(localpart=data)
        if "localpart" not in data:
            raise BlueprintError(f"user is missing 'localpart': {data}")
        return cls(
            localpart=data["localpart"],
            display_name=data.get("display_name"),
            password=data.get("password"),
        )


@dataclass(frozen=True)
class Room:
    """A room created by one of the homeserver's users."""
    creator: str
    create_room: dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Room":
        if "creator" not in data:
            raise BlueprintError(f"room is missing 'creator': {data}")
        return cls(creator=data["creator"], create_room=dict(data.get("create_room") or {}))


@dataclass(frozen=True)
class ApplicationService:
    """A third-party integration registered with a homeserver."""
    id: str
    sender_localpart: str
    url: str = ""
    hs_token: str = ""
    as_token: str = ""
    rate_limited: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "ApplicationService":
        missing = [k for k in ("id", "sender_localpart") if k not in data]
        if missing:
            raise BlueprintError(f"application service is missing {', '.join(missing)}: {data}")
        return cls(
            id=str(data["id"]),
            sender_localpart=str(data["sender_localpart"]),
            url=str(data.get("url", "")),
            hs_token=str(data.get("hs_token", "")),
            as_token=str(data.get("as_token", "")),
            rate_limited=bool(data.get("rate_limited", False)),
        )


@dataclass(frozen=True)
class Homeserver:
    """One server instance in a blueprint.

    The name doubles as the container's network alias and as part of the
    committed image tag.
    """
    name: str
    users: tuple[User, ...] = ()
    rooms: tuple[Room, ...] = ()
    application_services: tuple[ApplicationService, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Homeserver":
        if "name" not in data:
            raise BlueprintError(f"homeserver is missing 'name': {data}")
        return cls(
            name=str(data["name"]),
            users=tuple(User.from_dict(u) for u in data.get("users", []) or []),
            rooms=tuple(Room.from_dict(r) for r in data.get("rooms", []) or []),
            application_services=tuple(
                ApplicationService.from_dict(a) for a in data.get("application_services", []) or []
            ),
        )


@dataclass(frozen=True)
class Blueprint:
    """A named, ordered group of homeservers built into one reusable fixture."""
    name: str
    homeservers: tuple[Homeserver, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Blueprint":
        if not data.get("name"):
            raise BlueprintError(f"blueprint is missing 'name': {data}")
        homeservers = tuple(Homeserver.from_dict(h) for h in data.get("homeservers", []) or [])

        seen: set[str] = set()
        for hs in homeservers:
            if hs.name in seen:
                raise BlueprintError(f"blueprint {data['name']}: duplicate homeserver name {hs.name!r}")
            seen.add(hs.name)

        return cls(name=str(data["name"]), homeservers=homeservers)


def load_blueprints(path: str | Path) -> list[Blueprint]:
    """Load blueprints from a YAML file.

    The file holds either a list of blueprints or a mapping with a
    ``blueprints`` key.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Blueprint file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("blueprints", [])
    if not isinstance(data, list):
        raise BlueprintError(f"{path}: expected a list of blueprints")

    blueprints = [Blueprint.from_dict(item) for item in data]

    names = [bp.name for bp in blueprints]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise BlueprintError(f"{path}: duplicate blueprint names: {', '.join(duplicates)}")

    return blueprints
