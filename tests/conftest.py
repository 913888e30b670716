from __future__ import annotations

import itertools
import sys
from pathlib import Path
from threading import Lock
from typing import Any, Optional

import httpx
import pytest
from docker.errors import NotFound

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_SRC = (_PROJECT_ROOT / "src").resolve()
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from complement.blueprints import Homeserver  # noqa: E402
from complement.config import ComplementConfig  # noqa: E402
from complement.docker import builder as builder_module  # noqa: E402
from complement.docker import deployer as deployer_module  # noqa: E402


def _matches(labels: dict[str, str], filters: Optional[dict[str, Any]]) -> bool:
    if not filters or "label" not in filters:
        return True
    exprs = filters["label"]
    if isinstance(exprs, str):
        exprs = [exprs]
    for expr in exprs:
        key, sep, value = expr.partition("=")
        if key not in labels:
            return False
        if sep and labels[key] != value:
            return False
    return True


class FakeDockerAPI:
    """In-memory stand-in for docker.APIClient.

    Records every mutating call in ``events`` so tests can assert ordering.
    Methods listed in ``fail`` raise the mapped exception instead.
    """

    def __init__(self):
        self.events: list[tuple[str, str]] = []
        self.networks_: dict[str, dict[str, Any]] = {}
        self.containers_: dict[str, dict[str, Any]] = {}
        self.images_: dict[str, dict[str, Any]] = {}
        self.killed: list[str] = []
        self.logs_requested: list[str] = []
        self.image_list_calls = 0
        self.network_warning = ""
        self.network_id: Optional[str] = None
        self.ports: dict[str, Any] = {
            "8008/tcp": [{"HostIp": "0.0.0.0", "HostPort": "32768"}],
            "8448/tcp": [{"HostIp": "0.0.0.0", "HostPort": "32769"}],
        }
        self.fail: dict[str, Exception] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    def _check(self, method: str) -> None:
        if method in self.fail:
            raise self.fail[method]

    def _next_id(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}{next(self._ids)}"

    def _record(self, method: str, arg: str) -> None:
        with self._lock:
            self.events.append((method, arg))

    # networks

    def create_network(self, name, labels=None, **kwargs):
        self._check("create_network")
        net_id = self.network_id if self.network_id is not None else self._next_id("net")
        if net_id:
            self.networks_[net_id] = {"Id": net_id, "Name": name, "Labels": dict(labels or {})}
        self._record("create_network", name)
        return {"Id": net_id, "Warning": self.network_warning}

    def networks(self, names=None, ids=None, filters=None):
        self._check("networks")
        return [dict(n) for n in list(self.networks_.values()) if _matches(n["Labels"], filters)]

    def remove_network(self, net_id):
        self._check("remove_network")
        self._record("remove_network", self.networks_[net_id]["Name"])
        del self.networks_[net_id]

    # containers

    def create_host_config(self, **kwargs):
        return dict(kwargs)

    def create_endpoint_config(self, **kwargs):
        return dict(kwargs)

    def create_networking_config(self, endpoints_config=None):
        return {"EndpointsConfig": endpoints_config or {}}

    def create_container(self, image, environment=None, labels=None, volumes=None,
                         host_config=None, networking_config=None, name=None, **kwargs):
        self._check("create_container")
        cid = self._next_id("c")
        self.containers_[cid] = {
            "Id": cid,
            "Image": image,
            "Name": name,
            "Env": list(environment or []),
            "Labels": dict(labels or {}),
            "Volumes": volumes,
            "HostConfig": host_config,
            "NetworkingConfig": networking_config,
            "State": "created",
        }
        self._record("create_container", name)
        return {"Id": cid, "Warnings": []}

    def start(self, container):
        self._check("start")
        self.containers_[container]["State"] = "running"
        self._record("start", container)

    def inspect_container(self, container):
        self._check("inspect_container")
        if container not in self.containers_:
            raise NotFound(f"No such container: {container}")
        c = self.containers_[container]
        return {
            "Id": container,
            "Config": {"Labels": dict(c["Labels"]), "Env": list(c["Env"])},
            "NetworkSettings": {"Ports": self.ports},
            "Mounts": c.get("Mounts", []),
        }

    def kill(self, container, signal=None):
        self._record("kill", container)
        self._check("kill")
        self.killed.append(container)
        if container in self.containers_:
            self.containers_[container]["State"] = "exited"

    def logs(self, container, stdout=True, stderr=True, stream=False, **kwargs):
        self._check("logs")
        self.logs_requested.append(container)
        return b"homeserver starting\nhomeserver exploded\n"

    def commit(self, container, repository=None, tag=None, author=None, pause=True, conf=None, **kwargs):
        self._check("commit")
        image_id = "sha256:" + self._next_id("img")
        self.images_[image_id] = {
            "Id": image_id,
            "RepoTags": [f"{repository}:{tag}"],
            "Labels": dict((conf or {}).get("Labels") or {}),
            "Author": author,
            "Paused": pause,
            "Container": container,
        }
        self._record("commit", tag)
        return {"Id": image_id}

    def containers(self, all=False, filters=None, **kwargs):
        self._check("containers")
        return [
            {"Id": c["Id"], "Labels": dict(c["Labels"])}
            for c in list(self.containers_.values())
            if (all or c["State"] == "running") and _matches(c["Labels"], filters)
        ]

    def remove_container(self, container, force=False, **kwargs):
        self._check("remove_container")
        self._record("remove_container", container)
        del self.containers_[container]

    # images

    def images(self, name=None, quiet=False, all=False, filters=None):
        with self._lock:
            self.image_list_calls += 1
        self._check("images")
        return [dict(img) for img in list(self.images_.values()) if _matches(img["Labels"], filters)]

    def remove_image(self, image, force=False, noprune=False):
        self._check("remove_image")
        self._record("remove_image", image)
        del self.images_[image]


class FakeRunner:
    """Instruction runner which records calls and hands out fixed tokens."""

    def __init__(self, blueprint_name: str, events: list, fail_on: tuple[str, ...] = ()):
        self.blueprint_name = blueprint_name
        self.events = events
        self.fail_on = fail_on
        self.closed = False
        self._tokens: dict[str, dict[str, str]] = {}

    def run(self, hs: Homeserver, base_url: str) -> None:
        self.events.append(("run", f"{self.blueprint_name}.{hs.name}"))
        if hs.name in self.fail_on:
            raise RuntimeError(f"instructions failed on {hs.name}")
        self._tokens[hs.name] = {
            f"@{u.localpart}:{hs.name}": f"token_{u.localpart}" for u in hs.users
        }

    def access_tokens(self, hs_name: str) -> dict[str, str]:
        return dict(self._tokens.get(hs_name, {}))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_docker() -> FakeDockerAPI:
    return FakeDockerAPI()


@pytest.fixture
def config() -> ComplementConfig:
    return ComplementConfig(base_image_uri="complement-base:latest", version_check_iterations=3)


@pytest.fixture
def runners(fake_docker):
    """Factory for FakeRunners that share the docker fake's event log."""
    created: list[FakeRunner] = []

    def make(fail_on: tuple[str, ...] = ()):
        def factory(blueprint_name: str) -> FakeRunner:
            runner = FakeRunner(blueprint_name, fake_docker.events, fail_on=fail_on)
            created.append(runner)
            return runner
        return factory

    make.created = created
    return make


@pytest.fixture
def versions_up(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Every /versions check answers 200. Returns the URLs polled."""
    polled: list[str] = []

    def fake_get(url, **kwargs):
        polled.append(url)
        return httpx.Response(200, request=httpx.Request("GET", url))

    monkeypatch.setattr(deployer_module.httpx, "get", fake_get)
    monkeypatch.setattr(deployer_module, "VERSION_CHECK_INTERVAL", 0)
    return polled


@pytest.fixture(autouse=True)
def fast_image_polling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(builder_module, "IMAGE_LIST_INTERVAL", 0)
