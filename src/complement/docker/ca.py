"""Certificate authority volume shared by every homeserver container.

Homeservers need a common CA so they can trust each other's federation
certificates. Where that CA lives depends on how the builder runs:

* under CI the builder is itself a container with a volume mounted at
  ``/ca``; the same named volume is mounted into every homeserver;
* otherwise the CA lives in ``./ca`` on the host and is bind mounted.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from docker.types import Mount

from ..errors import DOCKER_API_ERRORS, CaVolumeError

logger = logging.getLogger(__name__)

CA_TARGET = "/ca"
CA_HOST_DIR = "ca"


@dataclass
class CaVolume:
    """Volumes and mounts to add to a homeserver container."""
    volumes: list[str] = field(default_factory=list)
    mounts: list[Mount] = field(default_factory=list)


class ContainerIdentity(ABC):
    """Finds the id of the container this process runs in."""

    @abstractmethod
    def current_container_id(self) -> str:
        """Return the current container id or raise CaVolumeError."""
        pass


class CpusetContainerIdentity(ContainerIdentity):
    """Reads the container id from the init process's cpuset.

    ``/proc/1/cpuset`` reads ``/docker/<container id>`` inside a docker
    container.
    """

    def __init__(self, cpuset_path: Path = Path("/proc/1/cpuset")):
        self.cpuset_path = cpuset_path

    def current_container_id(self) -> str:
        try:
            cpuset = self.cpuset_path.read_text()
        except OSError as e:
            raise CaVolumeError(f"Could not read {self.cpuset_path}: {e}") from e

        if "docker" not in cpuset:
            raise CaVolumeError(f"Could not identify container ID using {self.cpuset_path}")
        return cpuset.strip().split("/")[-1]


def _colocated_ca_volume(docker, identity: ContainerIdentity) -> Optional[CaVolume]:
    container_id = identity.current_container_id()
    try:
        inspect = docker.inspect_container(container_id)
    except DOCKER_API_ERRORS as e:
        raise CaVolumeError(f"Failed to inspect own container {container_id}: {e}") from e

    volume_name = ""
    for m in inspect.get("Mounts") or []:
        if m.get("Destination") == CA_TARGET:
            volume_name = m.get("Name") or ""

    if not volume_name:
        # Either the container was started without a CA volume, or CI is set
        # while not running in a container at all.
        logger.debug(f"No volume mounted at {CA_TARGET} in container {container_id}; not sharing a CA")
        return None

    return CaVolume(
        volumes=[CA_TARGET],
        mounts=[Mount(target=CA_TARGET, source=volume_name, type="volume")],
    )


def _host_ca_volume(cwd: Optional[Path]) -> CaVolume:
    ca_dir = (cwd or Path(os.getcwd())) / CA_HOST_DIR
    try:
        if not ca_dir.exists():
            ca_dir.mkdir(mode=0o770)
    except OSError as e:
        raise CaVolumeError(f"Failed to create CA directory {ca_dir}: {e}") from e

    return CaVolume(mounts=[Mount(target=CA_TARGET, source=str(ca_dir), type="bind")])


def get_ca_volume(
    docker,
    ci: bool,
    identity: Optional[ContainerIdentity] = None,
    cwd: Optional[Path] = None,
) -> Optional[CaVolume]:
    """Resolve the CA volume for homeserver containers.

    Returns ``None`` when running under CI without a CA volume to share.
    """
    if ci:
        return _colocated_ca_volume(docker, identity or CpusetContainerIdentity())
    return _host_ca_volume(cwd)
