"""Exceptions raised by complement."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from docker.errors import DockerException
from requests.exceptions import RequestException

if TYPE_CHECKING:
    from .docker.deployer import HomeserverDeployment


# The docker SDK lets transport failures (timeouts, refused connections)
# escape as requests exceptions rather than DockerException.
DOCKER_API_ERRORS = (DockerException, RequestException)


class ComplementError(Exception):
    """Base class for all complement errors."""


class BlueprintError(ComplementError):
    """A blueprint definition is invalid."""


class NetworkError(ComplementError):
    """A blueprint network could not be created or removed."""


class CaVolumeError(ComplementError):
    """The CA volume to share with homeservers could not be resolved."""


class DeployError(ComplementError):
    """A homeserver container could not be deployed.

    ``container_id`` is set whenever a container was created before the
    failure, and ``deployment`` when the container started but never became
    healthy.
    """

    def __init__(
        self,
        message: str,
        container_id: Optional[str] = None,
        deployment: Optional["HomeserverDeployment"] = None,
    ):
        super().__init__(message)
        self.container_id = container_id
        self.deployment = deployment


class InstructionError(ComplementError):
    """Running blueprint instructions against a homeserver failed."""


class BuilderError(ComplementError):
    """A batch of blueprints could not be built."""
