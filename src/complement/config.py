"""Configuration for complement builds."""

import os

from dataclasses import dataclass
from typing import Optional


# Hostname of the docker daemon from the perspective of the builder.
HOSTNAME_LOCAL_DOCKER = "localhost"
# Under CI the builder runs inside a container with the docker socket forwarded.
HOSTNAME_CI_DOCKER = "172.17.0.1"


def _flag(value: Optional[str], truthy: tuple[str, ...] = ("true",)) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in truthy


@dataclass
class ComplementConfig:
    """Values which control how blueprints are built.

    Loading is environment based; callers that already hold values can
    construct the dataclass directly.
    """

    base_image_uri: str = ""
    debug_logging: bool = False
    keep_blueprints: tuple[str, ...] = ()
    version_check_iterations: int = 100
    ci: bool = False
    ca: bool = False

    # Ports the homeserver image listens on inside the container.
    csapi_port: int = 8008
    federation_port: int = 8448

    @property
    def hostname_running_docker(self) -> str:
        return HOSTNAME_CI_DOCKER if self.ci else HOSTNAME_LOCAL_DOCKER

    @classmethod
    def from_env(cls, env: Optional[dict[str, str]] = None) -> "ComplementConfig":
        src = env if env is not None else os.environ

        iterations_raw = str(src.get("COMPLEMENT_VERSION_CHECK_ITERATIONS", "") or "").strip()
        try:
            iterations = int(iterations_raw) if iterations_raw else 100
        except ValueError:
            raise ValueError(
                f"COMPLEMENT_VERSION_CHECK_ITERATIONS must be an integer, got {iterations_raw!r}"
            ) from None

        keep = str(src.get("COMPLEMENT_KEEP_BLUEPRINTS", "") or "")

        return cls(
            base_image_uri=str(src.get("COMPLEMENT_BASE_IMAGE", "") or "").strip(),
            debug_logging=_flag(src.get("COMPLEMENT_DEBUG"), truthy=("1", "true", "yes")),
            keep_blueprints=tuple(keep.split()),
            version_check_iterations=max(1, iterations),
            ci=_flag(src.get("CI")),
            ca=_flag(src.get("COMPLEMENT_CA")),
        )
