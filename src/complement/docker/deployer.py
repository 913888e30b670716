"""Deploy a single homeserver container and wait for it to come up."""

from __future__ import annotations

import logging
import platform
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from ..config import ComplementConfig
from ..errors import DOCKER_API_ERRORS, CaVolumeError, DeployError
from .ca import get_ca_volume
from .labels import decode_labels, identity_labels

logger = logging.getLogger(__name__)

# Hostname of the builder from the perspective of a homeserver.
HOSTNAME_RUNNING_COMPLEMENT = "host.docker.internal"
DOCKER_HOST_GATEWAY = "172.17.0.1"

VERSION_CHECK_INTERVAL = 0.05


@dataclass
class HomeserverDeployment:
    """A running homeserver container and how to reach it."""
    base_url: str
    fed_base_url: str
    container_id: str
    access_tokens: dict[str, str] = field(default_factory=dict)
    application_services: dict[str, str] = field(default_factory=dict)


def extra_hosts() -> list[str]:
    # Docker for Linux does not expose host.docker.internal by default.
    if platform.system() == "Linux":
        return [f"{HOSTNAME_RUNNING_COMPLEMENT}:{DOCKER_HOST_GATEWAY}"]
    return []


def build_env(hs_name: str, ca: bool, as_registrations: Mapping[str, str]) -> list[str]:
    env = [
        f"SERVER_NAME={hs_name}",
        f"COMPLEMENT_CA={'true' if ca else 'false'}",
    ]
    for as_id, registration in as_registrations.items():
        env.append(f"AS_REGISTRATION_{as_id}={registration}")
    env.append("AS_REGISTRATION_IDS=" + " ".join(as_registrations))
    return env


def endpoints(ports: Mapping[str, Any], hostname: str, csapi_port: int, federation_port: int) -> tuple[str, str]:
    """Resolve the client and federation base URLs from published ports."""

    def host_port(port: int) -> str:
        key = f"{port}/tcp"
        bindings = (ports or {}).get(key)
        if not bindings:
            raise DeployError(f"port {key} not exposed - exposed ports: {dict(ports or {})}")
        return bindings[0]["HostPort"]

    base_url = f"http://{hostname}:{host_port(csapi_port)}"
    fed_base_url = f"https://{hostname}:{host_port(federation_port)}"
    return base_url, fed_base_url


def wait_for_versions(base_url: str, iterations: int) -> Optional[str]:
    """Poll ``/_matrix/client/versions`` until it answers 200.

    Returns ``None`` once the server is up, otherwise a description of the
    last failure.
    """
    versions_url = f"{base_url}/_matrix/client/versions"
    last_err: Optional[str] = f"GET {versions_url} => not attempted"
    for _ in range(iterations):
        try:
            res = httpx.get(versions_url, timeout=5.0)
        except httpx.HTTPError as e:
            last_err = f"GET {versions_url} => error: {e}"
            time.sleep(VERSION_CHECK_INTERVAL)
            continue
        if res.status_code != 200:
            last_err = f"GET {versions_url} => HTTP {res.status_code} {res.reason_phrase}"
            time.sleep(VERSION_CHECK_INTERVAL)
            continue
        return None
    return last_err


def deploy_image(
    docker,
    config: ComplementConfig,
    image_id: str,
    container_name: str,
    blueprint_name: str,
    hs_name: str,
    as_registrations: Mapping[str, str],
    context_str: str,
    network_id: str,
) -> HomeserverDeployment:
    """Run ``image_id`` as homeserver ``hs_name`` on the blueprint network.

    Raises DeployError. When the container exists the error carries its id,
    and when it started but never answered the version check the error also
    carries the deployment.
    """
    ca_volume = None
    if config.ca:
        try:
            ca_volume = get_ca_volume(docker, config.ci)
        except CaVolumeError as e:
            raise DeployError(f"{context_str} : {e}") from e

    host_config = docker.create_host_config(
        publish_all_ports=True,
        extra_hosts=extra_hosts(),
        mounts=ca_volume.mounts if ca_volume else None,
        network_mode=network_id,
    )
    networking_config = docker.create_networking_config({
        network_id: docker.create_endpoint_config(aliases=[hs_name]),
    })

    try:
        body = docker.create_container(
            image_id,
            environment=build_env(hs_name, config.ca, as_registrations),
            labels=identity_labels(context_str, blueprint_name, hs_name),
            volumes=ca_volume.volumes if ca_volume else None,
            host_config=host_config,
            networking_config=networking_config,
            name=container_name,
        )
    except DOCKER_API_ERRORS as e:
        raise DeployError(f"{context_str} : failed to create container from {image_id}: {e}") from e

    container_id = body["Id"]
    for warning in body.get("Warnings") or []:
        logger.warning(f"{context_str} : {warning}")

    try:
        docker.start(container_id)
        inspect = docker.inspect_container(container_id)
    except Exception as e:
        raise DeployError(f"{context_str} : failed to start container: {e}", container_id=container_id) from e

    try:
        base_url, fed_base_url = endpoints(
            inspect["NetworkSettings"]["Ports"],
            config.hostname_running_docker,
            config.csapi_port,
            config.federation_port,
        )
    except DeployError as e:
        raise DeployError(f"{context_str} : image {image_id} : {e}", container_id=container_id) from e

    last_err = wait_for_versions(base_url, config.version_check_iterations)

    access_tokens, application_services = decode_labels((inspect.get("Config") or {}).get("Labels") or {})
    deployment = HomeserverDeployment(
        base_url=base_url,
        fed_base_url=fed_base_url,
        container_id=container_id,
        access_tokens=access_tokens,
        application_services=application_services,
    )
    if last_err is not None:
        raise DeployError(
            f"{context_str}: failed to check server is up. {last_err}",
            container_id=container_id,
            deployment=deployment,
        )
    return deployment


def print_logs(docker, container_id: str, context_str: str) -> None:
    """Dump a container's stdout and stderr to the log."""
    try:
        raw = docker.logs(container_id, stdout=True, stderr=True, stream=False)
    except Exception as e:
        logger.error(f"{context_str} : Failed to extract container logs: {e}")
        return

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
    logger.error("============================================")
    logger.error(f"{context_str} : Server logs:")
    for line in text.splitlines():
        logger.error(line)
    logger.error(f"============== {context_str} : END LOGS ==============")
