"""Docker networks isolating each blueprint's homeservers."""

from __future__ import annotations

import logging

from ..errors import DOCKER_API_ERRORS, NetworkError
from .labels import BLUEPRINT_LABEL, COMPLEMENT_LABEL, label_filter

logger = logging.getLogger(__name__)


def network_name(blueprint_name: str) -> str:
    return f"complement_{blueprint_name}"


def create_network(docker, blueprint_name: str) -> str:
    """Create a user-defined network for a blueprint and return its id.

    A user-defined network gives containers DNS based on their aliases.
    The returned id is never empty.
    """
    try:
        nw = docker.create_network(
            network_name(blueprint_name),
            labels={
                COMPLEMENT_LABEL: blueprint_name,
                BLUEPRINT_LABEL: blueprint_name,
            },
        )
    except DOCKER_API_ERRORS as e:
        raise NetworkError(f"{blueprint_name}: failed to create docker network. {e}") from e

    network_id = (nw or {}).get("Id") or ""
    warning = (nw or {}).get("Warning") or ""
    if warning:
        if not network_id:
            raise NetworkError(f"{blueprint_name}: fatal warning while creating docker network. {warning}")
        logger.warning(f"WARNING: {warning}")
    if not network_id:
        raise NetworkError(f"{blueprint_name}: unexpected empty ID while creating network")
    return network_id


def remove_networks(docker, label_expr: str = COMPLEMENT_LABEL) -> None:
    """Remove every network matching ``label_expr``. Stops at the first failure."""
    for nw in docker.networks(filters=label_filter(label_expr)):
        logger.debug(f"Removing network {nw.get('Name', '')} ({nw['Id']})")
        docker.remove_network(nw["Id"])
