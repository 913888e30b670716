"""Docker runtime for complement: networks, deployments and image builds."""

from .builder import Builder
from .ca import CaVolume, ContainerIdentity, CpusetContainerIdentity, get_ca_volume
from .constructor import BlueprintConstructor, ConstructionResult
from .deployer import HomeserverDeployment, deploy_image, print_logs
from .labels import (
    ACCESS_TOKEN_PREFIX,
    APPLICATION_SERVICE_PREFIX,
    BLUEPRINT_LABEL,
    COMPLEMENT_LABEL,
    HS_NAME_LABEL,
    decode_labels,
    encode_labels,
)
from .network import create_network, remove_networks

__all__ = [
    "Builder",
    "BlueprintConstructor",
    "ConstructionResult",
    "HomeserverDeployment",
    "deploy_image",
    "print_logs",
    "CaVolume",
    "ContainerIdentity",
    "CpusetContainerIdentity",
    "get_ca_volume",
    "create_network",
    "remove_networks",
    "encode_labels",
    "decode_labels",
    "ACCESS_TOKEN_PREFIX",
    "APPLICATION_SERVICE_PREFIX",
    "BLUEPRINT_LABEL",
    "COMPLEMENT_LABEL",
    "HS_NAME_LABEL",
]
