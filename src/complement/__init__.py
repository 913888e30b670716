"""Complement – build blueprints of homeservers into reusable docker images"""

__version__ = "0.1.0"

from .blueprints import ApplicationService, Blueprint, Homeserver, Room, User, load_blueprints
from .config import ComplementConfig
from .docker import Builder, HomeserverDeployment
from .errors import (
    BlueprintError,
    BuilderError,
    CaVolumeError,
    ComplementError,
    DeployError,
    InstructionError,
    NetworkError,
)
from .instruction import InstructionRunner

__all__ = [
    # Blueprints
    "Blueprint",
    "Homeserver",
    "ApplicationService",
    "User",
    "Room",
    "load_blueprints",
    # Building
    "ComplementConfig",
    "Builder",
    "HomeserverDeployment",
    "InstructionRunner",
    # Errors
    "ComplementError",
    "BlueprintError",
    "BuilderError",
    "CaVolumeError",
    "DeployError",
    "InstructionError",
    "NetworkError",
    "__version__",
]
