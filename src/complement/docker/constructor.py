"""Build one blueprint: deploy, configure and commit each homeserver."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Callable, Optional

from ..blueprints import Blueprint, Homeserver
from ..config import ComplementConfig
from ..errors import DOCKER_API_ERRORS, ComplementError, DeployError
from ..instruction import InstructionRunner
from .deployer import deploy_image, print_logs
from .labels import (
    as_registrations_from_labels,
    identity_labels,
    labels_for_application_services,
    labels_for_tokens,
)
from .network import create_network

logger = logging.getLogger(__name__)

IMAGE_REPOSITORY = "localhost/complement"
IMAGE_AUTHOR = "Complement"

RunnerFactory = Callable[[str], InstructionRunner]


@dataclass
class ConstructionResult:
    """Outcome of deploying and configuring one homeserver."""
    homeserver: Homeserver
    blueprint_name: str
    context_str: str
    container_id: str = ""
    error: Optional[Exception] = None


class BlueprintConstructor:
    """Constructs the homeservers of a blueprint and commits them as images.

    Homeservers are built one after another: later servers may rely on
    earlier ones being reachable, and failures stay attributable.
    """

    def __init__(
        self,
        docker,
        config: ComplementConfig,
        runner_factory: Optional[RunnerFactory] = None,
    ):
        self.docker = docker
        self.config = config
        self.runner_factory = runner_factory or InstructionRunner

    def construct(self, bprint: Blueprint) -> list[Exception]:
        """Build every homeserver in ``bprint``. Returns the errors encountered."""
        try:
            network_id = create_network(self.docker, bprint.name)
        except ComplementError as e:
            return [e]

        errs: list[Exception] = []
        runner = self.runner_factory(bprint.name)

        with ExitStack() as stack:
            stack.callback(runner.close)

            results: list[ConstructionResult] = []
            for hs in bprint.homeservers:
                res = self.construct_homeserver(bprint.name, runner, hs, network_id)
                if res.container_id:
                    stack.callback(self._kill, res)
                if res.error is not None:
                    errs.append(res.error)
                    if res.container_id:
                        # the container may have interesting logs
                        print_logs(self.docker, res.container_id, res.context_str)
                results.append(res)

            for res in results:
                if res.error is not None:
                    continue
                err = self._commit(runner, res)
                if err is not None:
                    errs.append(err)

        return errs

    def construct_homeserver(
        self,
        blueprint_name: str,
        runner: InstructionRunner,
        hs: Homeserver,
        network_id: str,
    ) -> ConstructionResult:
        """Deploy the base image for ``hs`` and run its instructions, leaving it running."""
        context_str = f"{blueprint_name}.{hs.name}"
        logger.debug(f"{context_str} : constructing homeserver...")

        try:
            dep = deploy_image(
                self.docker,
                self.config,
                self.config.base_image_uri,
                f"complement_{context_str}",
                blueprint_name,
                hs.name,
                as_registrations_from_labels(labels_for_application_services(hs)),
                context_str,
                network_id,
            )
        except DeployError as e:
            logger.error(f"{context_str} : failed to deploy base image: {e}")
            return ConstructionResult(
                homeserver=hs,
                blueprint_name=blueprint_name,
                context_str=context_str,
                container_id=e.container_id or "",
                error=e,
            )
        except Exception as e:
            logger.error(f"{context_str} : failed to deploy base image: {e}")
            return ConstructionResult(
                homeserver=hs,
                blueprint_name=blueprint_name,
                context_str=context_str,
                error=DeployError(f"{context_str} : failed to deploy base image: {e}"),
            )

        logger.debug(f"{context_str} : deployed base image to {dep.base_url} ({dep.container_id})")
        error: Optional[Exception] = None
        try:
            runner.run(hs, dep.base_url)
        except Exception as e:
            logger.debug(f"{context_str} : failed to run instructions: {e}")
            error = e

        return ConstructionResult(
            homeserver=hs,
            blueprint_name=blueprint_name,
            context_str=context_str,
            container_id=dep.container_id,
            error=error,
        )

    def _commit(self, runner: InstructionRunner, res: ConstructionResult) -> Optional[Exception]:
        hs = res.homeserver
        labels = identity_labels(res.context_str, res.blueprint_name, hs.name)
        labels.update(labels_for_tokens(runner.access_tokens(hs.name)))
        labels.update(labels_for_application_services(hs))

        try:
            commit = self.docker.commit(
                res.container_id,
                repository=IMAGE_REPOSITORY,
                tag=res.context_str,
                author=IMAGE_AUTHOR,
                pause=True,
                conf={"Labels": labels},
            )
        except DOCKER_API_ERRORS as e:
            logger.error(f"{res.context_str} : failed to commit container: {e}")
            return ComplementError(f"{res.context_str} : failed to commit container: {e}")

        image_id = str(commit.get("Id", "")).replace("sha256:", "", 1)
        logger.debug(f"{res.context_str} => {image_id}")
        return None

    def _kill(self, res: ConstructionResult) -> None:
        try:
            self.docker.kill(res.container_id, signal="SIGKILL")
        except Exception as e:
            logger.warning(f"{res.context_str} : Failed to kill container {res.container_id}: {e}")
