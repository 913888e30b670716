"""Build blueprints into reusable homeserver images."""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

import docker

from ..blueprints import Blueprint
from ..config import ComplementConfig
from ..errors import DOCKER_API_ERRORS, BlueprintError, BuilderError
from ..parallel import format_parallel_results, run_parallel
from .constructor import BlueprintConstructor, RunnerFactory
from .labels import BLUEPRINT_LABEL, COMPLEMENT_LABEL, label_filter
from .network import remove_networks

logger = logging.getLogger(__name__)

# Image listing is eventually consistent after commits: poll for up to 5s.
IMAGE_LIST_ATTEMPTS = 50
IMAGE_LIST_INTERVAL = 0.1


class Builder:
    """Constructs blueprints concurrently and owns cleanup of what it built.

    The builder holds the docker API client; constructors borrow it for the
    duration of a call.
    """

    def __init__(
        self,
        config: ComplementConfig,
        docker_client=None,
        runner_factory: Optional[RunnerFactory] = None,
        show_progress: bool = False,
    ):
        self.config = config
        self.docker = docker_client if docker_client is not None else docker.from_env().api
        self.keep_blueprints = set(config.keep_blueprints)
        self.runner_factory = runner_factory
        self.show_progress = show_progress

        if config.debug_logging:
            logging.getLogger("complement").setLevel(logging.DEBUG)

    def cleanup(self) -> None:
        """Remove complement containers, images and networks. Never raises."""
        try:
            self._remove_containers()
        except Exception as e:
            logger.warning(f"Cleanup: Failed to remove containers: {e}")
        try:
            self._remove_images()
        except Exception as e:
            logger.warning(f"Cleanup: Failed to remove images: {e}")
        try:
            remove_networks(self.docker, COMPLEMENT_LABEL)
        except Exception as e:
            logger.warning(f"Cleanup: Failed to remove networks: {e}")

    def _remove_containers(self) -> None:
        for c in self.docker.containers(all=True, filters=label_filter(COMPLEMENT_LABEL)):
            self.docker.remove_container(c["Id"], force=True)

    def _remove_images(self) -> None:
        for img in self.docker.images(filters=label_filter(COMPLEMENT_LABEL)):
            bprint_name = (img.get("Labels") or {}).get(BLUEPRINT_LABEL, "")
            if bprint_name in self.keep_blueprints:
                logger.debug(f"Keeping image created from blueprint {bprint_name}")
                continue
            self.docker.remove_image(img["Id"], force=True)

    def construct_blueprints_if_not_exist(self, bs: Iterable[Blueprint]) -> None:
        """Construct the blueprints which have no image yet."""
        to_build = []
        for bprint in bs:
            try:
                images = self.docker.images(filters=label_filter(f"{BLUEPRINT_LABEL}={bprint.name}"))
            except DOCKER_API_ERRORS as e:
                raise BuilderError(f"construct_blueprints_if_not_exist: failed to list images: {e}") from e
            if not images:
                to_build.append(bprint)
            else:
                logger.debug(f"Blueprint {bprint.name} already has an image, skipping")
        self.construct_blueprints(to_build)

    def construct_blueprints(self, bs: Iterable[Blueprint]) -> None:
        """Construct all blueprints concurrently. Raises the first error encountered."""
        bs = list(bs)
        if not bs:
            return
        if not self.config.base_image_uri:
            raise BuilderError("no base image configured: set COMPLEMENT_BASE_IMAGE")
        names = [bprint.name for bprint in bs]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise BlueprintError(f"duplicate blueprint names: {', '.join(dupes)}")

        constructor = BlueprintConstructor(self.docker, self.config, self.runner_factory)
        results = run_parallel(
            {bprint.name: (lambda b=bprint: constructor.construct(b)) for bprint in bs},
            max_workers=len(bs),
            show_progress=self.show_progress,
            description="Constructing blueprints",
        )
        logger.debug(format_parallel_results(results))

        errs: list[BaseException] = []
        for res in results.values():
            if res.success:
                errs.extend(res.result)
            else:
                errs.append(res.exception)
        if errs:
            for err in errs:
                logger.error(f"could not construct blueprint: {err}")
            raise errs[0]

        found_images = self._wait_for_images(len(bs))

        # Only once the images exist have the containers detached, so the
        # networks can actually be removed.
        for bprint in bs:
            try:
                remove_networks(self.docker, f"{BLUEPRINT_LABEL}={bprint.name}")
            except Exception as e:
                logger.warning(f"{bprint.name} : Failed to remove network: {e}")

        if not found_images:
            raise BuilderError("failed to find built images via image listing: did they all build ok?")

    def _wait_for_images(self, expected: int) -> bool:
        for _ in range(IMAGE_LIST_ATTEMPTS):
            try:
                images = self.docker.images(filters=label_filter(COMPLEMENT_LABEL))
            except DOCKER_API_ERRORS as e:
                raise BuilderError(f"failed to list images: {e}") from e
            if len(images) >= expected:
                return True
            time.sleep(IMAGE_LIST_INTERVAL)
        return False
