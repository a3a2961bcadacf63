"""
neurontainer action catalog

Groups are registered in a fixed order: containers, images, misc.
"""

from typing import Callable

from ..core.catalog import ActionCatalog
from ..core.docker_client import DockerEngineClient
from .containers import container_actions
from .images import image_actions
from .misc import misc_actions


def build_catalog(docker: Callable[[], DockerEngineClient]) -> ActionCatalog:
    """
    Build the process-wide action catalog.

    Args:
        docker: Returns the live Docker client; raises DockerNotReadyError
            when it is not initialized

    Returns:
        ActionCatalog with every action neurontainer exposes
    """
    return ActionCatalog([
        *container_actions(docker),
        *image_actions(docker),
        *misc_actions(),
    ])


__all__ = ["build_catalog", "container_actions", "image_actions", "misc_actions"]
