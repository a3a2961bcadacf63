"""Image actions"""

from typing import Callable, List

from ..core.docker_client import DockerEngineClient
from ..core.types import ActionData, ActionResult, PermissionLevel, RCEAction


def image_actions(docker: Callable[[], DockerEngineClient]) -> List[RCEAction]:

    async def handle_list_images(action_data: ActionData) -> ActionResult:
        images = await docker().image_list()
        tags = [(image.get("RepoTags") or ["<none>"])[0] for image in images]
        return ActionResult(
            success=True,
            message=f"Found {len(images)} images: {', '.join(tags)}",
        )

    return [
        RCEAction(
            name="list_images",
            description="List all Docker images available on the system.",
            default_permission=PermissionLevel.OFF,
            handler=handle_list_images,
        ),
    ]
