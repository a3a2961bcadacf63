"""
Container actions

Lifecycle operations on Docker containers. All of them are OFF by default:
the operator has to opt in before Neuro can touch a container.
"""

from typing import Any, Callable, Dict, List

from ..core.docker_client import DockerEngineClient, container_display_name
from ..core.types import ActionData, ActionResult, PermissionLevel, RCEAction

DockerProvider = Callable[[], DockerEngineClient]

CONTAINER_TARGET_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "container": {
            "type": "string",
            "description": "Container name or ID",
        }
    },
    "required": ["container"],
}


def container_actions(docker: DockerProvider) -> List[RCEAction]:
    """Build the container action group bound to a Docker client provider"""

    async def handle_list_containers(action_data: ActionData) -> ActionResult:
        containers = await docker().container_list(all=True)
        summary = ", ".join(
            f"{container_display_name(c)} ({c.get('State')})" for c in containers
        )
        return ActionResult(
            success=True,
            message=f"Found {len(containers)} containers: {summary}",
        )

    async def handle_start_container(action_data: ActionData) -> ActionResult:
        container = action_data.params["container"]
        await docker().container_start(container)
        return ActionResult(success=True, message=f"Container {container} started.")

    async def handle_stop_container(action_data: ActionData) -> ActionResult:
        container = action_data.params["container"]
        await docker().container_stop(container)
        return ActionResult(success=True, message=f"Container {container} stopped.")

    async def handle_restart_container(action_data: ActionData) -> ActionResult:
        container = action_data.params["container"]
        await docker().container_restart(container)
        return ActionResult(success=True, message=f"Container {container} restarted.")

    async def handle_remove_container(action_data: ActionData) -> ActionResult:
        container = action_data.params["container"]
        await docker().container_delete(container, force=True)
        return ActionResult(success=True, message=f"Container {container} removed.")

    return [
        RCEAction(
            name="list_containers",
            description="List all Docker containers with their current status.",
            default_permission=PermissionLevel.OFF,
            handler=handle_list_containers,
        ),
        RCEAction(
            name="start_container",
            description="Start a stopped Docker container by name or ID.",
            schema=CONTAINER_TARGET_SCHEMA,
            default_permission=PermissionLevel.OFF,
            handler=handle_start_container,
        ),
        RCEAction(
            name="stop_container",
            description="Stop a running Docker container by name or ID.",
            schema=CONTAINER_TARGET_SCHEMA,
            default_permission=PermissionLevel.OFF,
            handler=handle_stop_container,
        ),
        RCEAction(
            name="restart_container",
            description="Restart a running Docker container by name or ID.",
            schema=CONTAINER_TARGET_SCHEMA,
            default_permission=PermissionLevel.OFF,
            handler=handle_restart_container,
        ),
        RCEAction(
            name="remove_container",
            description="Remove an existing Docker container by name or ID.",
            schema=CONTAINER_TARGET_SCHEMA,
            default_permission=PermissionLevel.OFF,
            handler=handle_remove_container,
        ),
    ]
