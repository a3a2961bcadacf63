"""Misc actions that do not touch Docker"""

from typing import List

from ..core.types import ActionData, ActionResult, PermissionLevel, RCEAction


async def handle_get_cookie(action_data: ActionData) -> ActionResult:
    params = action_data.params if isinstance(action_data.params, dict) else {}
    flavor = params.get("flavor") or "test"
    return ActionResult(success=True, message=f"You got a {flavor} cookie!")


def misc_actions() -> List[RCEAction]:
    return [
        RCEAction(
            name="get_cookie",
            description="Get a cookie! You can even choose the flavor.",
            schema={
                "type": "object",
                "properties": {
                    "flavor": {"type": "string"},
                },
            },
            default_permission=PermissionLevel.AUTOPILOT,
            handler=handle_get_cookie,
        ),
    ]
