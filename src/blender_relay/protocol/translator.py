"""Translation of abstract commands into MCP tool calls.

``translate`` is a pure function: no state, no I/O. Each supported action
maps to exactly one ``tools/call`` request, with documented defaults for
every parameter the caller omits. Missing or falsy parameters fall back to
the defaults.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..errors import UnsupportedCommand
from .jsonrpc import JsonRpcRequest

DEFAULT_COLOR = "gray"
NEUTRAL_GRAY_HEX = "#808080"
NEUTRAL_GRAY_RGBA = [0.5, 0.5, 0.5, 1.0]

COLOR_HEX: dict[str, str] = {
    "red": "#FF0000",
    "blue": "#0000FF",
    "green": "#00FF00",
    "yellow": "#FFFF00",
    "purple": "#800080",
    "orange": "#FFA500",
    "pink": "#FFC0CB",
    "white": "#FFFFFF",
    "black": "#000000",
    "gray": NEUTRAL_GRAY_HEX,
}

DEFAULT_RENDER_OUTPUT = "/tmp/render.png"
DEFAULT_RENDER_FORMAT = "PNG"
DEFAULT_RENDER_RESOLUTION = (512, 512)

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


class AbstractCommand(BaseModel):
    """An interpreted user command, e.g. ``{"action": "create_sphere", ...}``."""

    model_config = ConfigDict(frozen=True)

    action: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    def param(self, key: str, default: Any = None) -> Any:
        """Get a parameter, treating missing and falsy values alike."""
        value = self.parameters.get(key)
        return value if value else default

    def value(self, key: str, default: Any = None) -> Any:
        """Get a parameter, defaulting only when it is missing or null.

        Zero and other falsy values are kept, so ``angle=0`` stays 0.
        """
        value = self.parameters.get(key)
        return default if value is None else value


def color_hex(name: Any) -> str:
    """Look up a color name, falling back to neutral gray for unknown or non-string names."""
    if not isinstance(name, str):
        return NEUTRAL_GRAY_HEX
    return COLOR_HEX.get(name.lower(), NEUTRAL_GRAY_HEX)


def hex_to_rgba(value: str) -> list[float]:
    """Convert ``#RRGGBB`` into normalized RGBA, or neutral gray if unparsable."""
    match = _HEX_RE.match(value or "")
    if not match:
        return list(NEUTRAL_GRAY_RGBA)
    return [int(group, 16) / 255 for group in match.groups()] + [1.0]


def _material(cmd: AbstractCommand) -> dict[str, Any]:
    color = cmd.param("color", DEFAULT_COLOR)
    return {
        "name": f"{color}_material",
        "color": hex_to_rgba(color_hex(color)),
    }


def _uniform_scale(cmd: AbstractCommand) -> list[Any]:
    size = cmd.param("size", 1)
    return [size, size, size]


def _create_sphere(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    metallic = cmd.param("material") == "metallic"
    material = _material(cmd)
    material["metallic"] = 1.0 if metallic else 0.0
    material["roughness"] = 0.1 if metallic else 0.5
    return "create_object", {
        "object_type": "sphere",
        "location": cmd.param("location", [0, 0, 0]),
        "scale": _uniform_scale(cmd),
        "material": material,
    }


def _create_cube(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "create_object", {
        "object_type": "cube",
        "location": cmd.param("location", [2, 0, 0]),
        "scale": _uniform_scale(cmd),
        "material": _material(cmd),
    }


def _create_cylinder(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "create_object", {
        "object_type": "cylinder",
        "location": cmd.param("location", [-2, 0, 0]),
        "scale": [1, 1, cmd.param("height", 2)],
    }


def _rotate_object(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "transform_object", {
        "operation": "rotate",
        "axis": str(cmd.value("axis", "z")).lower(),
        "angle": cmd.value("angle", 90),
        "target": "active",
    }


def _scale_object(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "transform_object", {
        "operation": "scale",
        "factor": cmd.value("factor", 2),
        "target": "active",
    }


def _add_light(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "create_light", {
        "light_type": cmd.param("type", "point"),
        "location": cmd.param("location", [0, -5, 5]),
        "energy": cmd.param("intensity", 10),
    }


def _delete_object(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    return "delete_object", {
        "target": "all" if cmd.param("target") == "all" else "active",
    }


def _render(cmd: AbstractCommand) -> tuple[str, dict[str, Any]]:
    resolution = cmd.param("resolution")
    if not isinstance(resolution, list | tuple):
        resolution = []
    width = resolution[0] if len(resolution) > 0 and resolution[0] else DEFAULT_RENDER_RESOLUTION[0]
    height = resolution[1] if len(resolution) > 1 and resolution[1] else DEFAULT_RENDER_RESOLUTION[1]
    return "render_scene", {
        "output_path": cmd.param("output_path", DEFAULT_RENDER_OUTPUT),
        "format": cmd.param("format", DEFAULT_RENDER_FORMAT),
        "resolution_x": width,
        "resolution_y": height,
    }


_TRANSLATIONS: dict[str, Callable[[AbstractCommand], tuple[str, dict[str, Any]]]] = {
    "create_sphere": _create_sphere,
    "create_cube": _create_cube,
    "create_cylinder": _create_cylinder,
    "rotate_object": _rotate_object,
    "scale_object": _scale_object,
    "add_light": _add_light,
    "delete_object": _delete_object,
    "render": _render,
}

SUPPORTED_ACTIONS = frozenset(_TRANSLATIONS)


def translate(cmd: AbstractCommand, request_id: str | int) -> JsonRpcRequest:
    """Translate an abstract command into a ``tools/call`` request.

    Args:
        cmd: The interpreted command
        request_id: Correlation id for the upstream hop

    Returns:
        The remote call descriptor to send to the backend

    Raises:
        UnsupportedCommand: If ``cmd.action`` has no mapping
    """
    builder = _TRANSLATIONS.get(cmd.action)
    if builder is None:
        raise UnsupportedCommand(cmd.action)
    name, arguments = builder(cmd)
    return JsonRpcRequest.tool_call(request_id, name, arguments)


def render_command(
    resolution: Any = None,
    output_path: str | None = None,
    image_format: str | None = None,
) -> AbstractCommand:
    """Build the abstract command for a render request.

    A resolution that is not a list or tuple is ignored and the default applies.
    """
    parameters: dict[str, Any] = {}
    if isinstance(resolution, list | tuple) and resolution:
        parameters["resolution"] = list(resolution)
    if output_path:
        parameters["output_path"] = output_path
    if image_format:
        parameters["format"] = image_format
    return AbstractCommand(action="render", description="Render the scene", parameters=parameters)
