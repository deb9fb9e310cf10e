"""Keyword interpreter for free-text commands.

Deterministic and deliberately simple: it looks for trigger words and pulls
out a color and the first number it finds. Commands it cannot place come
back with action ``unknown``, which the relay rejects as unsupported.
"""

from __future__ import annotations

import re

from .protocol.translator import COLOR_HEX, DEFAULT_COLOR, AbstractCommand

_CREATE_WORDS = ("create", "make", "add")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def _has_any(text: str, words: tuple[str, ...]) -> bool:
    return any(word in text for word in words)


def _color(text: str) -> str:
    return next((name for name in COLOR_HEX if name in text), DEFAULT_COLOR)


def _number(text: str, default: float) -> float:
    match = _NUMBER_RE.search(text)
    if not match:
        return default
    value = float(match.group(1))
    return int(value) if value.is_integer() else value


def interpret(text: str) -> AbstractCommand:
    """Map a sentence such as "make a shiny red sphere" to an abstract command."""
    command = text.lower()

    if _has_any(command, _CREATE_WORDS):
        if _has_any(command, ("sphere", "ball")):
            return _create_sphere(command)
        if _has_any(command, ("cube", "box")):
            return _create_cube(command)
        if "cylinder" in command:
            return _create_cylinder(command)

    if _has_any(command, ("forest", "trees")):
        count = min(_number(command, 5), 20)
        return AbstractCommand(
            action="create_forest",
            description=f"Creating a forest scene with {count} trees",
            parameters={"type": "forest", "tree_count": count, "area_size": 10},
        )

    if _has_any(command, ("landscape", "terrain")):
        alien = _has_any(command, ("alien", "strange"))
        return AbstractCommand(
            action="create_landscape",
            description=f"Creating {'an alien' if alien else 'a natural'} landscape",
            parameters={"type": "landscape", "style": "alien" if alien else "natural", "size": 20},
        )

    if _has_any(command, ("rotate", "turn")):
        angle = _number(command, 90)
        axis = "X" if "x" in command else "Y" if "y" in command else "Z"
        return AbstractCommand(
            action="rotate_object",
            description=f"Rotating object {angle} degrees on {axis} axis",
            parameters={"target": "last_created", "axis": axis, "angle": angle},
        )

    if _has_any(command, ("scale", "resize", "size")):
        factor = _number(command, 2)
        return AbstractCommand(
            action="scale_object",
            description=f"Scaling object by factor of {factor}",
            parameters={"target": "last_created", "factor": factor},
        )

    if _has_any(command, ("delete", "remove")):
        target = "all" if "all" in command else "last_created"
        return AbstractCommand(
            action="delete_object",
            description="Deleting all objects" if target == "all" else "Deleting last created object",
            parameters={"target": target},
        )

    if _has_any(command, ("move", "position")):
        distance = _number(command, 2)
        return AbstractCommand(
            action="move_object",
            description=f"Moving object {distance} units",
            parameters={"target": "last_created", "offset": [distance, 0, 0]},
        )

    if _has_any(command, ("light", "lighting", "spotlight", "lamp")):
        spot = "spot" in command
        return AbstractCommand(
            action="add_light",
            description=f"Adding {'spotlight' if spot else 'point light'}",
            parameters={
                "type": "spot" if spot else "point",
                "intensity": _number(command, 10),
                "location": [0, -5, 5],
            },
        )

    if _has_any(command, ("material", "texture", "color", "shiny", "metallic")):
        shiny = _has_any(command, ("shiny", "metallic"))
        material = next((m for m in ("wood", "metal", "glass") if m in command), "basic")
        return AbstractCommand(
            action="apply_material",
            description=f"Applying {'shiny ' if shiny else ''}{material} material",
            parameters={
                "target": "last_created",
                "material_type": material,
                "color": _color(command),
                "metallic": shiny,
            },
        )

    return AbstractCommand(
        action="unknown",
        description=f'Unable to interpret command: "{text}"',
        parameters={"originalCommand": text},
    )


def _create_sphere(command: str) -> AbstractCommand:
    color = _color(command)
    shiny = _has_any(command, ("shiny", "metallic"))
    return AbstractCommand(
        action="create_sphere",
        description=f"Creating a {'shiny ' if shiny else ''}{color} sphere",
        parameters={
            "type": "sphere",
            "color": color,
            "size": _number(command, 1),
            "material": "metallic" if shiny else "basic",
            "location": [0, 0, 0],
        },
    )


def _create_cube(command: str) -> AbstractCommand:
    color = _color(command)
    material = "wood" if "wood" in command else "basic"
    return AbstractCommand(
        action="create_cube",
        description=f"Creating a {material} {color} cube",
        parameters={
            "type": "cube",
            "color": color,
            "size": _number(command, 1),
            "material": material,
            "location": [2, 0, 0],
        },
    )


def _create_cylinder(command: str) -> AbstractCommand:
    color = _color(command)
    return AbstractCommand(
        action="create_cylinder",
        description=f"Creating a {color} cylinder",
        parameters={
            "type": "cylinder",
            "color": color,
            "height": _number(command, 1),
            "location": [-2, 0, 0],
        },
    )
