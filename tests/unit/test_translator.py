"""Unit tests for the command translator."""

import pytest

from blender_relay.errors import UnsupportedCommand
from blender_relay.protocol.translator import (
    NEUTRAL_GRAY_RGBA,
    SUPPORTED_ACTIONS,
    AbstractCommand,
    color_hex,
    hex_to_rgba,
    render_command,
    translate,
)


def _args(action: str, **parameters) -> dict:
    descriptor = translate(AbstractCommand(action=action, parameters=parameters), 1)
    return descriptor.arguments


class TestTranslateCreate:
    """Object creation actions."""

    def test_create_sphere_scenario(self):
        """A blue sphere of size 2 becomes a create_object call."""
        cmd = AbstractCommand(
            action="create_sphere",
            parameters={"color": "blue", "size": 2},
        )
        descriptor = translate(cmd, 42)

        assert descriptor.id == 42
        assert descriptor.jsonrpc == "2.0"
        assert descriptor.method == "tools/call"
        assert descriptor.tool_name == "create_object"
        assert descriptor.arguments["object_type"] == "sphere"
        assert descriptor.arguments["scale"] == [2, 2, 2]
        assert descriptor.arguments["material"]["name"] == "blue_material"
        assert descriptor.arguments["material"]["color"] == [0.0, 0.0, 1.0, 1.0]

    def test_create_sphere_defaults(self):
        """Missing parameters fall back to documented defaults."""
        args = _args("create_sphere")

        assert args["location"] == [0, 0, 0]
        assert args["scale"] == [1, 1, 1]
        assert args["material"]["name"] == "gray_material"
        assert args["material"]["metallic"] == 0.0
        assert args["material"]["roughness"] == 0.5

    def test_create_sphere_metallic(self):
        args = _args("create_sphere", material="metallic")

        assert args["material"]["metallic"] == 1.0
        assert args["material"]["roughness"] == 0.1

    def test_create_cube_defaults(self):
        args = _args("create_cube", color="red")

        assert args["object_type"] == "cube"
        assert args["location"] == [2, 0, 0]
        assert args["scale"] == [1, 1, 1]
        assert args["material"] == {"name": "red_material", "color": [1.0, 0.0, 0.0, 1.0]}

    def test_create_cylinder_uses_height(self):
        args = _args("create_cylinder", height=4)

        assert args["object_type"] == "cylinder"
        assert args["location"] == [-2, 0, 0]
        assert args["scale"] == [1, 1, 4]

    def test_create_cylinder_default_height(self):
        assert _args("create_cylinder")["scale"] == [1, 1, 2]

    def test_explicit_location_wins(self):
        assert _args("create_cube", location=[5, 5, 5])["location"] == [5, 5, 5]


class TestTranslateTransform:
    """Transform, light, delete and render actions."""

    def test_rotate_lowercases_axis(self):
        descriptor = translate(
            AbstractCommand(action="rotate_object", parameters={"axis": "X", "angle": 45}), 1
        )

        assert descriptor.tool_name == "transform_object"
        assert descriptor.arguments == {
            "operation": "rotate",
            "axis": "x",
            "angle": 45,
            "target": "active",
        }

    def test_rotate_defaults(self):
        args = _args("rotate_object")

        assert args["axis"] == "z"
        assert args["angle"] == 90

    def test_scale(self):
        assert _args("scale_object", factor=3)["factor"] == 3
        assert _args("scale_object")["factor"] == 2

    def test_zero_angle_and_factor_are_kept(self):
        assert _args("rotate_object", angle=0)["angle"] == 0
        assert _args("scale_object", factor=0)["factor"] == 0

    def test_null_transform_parameters_use_defaults(self):
        args = _args("rotate_object", axis=None, angle=None)

        assert args["axis"] == "z"
        assert args["angle"] == 90

    def test_zero_size_and_intensity_fall_back(self):
        assert _args("create_cube", size=0)["scale"] == [1, 1, 1]
        assert _args("add_light", intensity=0)["energy"] == 10

    def test_add_light_defaults(self):
        descriptor = translate(AbstractCommand(action="add_light"), 1)

        assert descriptor.tool_name == "create_light"
        assert descriptor.arguments == {
            "light_type": "point",
            "location": [0, -5, 5],
            "energy": 10,
        }

    def test_add_light_intensity(self):
        args = _args("add_light", type="spot", intensity=50)

        assert args["light_type"] == "spot"
        assert args["energy"] == 50

    def test_delete_all(self):
        assert _args("delete_object", target="all")["target"] == "all"

    def test_delete_anything_else_is_active(self):
        assert _args("delete_object", target="last_created")["target"] == "active"
        assert _args("delete_object")["target"] == "active"

    def test_render_defaults(self):
        descriptor = translate(render_command(), 7)

        assert descriptor.tool_name == "render_scene"
        assert descriptor.arguments == {
            "output_path": "/tmp/render.png",
            "format": "PNG",
            "resolution_x": 512,
            "resolution_y": 512,
        }

    def test_render_resolution(self):
        descriptor = translate(render_command(resolution=(1920, 1080)), 7)

        assert descriptor.arguments["resolution_x"] == 1920
        assert descriptor.arguments["resolution_y"] == 1080

    def test_render_ignores_malformed_resolution(self):
        args = _args("render", resolution="big")

        assert args["resolution_x"] == 512
        assert args["resolution_y"] == 512

    @pytest.mark.parametrize("resolution", ["abc", 7, {"w": 10}])
    def test_render_command_ignores_non_sequence_resolution(self, resolution):
        command = render_command(resolution=resolution)
        args = translate(command, 7).arguments

        assert "resolution" not in command.parameters
        assert (args["resolution_x"], args["resolution_y"]) == (512, 512)


class TestTranslateTotality:
    """translate is total over the supported set and rejects everything else."""

    @pytest.mark.parametrize("action", sorted(SUPPORTED_ACTIONS))
    def test_supported_action_without_parameters(self, action):
        descriptor = translate(AbstractCommand(action=action), "abc")

        assert descriptor.id == "abc"
        assert descriptor.params.name
        assert all(value is not None for value in descriptor.arguments.values())

    @pytest.mark.parametrize(
        "action", ["move_object", "apply_material", "create_forest", "unknown", ""]
    )
    def test_unsupported_action(self, action):
        with pytest.raises(UnsupportedCommand) as exc_info:
            translate(AbstractCommand(action=action), 1)

        assert exc_info.value.action == action
        assert str(exc_info.value) == f"Unsupported command: {action}"


class TestColors:
    """Color lookup never fails."""

    def test_known_color(self):
        assert color_hex("purple") == "#800080"
        assert color_hex("Orange") == "#FFA500"

    def test_unknown_color_is_gray(self):
        assert color_hex("chartreuse") == "#808080"
        assert color_hex(None) == "#808080"

    @pytest.mark.parametrize("name", [5, 1.5, ["red"], {"name": "red"}])
    def test_non_string_color_is_gray(self, name):
        assert color_hex(name) == "#808080"

    def test_non_string_color_parameter(self):
        material = _args("create_sphere", color=5)["material"]

        assert material["color"] == [0.5, 0.5, 0.5, 1.0]

    def test_hex_to_rgba(self):
        assert hex_to_rgba("#FFFFFF") == [1.0, 1.0, 1.0, 1.0]
        assert hex_to_rgba("000000") == [0.0, 0.0, 0.0, 1.0]

    def test_hex_to_rgba_fallback(self):
        assert hex_to_rgba("not-a-color") == NEUTRAL_GRAY_RGBA
