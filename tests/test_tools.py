"""Tests for the reference tool implementations."""

import numpy as np
import pytest
from conftest import LOGO_RGB, WHITE, logo_image

from app.pixels import to_rgba_array
from app.tools.background import background_remover
from app.tools.base import ToolError, tolerance_to_distance
from app.tools.catalog import TOOL_CATALOG, planner_tool_declarations
from app.tools.color import color_knockout, extract_color_palette, pick_color_at_position, recolor_image
from app.tools.geometry import auto_crop, rotate_flip, upscaler
from app.tools.texture import texture_cut


class TestCatalog:
    def test_every_tool_is_declared_for_the_planner(self):
        names = [d["name"] for d in planner_tool_declarations()]
        assert names == list(TOOL_CATALOG)
        assert len(names) == 9

    def test_invariants(self):
        assert TOOL_CATALOG["upscaler"].must_grow_dimensions
        assert TOOL_CATALOG["color_knockout"].must_keep_dimensions
        assert not TOOL_CATALOG["extract_color_palette"].mutates_image
        assert TOOL_CATALOG["recolor_image"].consumes_colors

    def test_parameters_come_from_the_models(self):
        scale = TOOL_CATALOG["upscaler"].parameters["properties"]["scaleFactor"]
        assert scale["exclusiveMinimum"] == 1
        assert TOOL_CATALOG["upscaler"].parameters["required"] == ["scaleFactor"]
        assert "colors" in TOOL_CATALOG["color_knockout"].parameters["required"]

    def test_tolerance_mapping(self):
        assert tolerance_to_distance(0) == 0.0
        assert tolerance_to_distance(250) == tolerance_to_distance(100)


class TestColorTools:
    async def test_knockout_removes_white(self, logo):
        output = await color_knockout(logo, {"colors": [WHITE], "tolerance": 30})
        alpha = to_rgba_array(output.image)[..., 3]
        assert alpha[0, 0] == 0
        assert alpha[50, 50] == 255

    async def test_knockout_color_mode_paints_white(self, logo):
        red = {"hex": "#dc1e1e", "r": LOGO_RGB[0], "g": LOGO_RGB[1], "b": LOGO_RGB[2]}
        output = await color_knockout(logo, {"colors": [red], "replaceMode": "color"})
        assert tuple(to_rgba_array(output.image)[50, 50]) == (255, 255, 255, 255)

    async def test_knockout_without_colors(self, logo):
        with pytest.raises(ToolError):
            await color_knockout(logo, {"colors": []})

    async def test_recolor_maps_palette_color(self, logo):
        mapping = {"originalIndex": 1, "originalColor": "#dc1e1e", "newColor": "#1e1edc"}
        output = await recolor_image(logo, {"colorMappings": [mapping]})
        assert tuple(to_rgba_array(output.image)[50, 50, :3]) == (30, 30, 220)
        assert tuple(to_rgba_array(output.image)[0, 0, :3]) == (255, 255, 255)

    async def test_recolor_needs_a_resolved_color(self, logo):
        with pytest.raises(ToolError, match="no resolved originalColor"):
            await recolor_image(logo, {"colorMappings": [{"originalIndex": 5, "newColor": "#000000"}]})

    async def test_palette_is_data_only(self, logo):
        output = await extract_color_palette(logo, {})
        assert output.image is None
        assert output.data["palette"][0]["hex"] == "#ffffff"

    async def test_pick_color(self, logo):
        output = await pick_color_at_position(logo, {"x": 50, "y": 50})
        assert output.data["hex"] == "#dc1e1e"
        assert output.data["alpha"] == 255

    async def test_pick_color_outside(self, logo):
        with pytest.raises(ToolError):
            await pick_color_at_position(logo, {"x": 500, "y": 0})


class TestMaskTools:
    async def test_background_remover_clears_border_region(self, logo):
        output = await background_remover(logo, {})
        alpha = to_rgba_array(output.image)[..., 3]
        assert alpha[0, 0] == 0
        assert alpha[50, 50] == 255
        assert np.count_nonzero(alpha == 0) == 100 * 100 - 40 * 40

    async def test_background_remover_fill_color(self, logo):
        output = await background_remover(logo, {"backgroundColor": "#000000"})
        assert tuple(to_rgba_array(output.image)[0, 0]) == (0, 0, 0, 255)

    async def test_texture_lines_cut_about_half(self, logo):
        output = await texture_cut(logo, {"textureType": "lines", "amount": 1})
        alpha = to_rgba_array(output.image)[..., 3]
        assert np.count_nonzero(alpha == 0) / alpha.size == pytest.approx(0.5, abs=0.1)

    async def test_texture_custom_is_refused(self, logo):
        with pytest.raises(ToolError):
            await texture_cut(logo, {"textureType": "custom"})


class TestGeometryTools:
    async def test_upscale(self, logo):
        output = await upscaler(logo, {"scaleFactor": 2})
        assert output.image.size == (200, 200)

    async def test_upscale_factor_must_grow(self, logo):
        with pytest.raises(ToolError):
            await upscaler(logo, {"scaleFactor": 1})

    async def test_rotate_swaps_dimensions(self):
        image = logo_image(size=20, block=4).crop((0, 0, 20, 10))
        output = await rotate_flip(image, {"operation": "rotate", "angle": 90})
        assert output.image.size == (10, 20)

    async def test_flip_needs_direction(self, logo):
        with pytest.raises(ToolError):
            await rotate_flip(logo, {"operation": "flip"})

    async def test_auto_crop_trims_flat_border(self, logo):
        output = await auto_crop(logo, {"padding": 2})
        assert output.image.size == (44, 44)

    async def test_auto_crop_refuses_empty_image(self):
        blank = logo_image(size=20, block=0)
        with pytest.raises(ToolError):
            await auto_crop(blank, {})
