from __future__ import annotations

from dataclasses import replace

import pytest
from PySide6.QtCore import QSettings

from cortexviz.config import KEY_DISPLAY_MODE, KEY_DRAW_STEPS, load_options, save_options
from cortexviz.model.options import DisplayMode, SynapseScope, ViewOptions


@pytest.fixture
def settings(qapp, tmp_path) -> QSettings:
    return QSettings(str(tmp_path / "cortexviz.ini"), QSettings.Format.IniFormat)


class TestConfig:
    def test_defaults_when_nothing_stored(self, settings) -> None:
        assert load_options(settings) == ViewOptions()

    def test_save_and_load(self, settings) -> None:
        """The persisted subset survives; session state does not."""
        options = replace(
            ViewOptions().with_drawing(display_mode=DisplayMode.TWO_D, draw_steps=8, height_px=500),
            keep_steps=30,
            ff_synapses=replace(ViewOptions().ff_synapses, scope=SynapseScope.ALL),
        )
        save_options(options, settings)
        loaded = load_options(settings)
        assert loaded.drawing.display_mode == DisplayMode.TWO_D
        assert loaded.drawing.draw_steps == 8
        assert loaded.keep_steps == 30
        assert loaded.ff_synapses.scope == SynapseScope.ALL
        assert loaded.drawing.height_px is None

    def test_loaded_onto_base(self, settings) -> None:
        save_options(ViewOptions().with_drawing(draw_steps=4), settings)
        base = ViewOptions().with_drawing(height_px=300)
        loaded = load_options(settings, base)
        assert loaded.drawing.height_px == 300
        assert loaded.drawing.draw_steps == 4

    @pytest.mark.parametrize("key, value", [(KEY_DISPLAY_MODE, "three-d"), (KEY_DRAW_STEPS, 0)])
    def test_invalid_values_fall_back(self, settings, key, value) -> None:
        settings.setValue(key, value)
        assert load_options(settings) == ViewOptions()
