from __future__ import annotations

from dataclasses import replace

import pytest

from cortexviz.model.options import (
    OptionGroup,
    SynapseOptions,
    ViewOptions,
    bump_changed_groups,
    invalidate,
    path_group,
    viewport_options,
)
from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import SynapseState

IN = LayoutPath.input("in")
L1 = LayoutPath.layer("R1", "L1")


class TestVersions:
    def test_invalidate_is_per_group(self) -> None:
        """Invalidating one input bumps the input group only."""
        options = invalidate(ViewOptions(), [IN])
        assert options.version(OptionGroup.INPUT) == 1
        assert options.version(OptionGroup.COLUMNS) == 0
        assert options.version(OptionGroup.DRAWING) == 0

    def test_invalidate_bumps_each_group_once(self) -> None:
        options = invalidate(ViewOptions(), [IN, L1, LayoutPath.layer("R1", "L2")])
        assert options.versions(OptionGroup) == (1, 1, 0)

    def test_path_group(self) -> None:
        assert path_group(IN) == OptionGroup.INPUT
        assert path_group(L1) == OptionGroup.COLUMNS

    def test_content_change_bumps_group(self) -> None:
        """A changed column flag makes the columns version strictly greater."""
        old = ViewOptions()
        new = replace(old, columns=replace(old.columns, overlaps=True))
        bumped = bump_changed_groups(old, new)
        assert bumped.version(OptionGroup.COLUMNS) == 1
        assert bumped.version(OptionGroup.INPUT) == 0

    def test_animation_and_width_do_not_bump(self) -> None:
        old = ViewOptions()
        new = old.with_drawing(anim_go=False, width_px=640)
        assert bump_changed_groups(old, new).version(OptionGroup.DRAWING) == 0

    def test_already_bumped_group_is_left_alone(self) -> None:
        old = ViewOptions()
        new = old.with_drawing(height_px=400, refresh_index=5)
        assert bump_changed_groups(old, new).version(OptionGroup.DRAWING) == 5


class TestViewportOptions:
    def test_normalises_what_the_journal_ignores(self) -> None:
        """Refresh indices, animation flags and width don't reach the journal."""
        a = invalidate(ViewOptions().with_drawing(height_px=500, width_px=800), [IN, L1])
        b = ViewOptions().with_drawing(height_px=500, width_px=300, anim_go=False)
        assert viewport_options(a) == viewport_options(b)

    def test_keeps_content(self) -> None:
        a = ViewOptions().with_drawing(height_px=500)
        assert viewport_options(a) != viewport_options(a.with_drawing(height_px=600))


class TestSynapseOptions:
    def test_default_filter(self) -> None:
        """Growing and active synapses show; inactive and disconnected don't."""
        opts = SynapseOptions()
        assert opts.shows(SynapseState.ACTIVE)
        assert opts.shows(SynapseState.GROWING)
        assert not opts.shows(SynapseState.INACTIVE)
        assert not opts.shows(SynapseState.DISCONNECTED)

    def test_active_always_shows(self) -> None:
        opts = SynapseOptions(growing=False, inactive=True, disconnected=True)
        assert opts.shows(SynapseState.ACTIVE)
        assert not opts.shows(SynapseState.GROWING)
        assert opts.shows(SynapseState.INACTIVE)
        assert opts.shows(SynapseState.DISCONNECTED)


class TestValidation:
    def test_draw_steps_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ViewOptions().with_drawing(draw_steps=0)

    def test_keep_steps_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ViewOptions(keep_steps=0)
