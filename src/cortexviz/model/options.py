"""
View Options
============
Immutable option tree controlling what the canvas draws and how.

Options are grouped; three groups (input, columns, drawing) carry a
monotonically increasing ``refresh_index`` which serves as the version
number cached images are validated against (see view.draw_cache).
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import StrEnum
from typing import Iterable

from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import SynapseState


class DisplayMode(StrEnum):
    """ONE_D lays time out horizontally; TWO_D draws a single step spatially."""
    ONE_D = "one-d"
    TWO_D = "two-d"


class SynapseScope(StrEnum):
    ALL = "all"
    SELECTED = "selected"
    NONE = "none"


class OptionGroup(StrEnum):
    INPUT = "input"
    COLUMNS = "columns"
    DRAWING = "drawing"


class Overlay(StrEnum):
    """Independently toggleable, independently cached overlay channels."""
    ACTIVE_BITS = "active-bits"
    PREDICTED_BITS = "predicted-bits"
    OVERLAPS = "overlaps"
    BOOSTS = "boosts"
    ACTIVE_FREQ = "active-freq"
    N_SEGMENTS = "n-segments"
    ACTIVE_COLUMNS = "active-columns"
    PREDICTED_COLUMNS = "predicted-columns"
    TEMPORAL_POOLING = "temporal-pooling"


@dataclass(frozen=True)
class InputOptions:
    active: bool = True
    predicted: bool = True
    refresh_index: int = 0


@dataclass(frozen=True)
class ColumnOptions:
    active: bool = True
    overlaps: bool = False
    boosts: bool = False
    active_freq: bool = False
    n_segments: bool = False
    predictive: bool = True
    temporal_pooling: bool = True
    refresh_index: int = 0


@dataclass(frozen=True)
class SynapseOptions:
    """
    Which synapses are drawn. The journal receives these with the viewport
    and may filter on its side; `shows` applies the same state filter to
    whatever comes back. Active synapses are always shown.
    """
    scope: SynapseScope = SynapseScope.SELECTED
    growing: bool = True
    inactive: bool = False
    disconnected: bool = False
    permanences: bool = True

    def shows(self, state: SynapseState) -> bool:
        if state == SynapseState.GROWING:
            return self.growing
        if state == SynapseState.INACTIVE:
            return self.inactive
        if state == SynapseState.DISCONNECTED:
            return self.disconnected
        return True


@dataclass(frozen=True)
class DrawingOptions:
    display_mode: DisplayMode = DisplayMode.ONE_D
    draw_steps: int = 16
    height_px: int | None = None  # set on resize
    width_px: int | None = None  # set on resize
    top_px: int = 30
    bit_w_px: int = 4
    bit_h_px: int = 3
    bit_shrink: float = 0.85
    col_d_px: int = 5
    col_shrink: float = 0.85
    cell_r_px: int = 10
    seg_w_px: int = 30
    seg_h_px: int = 8
    seg_h_space_px: int = 55
    h_space_px: int = 45
    anim_go: bool = True
    anim_every: int = 1
    refresh_index: int = 0

    def __post_init__(self) -> None:
        if self.draw_steps < 1:
            raise ValueError(f"draw_steps must be positive, got {self.draw_steps}.")
        if self.anim_every < 1:
            raise ValueError(f"anim_every must be positive, got {self.anim_every}.")


@dataclass(frozen=True)
class ViewOptions:
    input: InputOptions = field(default_factory=InputOptions)
    columns: ColumnOptions = field(default_factory=ColumnOptions)
    ff_synapses: SynapseOptions = field(default_factory=SynapseOptions)
    distal_synapses: SynapseOptions = field(default_factory=SynapseOptions)
    keep_steps: int = 50
    drawing: DrawingOptions = field(default_factory=DrawingOptions)

    def __post_init__(self) -> None:
        if self.keep_steps < 1:
            raise ValueError(f"keep_steps must be positive, got {self.keep_steps}.")

    def group(self, group: OptionGroup) -> InputOptions | ColumnOptions | DrawingOptions:
        return getattr(self, str(group))

    def version(self, group: OptionGroup) -> int:
        return self.group(group).refresh_index

    def versions(self, groups: Iterable[OptionGroup]) -> tuple[int, ...]:
        return tuple(self.version(g) for g in sorted(groups))

    def with_drawing(self, **changes) -> ViewOptions:
        return replace(self, drawing=replace(self.drawing, **changes))


def path_group(path: LayoutPath) -> OptionGroup:
    """The option group whose version covers images of this path."""
    return OptionGroup.INPUT if path.is_input else OptionGroup.COLUMNS


def _bump(options: ViewOptions, group: OptionGroup) -> ViewOptions:
    current = options.group(group)
    bumped = replace(current, refresh_index=current.refresh_index + 1)
    return replace(options, **{str(group): bumped})


def invalidate(options: ViewOptions, paths: Iterable[LayoutPath]) -> ViewOptions:
    """
    Bump the version of every group covering one of ``paths``.

    Invalidation is per group, not per path: scrolling one input layout
    invalidates the cached images of every input layout.
    """
    groups = {path_group(p) for p in paths}
    for group in sorted(groups):
        options = _bump(options, group)
    return options


# Fields that never affect a rendered image.
_UNVERSIONED = frozenset({"refresh_index", "anim_go", "anim_every", "width_px"})


def _content(group_options) -> tuple:
    return tuple(
        getattr(group_options, f.name) for f in fields(group_options)
        if f.name not in _UNVERSIONED
    )


def bump_changed_groups(old: ViewOptions, new: ViewOptions) -> ViewOptions:
    """
    Make sure every versioned group whose content changed between ``old`` and
    ``new`` has a strictly greater version than before.
    """
    for group in OptionGroup:
        before, after = old.group(group), new.group(group)
        if _content(before) != _content(after) and after.refresh_index <= before.refresh_index:
            new = replace(new, **{str(group): replace(after, refresh_index=before.refresh_index + 1)})
    return new


def viewport_options(options: ViewOptions) -> ViewOptions:
    """
    The part of the options that is registered with the journal.

    Refresh indices, animation flags and the canvas width don't change what
    data the journal serves, so they are normalised away. Content options
    (e.g. showing overlaps) are kept, so toggling one re-registers the
    viewport even when no scroll position or ordering moved.
    """
    return replace(
        options,
        input=replace(options.input, refresh_index=0),
        columns=replace(options.columns, refresh_index=0),
        drawing=replace(options.drawing, refresh_index=0, anim_go=True, anim_every=1, width_px=None),
    )
