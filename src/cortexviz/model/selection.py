"""
Selection State Machine
=======================
The selection is a non-empty ordered stack of entries; the last entry is the
primary (top) one. Every transition here is a pure function from the current
selection (plus read-only context) to the next selection.

A "cleared" selection still holds one entry: it keeps the top entry's time
position (dt, model id) but names no layout or element.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping, NamedTuple, Protocol, Sequence

from cortexviz.model.layout import Layout
from cortexviz.model.paths import LayoutPath
from cortexviz.model.steps import Step, max_dt


@dataclass(frozen=True)
class SelectionEntry:
    path: LayoutPath | None = None
    bit: int | None = None
    dt: int = 0
    model_id: Any = None
    cell_seg: tuple[int, int] | None = None

    def layer(self) -> tuple[str, str] | None:
        """(region id, layer id) if this entry names a layer."""
        if self.path is None or self.path.is_input:
            return None
        return self.path.source_id, self.path.layer_id

    def input(self) -> str | None:
        if self.path is None or not self.path.is_input:
            return None
        return self.path.source_id

    def key(self) -> SelectionKey:
        return SelectionKey(self.path, self.bit, self.model_id, self.cell_seg)

    def same_target(self, other: SelectionEntry) -> bool:
        return (self.path, self.bit, self.dt) == (other.path, other.bit, other.dt)


class SelectionKey(NamedTuple):
    """A selection entry without its volatile ``dt``; keys fetched responses."""
    path: LayoutPath | None
    bit: int | None
    model_id: Any
    cell_seg: tuple[int, int] | None


Selection = tuple[SelectionEntry, ...]

BLANK_SELECTION: Selection = (SelectionEntry(),)


class SegmentHitTester(Protocol):
    def clicked_seg(self, x: float, y: float) -> tuple[int, int] | None: ...


# -------------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------------

def top(selection: Selection) -> SelectionEntry:
    return selection[-1] if selection else SelectionEntry()


def replace_top(selection: Selection, entry: SelectionEntry) -> Selection:
    return tuple(selection[:-1]) + (entry,)


def clear(selection: Selection) -> Selection:
    """Forget what is selected, keep where in time we are."""
    sel1 = top(selection)
    return (SelectionEntry(dt=sel1.dt, model_id=sel1.model_id),)


def is_cleared(selection: Selection) -> bool:
    return all(entry.path is None for entry in selection)


def selected_paths(selection: Selection) -> list[LayoutPath]:
    paths: list[LayoutPath] = []
    for entry in selection:
        if entry.path is not None and entry.path not in paths:
            paths.append(entry.path)
    return paths


def _model_id_at(steps: Sequence[Step], dt: int) -> Any:
    return steps[dt].model_id if 0 <= dt < len(steps) else None


def _toggle(selection: Selection, entry: SelectionEntry, append: bool, same) -> Selection:
    if not append:
        return (entry,)
    if any(same(e) for e in selection):
        if len(selection) > 1:
            return tuple(e for e in selection if not same(e))
        return clear(selection)
    return tuple(selection) + (entry,)


# -------------------------------------------------------------------------------
# Transitions
# -------------------------------------------------------------------------------

def click_canvas(
    selection: Selection,
    layouts: Mapping[LayoutPath, Layout],
    steps: Sequence[Step],
    x: float,
    y: float,
    append: bool,
    cells_layout: SegmentHitTester | None = None,
) -> Selection:
    """
    Hit-test every layout under ``(x, y)``.

    One-d layouts pick their dt from the click position (clamped to the
    selectable range); two-d layouts inherit the top entry's dt.
    """
    hit = False
    mdt = max_dt(steps)
    for path, lay in layouts.items():
        found = lay.clicked_id(x, y)
        if found is None:
            continue
        dt, bit = found
        if lay.is_one_d:
            dt = max(0, min(dt, mdt))
        else:
            dt = top(selection).dt
        entry = SelectionEntry(path=path, bit=bit, dt=dt, model_id=_model_id_at(steps, dt))
        hit = True
        selection = _toggle(selection, entry, append, entry.same_target)

    refined = refine_segment(selection, cells_layout, x, y)
    if refined is not None:
        selection = refined
        hit = True

    if not (append or hit):
        selection = clear(selection)
    return selection


def refine_segment(
    selection: Selection,
    cells_layout: SegmentHitTester | None,
    x: float,
    y: float,
) -> Selection | None:
    """Attach the clicked (cell, segment) to a sole layer selection."""
    if cells_layout is None or len(selection) != 1:
        return None
    sel1 = selection[0]
    if sel1.layer() is None or sel1.bit is None or sel1.bit <= 0:
        return None
    ci_si = cells_layout.clicked_seg(x, y)
    if ci_si is None:
        return None
    return (replace(sel1, cell_seg=ci_si),)


def click_timeline(
    selection: Selection,
    steps: Sequence[Step],
    click_dt: int,
    append: bool,
) -> Selection:
    """Select a time position; other fields of the top entry are kept."""
    if not steps or not 0 <= click_dt <= max_dt(steps):
        return selection
    model_id = steps[click_dt].model_id
    if append:
        same_dt = lambda e: e.dt == click_dt
        entry = SelectionEntry(dt=click_dt, model_id=model_id)
        return _toggle(selection, entry, True, same_dt)
    return (replace(top(selection), dt=click_dt, model_id=model_id),)


def step_backward(selection: Selection, steps: Sequence[Step]) -> Selection:
    sel1 = top(selection)
    dt = min(sel1.dt + 1, max_dt(steps))
    return replace_top(selection, replace(sel1, dt=dt, model_id=_model_id_at(steps, dt)))


def step_forward(selection: Selection, steps: Sequence[Step]) -> tuple[Selection, bool]:
    """
    Move the top entry one step towards the present.

    Returns the new selection and whether the simulation should advance
    instead (already at the most recent step).
    """
    sel1 = top(selection)
    if sel1.dt <= 0:
        return selection, True
    dt = sel1.dt - 1
    return replace_top(selection, replace(sel1, dt=dt, model_id=_model_id_at(steps, dt))), False


def clamp_to_steps(selection: Selection, steps: Sequence[Step]) -> Selection:
    """Pull entries whose dt fell out of the retained history back to the oldest selectable step."""
    mdt = max_dt(steps)
    if all(entry.dt <= mdt for entry in selection):
        return selection
    return tuple(
        replace(entry, dt=mdt, model_id=_model_id_at(steps, mdt)) if entry.dt > mdt else entry
        for entry in selection
    )


def bit_up(selection: Selection, layouts: Mapping[LayoutPath, Layout]) -> Selection:
    """Previous id in the layout ordering; None past the first."""
    sel1 = top(selection)
    lay = layouts.get(sel1.path) if sel1.path is not None else None
    if lay is None or sel1.bit is None or not 0 <= sel1.bit < lay.size:
        return selection
    idx = lay.position_of(sel1.bit)
    next_bit = None if idx == 0 else lay.id_at(idx - 1)
    return replace_top(selection, replace(sel1, bit=next_bit, cell_seg=None))


def bit_down(selection: Selection, layouts: Mapping[LayoutPath, Layout]) -> Selection:
    """Next id in the layout ordering (the first if none); None past the last."""
    sel1 = top(selection)
    lay = layouts.get(sel1.path) if sel1.path is not None else None
    if lay is None or (sel1.bit is not None and not 0 <= sel1.bit < lay.size):
        return selection
    next_idx = lay.position_of(sel1.bit) + 1 if sel1.bit is not None else 0
    next_bit = lay.id_at(next_idx) if next_idx < lay.size else None
    return replace_top(selection, replace(sel1, bit=next_bit, cell_seg=None))
