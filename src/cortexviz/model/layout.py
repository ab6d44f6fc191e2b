"""
Layout Registry
===============
Positions element ids in space and time for every input and (region, layer).

Why is this file needed?
------------------------
1. Geometry: Each layout knows where element ``id`` at relative time ``dt``
   lands on the canvas, and the inverse (which ``(dt, id)`` is under a pixel).
2. Ordering: Ids are drawn in the order of a permutation which the user can
   re-sort by recent activity, pin into facets, and scroll through.
3. Stability: When sizing options change, geometry is rebuilt but the
   ordering, facets and scroll offset carry over.

All layouts are immutable; every operation returns a new Layout.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Iterable, Mapping, NamedTuple, Sequence, TYPE_CHECKING

import numpy as np

from cortexviz.model.options import DisplayMode, ViewOptions
from cortexviz.model.paths import LayoutPath, StepTemplate, Topology, topology_size

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

# Left margin of the first layout.
LEFT_MARGIN_PX = 20


class Rect(NamedTuple):
    x: float
    y: float
    w: float
    h: float


# -------------------------------------------------------------------------------
# Geometry
# -------------------------------------------------------------------------------

@dataclass(frozen=True)
class GridGeometry:
    """Pixel geometry of one layout, independent of ordering and scroll."""
    dims: Topology
    display_mode: DisplayMode
    left: float
    top: float
    height: float
    element_w: float
    element_h: float
    shrink: float
    draw_steps: int
    circles: bool

    @property
    def n_elements(self) -> int:
        return topology_size(self.dims)

    @property
    def grid_w(self) -> int:
        """Elements per row in two-d mode."""
        if len(self.dims) == 2:
            return self.dims[0]
        return max(1, math.ceil(math.sqrt(self.n_elements)))

    @property
    def n_onscreen(self) -> int:
        rows = max(0, int(self.height // self.element_h)) if self.element_h > 0 else 0
        if self.display_mode == DisplayMode.ONE_D:
            return min(self.n_elements, rows)
        return min(self.n_elements, rows * self.grid_w)

    @property
    def width(self) -> float:
        if self.n_elements == 0:
            return 0.0
        if self.display_mode == DisplayMode.ONE_D:
            return self.draw_steps * self.element_w
        return self.grid_w * self.element_w

    @property
    def right(self) -> float:
        return self.left + self.width


def grid_geometry(
    dims: Topology,
    top: float,
    left: float,
    height: float,
    options: ViewOptions,
    inbits: bool,
) -> GridGeometry:
    d_opts = options.drawing
    if inbits:
        element_w, element_h, shrink = d_opts.bit_w_px, d_opts.bit_h_px, d_opts.bit_shrink
    else:
        element_w = element_h = d_opts.col_d_px
        shrink = d_opts.col_shrink
    return GridGeometry(
        dims=tuple(dims),
        display_mode=d_opts.display_mode,
        left=left,
        top=top,
        height=max(0.0, height),
        element_w=element_w,
        element_h=element_h,
        shrink=shrink,
        draw_steps=d_opts.draw_steps,
        circles=not inbits,
    )


# -------------------------------------------------------------------------------
# Orderable layout
# -------------------------------------------------------------------------------

@dataclass(frozen=True)
class Facet:
    """A saved group of ids, pinned together at the top of the ordering."""
    ids: tuple[int, ...]
    timestep: int


def _identity_order(n: int) -> npt.NDArray[np.int64]:
    order = np.arange(n, dtype=np.int64)
    order.setflags(write=False)
    return order


def _order_from_ids(ids_by_position: Sequence[int]) -> npt.NDArray[np.int64]:
    """Invert a position -> id listing into an id -> position permutation."""
    ids = np.asarray(ids_by_position, dtype=np.int64)
    order = np.empty_like(ids)
    order[ids] = np.arange(ids.size, dtype=np.int64)
    order.setflags(write=False)
    return order


@dataclass(frozen=True, eq=False)
class Layout:
    """
    A grid geometry plus the user-controlled view of its ids.

    ``order[id]`` is the display position of ``id``; it is always a
    bijection over ``range(size)``.
    """
    path: LayoutPath
    geometry: GridGeometry
    order: npt.NDArray[np.int64]
    scroll_top: int = 0
    dt_offset: int = 0
    facets: tuple[Facet, ...] = field(default_factory=tuple)

    # ---- basic properties ----

    @property
    def size(self) -> int:
        return self.geometry.n_elements

    @property
    def is_input(self) -> bool:
        return self.path.is_input

    @property
    def is_one_d(self) -> bool:
        return self.geometry.display_mode == DisplayMode.ONE_D

    @property
    def scroll_position(self) -> int:
        return self.scroll_top

    @property
    def n_onscreen(self) -> int:
        """Number of ids currently visible, accounting for the last page."""
        return max(0, min(self.geometry.n_onscreen, self.size - self.scroll_top))

    @property
    def right_px(self) -> float:
        return self.geometry.right

    @cached_property
    def ids_by_position(self) -> npt.NDArray[np.int64]:
        ids = np.argsort(self.order, kind="stable")
        ids.setflags(write=False)
        return ids

    def bounds(self) -> Rect:
        g = self.geometry
        return Rect(g.left, g.top, g.width, g.height)

    def frame_size(self) -> tuple[int, int]:
        """Pixel size of the image holding one timestep of this layout."""
        g = self.geometry
        if self.is_one_d:
            return int(math.ceil(g.element_w)), int(math.ceil(g.height))
        return int(math.ceil(g.width)), int(math.ceil(g.height))

    def position_of(self, element_id: int) -> int:
        return int(self.order[element_id])

    def id_at(self, position: int) -> int:
        return int(self.ids_by_position[position])

    def ids_onscreen(self) -> npt.NDArray[np.int64]:
        return self.ids_by_position[self.scroll_top:self.scroll_top + self.n_onscreen]

    def id_onscreen(self, element_id: int) -> bool:
        if not 0 <= element_id < self.size:
            return False
        pos = self.position_of(element_id)
        return self.scroll_top <= pos < self.scroll_top + self.n_onscreen

    def visible_state(self) -> tuple[int, bytes]:
        """Snapshot of what decides the visible ids: (scroll, ordering)."""
        return self.scroll_top, self.order.tobytes()

    # ---- geometry ----

    def origin_px_topleft(self, dt: int) -> tuple[float, float]:
        """Top-left pixel of the frame for relative time ``dt``."""
        g = self.geometry
        if not self.is_one_d:
            return g.left, g.top
        off_x = (dt - self.dt_offset + 1) * g.element_w
        return g.right - off_x, g.top

    def local_px_topleft(self, element_id: int) -> tuple[float, float]:
        """Top-left of an element's cell, relative to the frame origin."""
        g = self.geometry
        k = self.position_of(element_id) - self.scroll_top
        if self.is_one_d:
            return 0.0, k * g.element_h
        return (k % g.grid_w) * g.element_w, (k // g.grid_w) * g.element_h

    def local_positions(self, ids: Iterable[int]) -> npt.NDArray[np.float64]:
        """Vectorised ``local_px_topleft`` over the onscreen subset of ``ids``.

        Returns an (N, 3) array of (id, x, y).
        """
        g = self.geometry
        ids = np.fromiter((int(i) for i in ids), dtype=np.int64)
        ids = ids[(ids >= 0) & (ids < self.size)]
        k = self.order[ids] - self.scroll_top
        keep = (k >= 0) & (k < self.n_onscreen)
        ids, k = ids[keep], k[keep]
        if self.is_one_d:
            xs = np.zeros(k.size, dtype=np.float64)
            ys = k * g.element_h
        else:
            xs = (k % g.grid_w) * g.element_w
            ys = (k // g.grid_w) * g.element_h
        return np.column_stack([ids, xs, ys]).astype(np.float64)

    def element_rect(self, element_id: int, dt: int) -> Rect:
        g = self.geometry
        ox, oy = self.origin_px_topleft(dt)
        lx, ly = self.local_px_topleft(element_id)
        return Rect(ox + lx, oy + ly, g.element_w, g.element_h)

    def element_xy(self, element_id: int, dt: int) -> tuple[float, float]:
        """Centre pixel of an element at relative time ``dt``."""
        x, y, w, h = self.element_rect(element_id, dt)
        return x + w * 0.5, y + h * 0.5

    def clicked_id(self, x: float, y: float) -> tuple[int, int] | None:
        """The ``(dt, id)`` under pixel ``(x, y)``, or None."""
        g = self.geometry
        if self.size == 0 or g.element_w <= 0 or g.element_h <= 0:
            return None
        if self.is_one_d:
            if not (g.left <= x < g.right):
                return None
            dt_local = int((g.right - x) // g.element_w)
            k = math.floor((y - g.top) / g.element_h)
            if not 0 <= dt_local < g.draw_steps:
                return None
        else:
            if not (g.left <= x < g.right) or y < g.top:
                return None
            col = int((x - g.left) // g.element_w)
            row = int((y - g.top) // g.element_h)
            k = row * g.grid_w + col
            dt_local = 0
        if not 0 <= k < self.n_onscreen:
            return None
        return dt_local + self.dt_offset, self.id_at(self.scroll_top + k)


def empty_layout(path: LayoutPath, geometry: GridGeometry) -> Layout:
    return Layout(path=path, geometry=geometry, order=_identity_order(geometry.n_elements))


# -------------------------------------------------------------------------------
# Registry construction
# -------------------------------------------------------------------------------

def build(step_template: StepTemplate, options: ViewOptions) -> dict[LayoutPath, GridGeometry]:
    """
    Place inputs left-to-right (template order), then every region layer.

    Pure function of its inputs; geometry only.
    """
    d_opts = options.drawing
    top = d_opts.top_px
    height = (d_opts.height_px or 0) - top
    left: float = LEFT_MARGIN_PX
    geometries: dict[LayoutPath, GridGeometry] = {}
    for path in step_template.paths():
        geometry = grid_geometry(step_template.topology(path), top, left, height, options, path.is_input)
        geometries[path] = geometry
        left = geometry.right + d_opts.h_space_px
    return geometries


def init_layouts(step_template: StepTemplate, options: ViewOptions) -> dict[LayoutPath, Layout]:
    """Fresh layouts with natural ordering, no facets and no scroll."""
    layouts = {
        path: empty_layout(path, geometry)
        for path, geometry in build(step_template, options).items()
    }
    logger.debug(f"Initialised {len(layouts)} layouts.")
    return layouts


def rebuild(
    old_layouts: Mapping[LayoutPath, Layout],
    step_template: StepTemplate,
    options: ViewOptions,
) -> dict[LayoutPath, Layout]:
    """
    Recompute geometry only; re-attach each path's ordering, facets, scroll
    and dt offset. Paths new to the template start fresh.
    """
    layouts: dict[LayoutPath, Layout] = {}
    for path, geometry in build(step_template, options).items():
        old = old_layouts.get(path)
        if old is not None and old.size == geometry.n_elements:
            layouts[path] = replace(old, geometry=geometry)
        else:
            layouts[path] = empty_layout(path, geometry)
    return layouts


# -------------------------------------------------------------------------------
# Ordering, facets, scroll
# -------------------------------------------------------------------------------

def _faceted_ids(layout: Layout) -> list[int]:
    return [i for facet in layout.facets for i in facet.ids]


def sort_by_recent_activity(layout: Layout, ids_ts: Sequence[Iterable[int]]) -> Layout:
    """
    Re-order ids by activity over a window of steps, most recent first.

    ``ids_ts[0]`` holds the active ids of the most recent step in the window.
    Faceted ids keep their pinned positions; the remaining ids are ranked by
    the most recent step they were active in, then by how often they were
    active, then by id.
    """
    n = layout.size
    if n == 0:
        return layout
    last_seen = np.full(n, len(ids_ts), dtype=np.int64)
    counts = np.zeros(n, dtype=np.int64)
    for t in range(len(ids_ts) - 1, -1, -1):
        ids = np.fromiter((int(i) for i in ids_ts[t]), dtype=np.int64)
        ids = np.unique(ids[(ids >= 0) & (ids < n)])
        last_seen[ids] = t
        counts[ids] += 1
    pinned = _faceted_ids(layout)
    free = np.setdiff1d(np.arange(n, dtype=np.int64), np.asarray(pinned, dtype=np.int64))
    # lexsort uses the last key as primary
    ranked = free[np.lexsort((free, -counts[free], last_seen[free]))]
    return replace(layout, order=_order_from_ids(pinned + ranked.tolist()))


def clear_sort(layout: Layout) -> Layout:
    """Natural ordering, faceted ids still pinned first."""
    if layout.size == 0:
        return layout
    pinned = _faceted_ids(layout)
    rest = np.setdiff1d(np.arange(layout.size, dtype=np.int64), np.asarray(pinned, dtype=np.int64))
    order = _order_from_ids(pinned + rest.tolist())
    if np.array_equal(order, layout.order):
        return layout
    return replace(layout, order=order)


def add_facet(layout: Layout, active_ids: Iterable[int], timestep: int) -> Layout:
    """Pin the currently active ids below any existing facets."""
    pinned = _faceted_ids(layout)
    seen = set(pinned)
    new_ids = tuple(sorted({int(i) for i in active_ids if 0 <= int(i) < layout.size} - seen))
    if not new_ids:
        return layout
    pinned_set = seen | set(new_ids)
    rest = [int(i) for i in layout.ids_by_position if int(i) not in pinned_set]
    order = _order_from_ids(pinned + list(new_ids) + rest)
    return replace(layout, order=order, facets=layout.facets + (Facet(new_ids, timestep),))


def clear_facets(layout: Layout) -> Layout:
    if not layout.facets:
        return layout
    return replace(layout, facets=())


def facet_spans(layout: Layout) -> list[tuple[Facet, int, int]]:
    """Each facet with its [start, end) position range."""
    spans = []
    start = 0
    for facet in layout.facets:
        spans.append((facet, start, start + len(facet.ids)))
        start += len(facet.ids)
    return spans


def scroll(layout: Layout, down: bool) -> Layout:
    """Move the visible window by one page."""
    page = layout.geometry.n_onscreen
    if layout.size == 0 or page == 0:
        return layout
    n_pages = math.ceil(layout.size / page)
    if down:
        top = min(layout.scroll_top + page, page * (n_pages - 1))
    else:
        top = max(0, layout.scroll_top - page)
    if top == layout.scroll_top:
        return layout
    return replace(layout, scroll_top=top)


def update_dt_offsets(
    layouts: Mapping[LayoutPath, Layout],
    sel_dt: int,
    options: ViewOptions,
) -> dict[LayoutPath, Layout]:
    """Centre the drawn time window on the selected dt."""
    dt0 = max(0, sel_dt - options.drawing.draw_steps // 2)
    return {
        path: lay if lay.dt_offset == dt0 else replace(lay, dt_offset=dt0)
        for path, lay in layouts.items()
    }


def ids_onscreen_changed(
    before: Mapping[LayoutPath, Layout],
    after: Mapping[LayoutPath, Layout],
) -> bool:
    """True if any layout's scroll position or ordering differs."""
    if before.keys() != after.keys():
        return True
    return any(
        before[path].visible_state() != after[path].visible_state()
        for path in after
    )
