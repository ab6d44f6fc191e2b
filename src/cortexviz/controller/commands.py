"""
Command Loop
============
Serialises every mutation of shared canvas state.

Why is this file needed?
------------------------
1. Ordering: UI commands (keys, toolbar actions, clicks) are queued and
   handled one at a time, in arrival order, on the Qt event loop.
2. Isolation: Resize events go through a second, independent queue that
   only touches the drawing options.
3. Teardown: After ``teardown()`` nothing further is processed.

No other code path writes layouts, selection or options.
"""
from __future__ import annotations

import logging
from collections import deque
from enum import StrEnum
from typing import Any, Callable

from PySide6.QtCore import QObject, Qt, QTimer

from cortexviz.app.state import VizStore
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.controller.journal import SimulationDriver
from cortexviz.model import layout as lay
from cortexviz.model import selection as sel
from cortexviz.model.layout import Layout
from cortexviz.model.options import invalidate
from cortexviz.model.paths import LayoutPath

logger = logging.getLogger(__name__)


class Command(StrEnum):
    SORT = "sort"
    CLEAR_SORT = "clear-sort"
    ADD_FACET = "add-facet"
    CLEAR_FACETS = "clear-facets"
    STEP_BACKWARD = "step-backward"
    STEP_FORWARD = "step-forward"
    BIT_UP = "bit-up"
    BIT_DOWN = "bit-down"
    SCROLL_UP = "scroll-up"
    SCROLL_DOWN = "scroll-down"
    TOGGLE_RUN = "toggle-run"
    UPDATE_DRAWING = "update-drawing"
    # pointer input, routed through the loop like everything else
    CANVAS_CLICK = "canvas-click"
    TIMELINE_CLICK = "timeline-click"


KEY_TO_COMMAND: dict[Qt.Key, Command] = {
    Qt.Key.Key_Left: Command.STEP_BACKWARD,
    Qt.Key.Key_Right: Command.STEP_FORWARD,
    Qt.Key.Key_Up: Command.BIT_UP,
    Qt.Key.Key_Down: Command.BIT_DOWN,
    Qt.Key.Key_PageUp: Command.SCROLL_UP,
    Qt.Key.Key_PageDown: Command.SCROLL_DOWN,
    Qt.Key.Key_Space: Command.TOGGLE_RUN,
}

# Commands taking an apply-to-all flag.
_PATH_COMMANDS = {
    Command.SORT, Command.CLEAR_SORT, Command.ADD_FACET, Command.CLEAR_FACETS,
    Command.SCROLL_UP, Command.SCROLL_DOWN,
}


class CommandLoop(QObject):
    def __init__(
        self,
        store: VizStore,
        coordinator: FetchCoordinator,
        simulation: SimulationDriver | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.store = store
        self.coordinator = coordinator
        self.simulation = simulation
        self.apply_to_all = False

        self._commands: deque[tuple[Command, tuple]] = deque()
        self._resizes: deque[tuple[int, int]] = deque()
        self._closed = False
        self._commands_scheduled = False
        self._resizes_scheduled = False

        self._handlers: dict[Command, Callable[..., None]] = {
            Command.SORT: self._sort,
            Command.CLEAR_SORT: lambda apply_to_all: self._update_layouts(apply_to_all, lay.clear_sort),
            Command.ADD_FACET: self._add_facet,
            Command.CLEAR_FACETS: lambda apply_to_all: self._update_layouts(apply_to_all, lay.clear_facets),
            Command.STEP_BACKWARD: self._step_backward,
            Command.STEP_FORWARD: self._step_forward,
            Command.BIT_UP: lambda: self._set_selection(sel.bit_up(self.store.selection, self.store.layouts)),
            Command.BIT_DOWN: lambda: self._set_selection(sel.bit_down(self.store.selection, self.store.layouts)),
            Command.SCROLL_UP: lambda apply_to_all: self._update_layouts(apply_to_all, lambda layout: lay.scroll(layout, False)),
            Command.SCROLL_DOWN: lambda apply_to_all: self._update_layouts(apply_to_all, lambda layout: lay.scroll(layout, True)),
            Command.TOGGLE_RUN: self._toggle_run,
            Command.UPDATE_DRAWING: lambda changes: self.store.update_drawing(**changes),
            Command.CANVAS_CLICK: self._canvas_click,
            Command.TIMELINE_CLICK: self._timeline_click,
        }

    # ------------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, command: Command | str, *args: Any) -> None:
        """Queue a command; ``sort`` etc. default to the loop's apply-to-all flag."""
        if self._closed:
            return
        command = Command(command)
        if command in _PATH_COMMANDS and not args:
            args = (self.apply_to_all,)
        self._commands.append((command, args))
        if not self._commands_scheduled:
            self._commands_scheduled = True
            QTimer.singleShot(0, self._drain_commands)

    def put_resize(self, width_px: int, height_px: int) -> None:
        if self._closed:
            return
        self._resizes.append((width_px, height_px))
        if not self._resizes_scheduled:
            self._resizes_scheduled = True
            QTimer.singleShot(0, self._drain_resizes)

    def teardown(self) -> None:
        self._closed = True
        self._commands.clear()
        self._resizes.clear()
        logger.debug("Command loop torn down.")

    def process_pending(self) -> None:
        """Handle everything queued so far, synchronously."""
        while not self._closed and (self._resizes or self._commands):
            if self._resizes:
                self._apply_resize(*self._resizes.popleft())
            if self._commands:
                self._dispatch(*self._commands.popleft())

    # ------------------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------------------

    def _drain_commands(self) -> None:
        """Handle one command per event-loop turn."""
        self._commands_scheduled = False
        if self._closed or not self._commands:
            return
        self._dispatch(*self._commands.popleft())
        if self._commands and not self._commands_scheduled:
            self._commands_scheduled = True
            QTimer.singleShot(0, self._drain_commands)

    def _drain_resizes(self) -> None:
        self._resizes_scheduled = False
        if self._closed:
            return
        while self._resizes:
            self._apply_resize(*self._resizes.popleft())

    def _apply_resize(self, width_px: int, height_px: int) -> None:
        self.store.update_drawing(width_px=width_px, height_px=height_px)

    def _dispatch(self, command: Command, args: tuple) -> None:
        logger.debug(f"Command {command} {args}")
        try:
            self._handlers[command](*args)
        except (ValueError, KeyError) as e:
            logger.warning(f"Ignoring command {command}: {e}")

    # ------------------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------------------

    def _paths(self, apply_to_all: bool) -> list[LayoutPath]:
        if apply_to_all:
            return list(self.store.layouts)
        if sel.is_cleared(self.store.selection):
            logger.debug("No layout selected; nothing to apply to.")
            return []
        return [p for p in sel.selected_paths(self.store.selection) if p in self.store.layouts]

    def _update_layouts(self, apply_to_all: bool, fn: Callable[[Layout], Layout]) -> None:
        paths = self._paths(apply_to_all)
        if not paths:
            return
        layouts = dict(self.store.layouts)
        for path in paths:
            layouts[path] = fn(layouts[path])
        self.store.set_layouts(layouts)
        self.store.set_options(invalidate(self.store.options, paths))

    def _sort(self, apply_to_all: bool) -> None:
        steps = self.store.steps
        sel_dt = sel.top(self.store.selection).dt
        use_steps = max(2, self.store.options.drawing.draw_steps)
        window = steps[sel_dt:sel_dt + use_steps]

        def sort_one(layout: Layout) -> Layout:
            ids_ts = [self.coordinator.active_ids(step, layout.path) for step in window]
            return lay.sort_by_recent_activity(layout, ids_ts)

        self._update_layouts(apply_to_all, sort_one)

    def _add_facet(self, apply_to_all: bool) -> None:
        sel_dt = sel.top(self.store.selection).dt
        if not 0 <= sel_dt < len(self.store.steps):
            return
        step = self.store.steps[sel_dt]
        self._update_layouts(
            apply_to_all,
            lambda layout: lay.add_facet(layout, self.coordinator.active_ids(step, layout.path), step.timestep),
        )

    def _set_selection(self, selection: sel.Selection) -> None:
        self.store.set_selection(selection)

    def _step_backward(self) -> None:
        self._set_selection(sel.step_backward(self.store.selection, self.store.steps))

    def _step_forward(self) -> None:
        selection, advance = sel.step_forward(self.store.selection, self.store.steps)
        if advance:
            if self.simulation is not None:
                self.simulation.step()
            return
        self._set_selection(selection)

    def _toggle_run(self) -> None:
        if self.simulation is not None:
            self.simulation.toggle()

    def _canvas_click(self, x: float, y: float, append: bool, cells_layout=None) -> None:
        self._set_selection(sel.click_canvas(
            self.store.selection, self.store.layouts, self.store.steps, x, y, append, cells_layout,
        ))

    def _timeline_click(self, click_dt: int, append: bool) -> None:
        self._set_selection(sel.click_timeline(self.store.selection, self.store.steps, click_dt, append))
