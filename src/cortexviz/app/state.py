from __future__ import annotations

import logging
from typing import Mapping, Sequence

from PySide6.QtCore import QObject, Signal

from cortexviz.model.layout import Layout
from cortexviz.model.options import OptionGroup, ViewOptions, bump_changed_groups
from cortexviz.model.paths import LayoutPath, StepTemplate
from cortexviz.model.selection import BLANK_SELECTION, Selection
from cortexviz.model.steps import Step

logger = logging.getLogger(__name__)


class VizStore(QObject):
    """
    Central state store with signals for canvas/controller sync.

    Every setter replaces a value wholesale (values are immutable) and emits
    ``(old, new)`` so watchers can diff. Nothing else holds a writable
    reference to this state.
    """
    steps_changed = Signal(object)
    step_template_changed = Signal(object)
    options_changed = Signal(object, object)
    layouts_changed = Signal(object, object)
    selection_changed = Signal(object, object)

    def __init__(self, options: ViewOptions | None = None) -> None:
        super().__init__()
        self._steps: tuple[Step, ...] = ()
        self._step_template: StepTemplate | None = None
        self._options = options or ViewOptions()
        self._layouts: dict[LayoutPath, Layout] = {}
        self._selection: Selection = BLANK_SELECTION

    # ---- read access ----

    @property
    def steps(self) -> tuple[Step, ...]:
        """Retained steps, most recent first (index == dt)."""
        return self._steps

    @property
    def step_template(self) -> StepTemplate | None:
        return self._step_template

    @property
    def options(self) -> ViewOptions:
        return self._options

    @property
    def layouts(self) -> Mapping[LayoutPath, Layout]:
        return self._layouts

    @property
    def selection(self) -> Selection:
        return self._selection

    # ---- steps feed ----

    def add_step(self, step: Step) -> None:
        """Admit the newest step from the feed, dropping beyond the retention window."""
        self.set_steps((step,) + self._steps)

    def set_steps(self, steps: Sequence[Step]) -> None:
        kept = tuple(steps)[:self._options.keep_steps]
        if kept == self._steps:
            return
        self._steps = kept
        self.steps_changed.emit(self._steps)

    # ---- template / options / layouts / selection ----

    def set_step_template(self, template: StepTemplate) -> None:
        self._step_template = template
        self.step_template_changed.emit(template)

    def set_options(self, options: ViewOptions) -> None:
        old = self._options
        new = bump_changed_groups(old, options)
        if new == old:
            return
        self._options = new
        logger.debug(f"Options changed; versions {new.versions(OptionGroup)}.")
        self.options_changed.emit(old, new)
        if new.keep_steps < len(self._steps):
            self.set_steps(self._steps)

    def update_drawing(self, **changes) -> None:
        self.set_options(self._options.with_drawing(**changes))

    def set_layouts(self, layouts: Mapping[LayoutPath, Layout]) -> None:
        old = self._layouts
        self._layouts = dict(layouts)
        self.layouts_changed.emit(old, self._layouts)

    def set_selection(self, selection: Selection) -> None:
        if not selection:
            raise ValueError("Selection must hold at least one entry.")
        old = self._selection
        if tuple(selection) == old:
            return
        self._selection = tuple(selection)
        self.selection_changed.emit(old, self._selection)

    def toggle_animation(self) -> None:
        self.update_drawing(anim_go=not self._options.drawing.anim_go)
