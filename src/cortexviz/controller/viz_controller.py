"""
Viz Controller
==============
Connects store notifications to their dependents.

Why is this file needed?
------------------------
Derived state (layouts, image caches, viewport registration, fetched
responses) must follow the primary state (template, options, selection,
steps) deterministically. Each handler here reacts to one kind of change:

- template changed  -> fresh layouts, new viewport
- options changed   -> rebuilt layouts (drawing changes), new viewport
- layouts changed   -> new viewport if the visible ids moved
- selection changed -> dt offsets, synapse and cell/segment fetches
- steps changed     -> per-step fetches, cache pruning, selection clamped
- step data merged  -> that step's overlay images dropped
- token changed     -> re-fetch everything under the new token
"""
from __future__ import annotations

import logging
from typing import Mapping

from PySide6.QtCore import QObject

from cortexviz.app.state import VizStore
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.model import layout as lay
from cortexviz.model.layout import Layout
from cortexviz.model.options import ViewOptions
from cortexviz.model.paths import LayoutPath, StepTemplate
from cortexviz.model.selection import Selection, clamp_to_steps, top
from cortexviz.model.steps import Step
from cortexviz.view.draw_cache import DrawCache

logger = logging.getLogger(__name__)


class VizController(QObject):
    def __init__(
        self,
        store: VizStore,
        coordinator: FetchCoordinator,
        cache: DrawCache,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.store = store
        self.coordinator = coordinator
        self.cache = cache

        store.step_template_changed.connect(self._on_template_changed)
        store.options_changed.connect(self._on_options_changed)
        store.layouts_changed.connect(self._on_layouts_changed)
        store.selection_changed.connect(self._on_selection_changed)
        store.steps_changed.connect(self._on_steps_changed)
        coordinator.step_data_changed.connect(self.cache.drop_step)
        coordinator.token_changed.connect(self._on_token_changed)

    def push_viewport(self) -> None:
        template = self.store.step_template
        if template is None:
            return
        self.coordinator.push_new_viewport(template.paths(), self.store.layouts, self.store.options)

    # ------------------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------------------

    def _on_template_changed(self, template: StepTemplate) -> None:
        logger.info(f"Step template changed: {len(template.paths())} layouts.")
        self.cache.reset_layouts()
        layouts = lay.init_layouts(template, self.store.options)
        sel_dt = top(self.store.selection).dt
        self.store.set_layouts(lay.update_dt_offsets(layouts, sel_dt, self.store.options))
        self.push_viewport()

    def _on_options_changed(self, old: ViewOptions, new: ViewOptions) -> None:
        template = self.store.step_template
        if template is not None and _geometry_changed(old, new):
            self.cache.reset_layouts()
            layouts = lay.rebuild(self.store.layouts, template, new)
            self.store.set_layouts(lay.update_dt_offsets(layouts, top(self.store.selection).dt, new))
        self.push_viewport()

    def _on_layouts_changed(
        self,
        old: Mapping[LayoutPath, Layout],
        new: Mapping[LayoutPath, Layout],
    ) -> None:
        if old and lay.ids_onscreen_changed(old, new):
            self.push_viewport()

    def _on_selection_changed(self, old: Selection, new: Selection) -> None:
        dt = top(new).dt
        if dt != top(old).dt:
            self.store.set_layouts(lay.update_dt_offsets(self.store.layouts, dt, self.store.options))
        self.coordinator.fetch_ff_synapses(new, self.store.options)
        self.coordinator.fetch_cell_segments(new)

    def _on_steps_changed(self, steps: tuple[Step, ...]) -> None:
        self.coordinator.absorb_new_steps(steps)
        self.cache.prune_steps(steps)
        self.store.set_selection(clamp_to_steps(self.store.selection, steps))

    def _on_token_changed(self, old_token, new_token) -> None:
        logger.debug(f"Viewport token {old_token!r} -> {new_token!r}; fetching everything.")
        self.coordinator.fetch_everything(self.store.steps, self.store.selection, self.store.options)


# Drawing fields that don't move anything on the canvas.
_NON_GEOMETRY = ("anim_go", "anim_every", "width_px", "refresh_index")


def _geometry_changed(old: ViewOptions, new: ViewOptions) -> bool:
    a, b = old.drawing, new.drawing
    return any(
        getattr(a, name) != getattr(b, name)
        for name in a.__dataclass_fields__ if name not in _NON_GEOMETRY
    )
