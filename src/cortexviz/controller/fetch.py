"""
Viewport & Fetch Coordinator
============================
Issues asynchronous requests to the journal and merges their replies.

Why is this file needed?
------------------------
1. Scoping: The journal only serves data for what is on screen. The
   coordinator registers a viewport (options + visible ids per layout) and
   scopes every request with the returned token.
2. Staleness: Replies may arrive late or never. Each reply is checked
   against the live relevance set (or its request generation) before it is
   merged; anything superseded is dropped. Nothing is retried or aborted.
3. Notification: Every merge emits ``responses_changed`` so the canvas can
   redraw.

All state here is touched only from the UI thread.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from PySide6.QtCore import QObject, Signal

from cortexviz.controller.journal import Journal, JournalCommand, PendingReply
from cortexviz.model.layout import Layout
from cortexviz.model.options import SynapseScope, ViewOptions, viewport_options
from cortexviz.model.paths import LayoutPath
from cortexviz.model.responses import CellInfo, Synapse, TargetKey, parse_cell_segments, parse_ff_synapses
from cortexviz.model.selection import Selection, SelectionKey
from cortexviz.model.steps import InbitsCols, Step

logger = logging.getLogger(__name__)

FFSynapses = dict[TargetKey, tuple[Synapse, ...]]


class FetchCoordinator(QObject):
    responses_changed = Signal()
    step_data_changed = Signal(object)  # step whose payload was replaced
    token_changed = Signal(object, object)  # (old token, new token)

    def __init__(self, journal: Journal | None = None, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.journal = journal

        self.viewport_token: Any = None
        self._viewport_generation = 0
        self._last_viewport: tuple | None = None

        # feed-forward synapses, keyed by dt-stripped selection entry
        self.ff_in_synapses: dict[SelectionKey, FFSynapses] = {}
        self.ff_out_synapses: dict[SelectionKey, FFSynapses] = {}
        self._ff_relevant: set[SelectionKey] = set()

        self.cell_segments: tuple[SelectionKey, dict[int, CellInfo]] | None = None
        self._cell_generation = 0

        # None until the step's payload arrives
        self.steps_data: dict[Step, InbitsCols | None] = {}
        self._step_generations: dict[Step, int] = {}
        self._step_generation = 0

    # ------------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------------

    def set_journal(self, journal: Journal | None) -> None:
        self.journal = journal
        self._last_viewport = None

    def inbits_cols(self, step: Step) -> InbitsCols | None:
        return self.steps_data.get(step)

    def active_ids(self, step: Step, path: LayoutPath) -> list[int]:
        data = self.steps_data.get(step)
        return data.active_ids(path) if data is not None else []

    def ff_synapses(self) -> dict[str, dict[SelectionKey, FFSynapses]]:
        """Immutable-enough snapshot of both synapse caches."""
        return {"in": dict(self.ff_in_synapses), "out": dict(self.ff_out_synapses)}

    # ---- steps ----

    def absorb_new_steps(self, steps: Sequence[Step]) -> None:
        """Track newly seen steps, forget dropped ones, fetch the new ones."""
        live = set(steps)
        for step in [s for s in self.steps_data if s not in live]:
            del self.steps_data[step]
            self._step_generations.pop(step, None)
        new_steps = [s for s in steps if s not in self.steps_data]
        for step in new_steps:
            self.steps_data[step] = None
        if self.viewport_token is not None:
            self.fetch_inbits_cols(new_steps)

    def fetch_inbits_cols(self, steps: Iterable[Step]) -> None:
        if self.journal is None:
            return
        for step in steps:
            self._step_generation += 1
            self._step_generations[step] = self._step_generation
            reply = PendingReply(self._step_generation, lambda gen, value, step=step: self._merge_step(step, gen, value))
            self.journal.send(JournalCommand.GET_INBITS_COLS, step.model_id, self.viewport_token, reply=reply)

    def _merge_step(self, step: Step, generation: int, value: Any) -> None:
        if self._step_generations.get(step) != generation:
            logger.debug(f"Discarding stale inbits-cols reply for timestep {step.timestep}.")
            return
        replaced = self.steps_data.get(step) is not None
        self.steps_data[step] = InbitsCols.from_dict(value)
        if replaced:
            self.step_data_changed.emit(step)
        self.responses_changed.emit()

    # ---- feed-forward synapses ----

    def fetch_ff_synapses(self, selection: Selection, options: ViewOptions) -> None:
        """
        Request synapses for every selection entry. Cached responses of
        entries no longer selected are pruned before the new requests go out.
        """
        keys = [entry.key() for entry in selection]
        self._ff_relevant = set(keys)
        self.ff_in_synapses = {k: v for k, v in self.ff_in_synapses.items() if k in self._ff_relevant}
        self.ff_out_synapses = {k: v for k, v in self.ff_out_synapses.items() if k in self._ff_relevant}
        if self.journal is None or self.viewport_token is None:
            return

        scope = options.ff_synapses.scope
        for entry, key in zip(selection, keys):
            layer = entry.layer()
            if layer is not None:
                rgn_id, lyr_id = layer
                if scope == SynapseScope.ALL:
                    wanted, only_ids = True, None
                elif scope == SynapseScope.SELECTED and entry.bit is not None:
                    wanted, only_ids = True, [entry.bit]
                else:
                    wanted, only_ids = False, None
                if wanted:
                    reply = PendingReply(0, lambda _, value, key=key: self._merge_ff("in", key, value))
                    self.journal.send(
                        JournalCommand.GET_FF_IN_SYNAPSES,
                        entry.model_id, rgn_id, lyr_id, only_ids, self.viewport_token,
                        reply=reply,
                    )
            inp_id = entry.input()
            if inp_id is not None and entry.bit is not None:
                reply = PendingReply(0, lambda _, value, key=key: self._merge_ff("out", key, value))
                self.journal.send(
                    JournalCommand.GET_FF_OUT_SYNAPSES,
                    entry.model_id, inp_id, entry.bit, self.viewport_token,
                    reply=reply,
                )

    def _merge_ff(self, direction: str, key: SelectionKey, value: Any) -> None:
        if key not in self._ff_relevant:
            logger.debug(f"Discarding ff-{direction}-synapses reply for a deselected entry.")
            return
        cache = self.ff_in_synapses if direction == "in" else self.ff_out_synapses
        cache[key] = parse_ff_synapses(value)
        self.responses_changed.emit()

    # ---- cells & segments ----

    def fetch_cell_segments(self, selection: Selection) -> None:
        """Only a sole layer entry with a positive id qualifies."""
        self._cell_generation += 1
        sel1 = selection[0] if len(selection) == 1 else None
        layer = sel1.layer() if sel1 is not None else None
        if layer is None or not sel1.bit:
            if self.cell_segments is not None:
                self.cell_segments = None
                self.responses_changed.emit()
            return
        if self.journal is None or self.viewport_token is None:
            return
        rgn_id, lyr_id = layer
        key = sel1.key()
        reply = PendingReply(
            self._cell_generation,
            lambda gen, value: self._merge_cell_segments(key, gen, value),
        )
        self.journal.send(
            JournalCommand.GET_CELL_SEGMENTS,
            sel1.model_id, rgn_id, lyr_id, sel1.bit, sel1.cell_seg, self.viewport_token,
            reply=reply,
        )

    def _merge_cell_segments(self, key: SelectionKey, generation: int, value: Any) -> None:
        if generation != self._cell_generation:
            logger.debug("Discarding superseded cell-segments reply.")
            return
        self.cell_segments = (key, parse_cell_segments(value))
        self.responses_changed.emit()

    # ---- viewport ----

    def push_new_viewport(
        self,
        paths: Iterable[LayoutPath],
        layouts: Mapping[LayoutPath, Layout],
        options: ViewOptions,
    ) -> bool:
        """
        Register (options, visible ids per path) with the journal unless the
        same pair is already registered. Returns True if a request was sent.
        """
        if self.journal is None:
            return False
        path_to_ids = {
            path: tuple(int(i) for i in layouts[path].ids_onscreen())
            for path in paths if path in layouts
        }
        viewport = (viewport_options(options), path_to_ids)
        if viewport == self._last_viewport:
            return False
        self._last_viewport = viewport
        self._viewport_generation += 1
        logger.info(f"Registering viewport #{self._viewport_generation} over {len(path_to_ids)} layouts.")
        reply = PendingReply(self._viewport_generation, self._on_token)
        self.journal.send(JournalCommand.REGISTER_VIEWPORT, viewport[0], path_to_ids, reply=reply)
        return True

    def _on_token(self, generation: int, token: Any) -> None:
        if generation != self._viewport_generation:
            logger.debug(f"Viewport #{generation} superseded, unregistering it.")
            if self.journal is not None:
                self.journal.send(JournalCommand.UNREGISTER_VIEWPORT, token)
            return
        old_token, self.viewport_token = self.viewport_token, token
        self.token_changed.emit(old_token, token)
        if old_token is not None and self.journal is not None:
            self.journal.send(JournalCommand.UNREGISTER_VIEWPORT, old_token)

    def fetch_everything(self, steps: Sequence[Step], selection: Selection, options: ViewOptions) -> None:
        """Re-issue all three fetch kinds under the current token."""
        for step in steps:
            self.steps_data.setdefault(step, None)
        self.fetch_inbits_cols(steps)
        self.fetch_ff_synapses(selection, options)
        self.fetch_cell_segments(selection)
