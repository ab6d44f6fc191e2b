"""
Synthetic Journal
=================
An in-process stand-in for the remote journal, driving a toy model.

Why is this file needed?
------------------------
1. Demo: ``python -m cortexviz`` needs something to look at without a model
   server. This journal grows a random sparse sequence: one input
   ("signal", 300 bits) feeding one layer ("rgn-0"/"layer-3", 200 columns).
2. Asynchrony: Every reply is delivered on a later turn of the Qt event loop,
   exactly like a remote reply would be, so the canvas exercises its
   staleness handling for real.
3. Simulation: It also implements SimulationDriver (``step``/``toggle``),
   running on a QTimer in the UI thread.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

import numpy as np
from PySide6.QtCore import QTimer

from cortexviz.app.state import VizStore
from cortexviz.controller.journal import Journal, JournalCommand, PendingReply
from cortexviz.model.paths import LayoutPath, StepTemplate
from cortexviz.model.steps import Step

logger = logging.getLogger(__name__)

INPUT_ID = "signal"
INPUT_BITS = 300
INPUT_ACTIVE = 30
REGION_ID = "rgn-0"
LAYER_ID = "layer-3"
N_COLUMNS = 200
N_ACTIVE_COLUMNS = 8
CELLS_PER_COLUMN = 4
POOL_SIZE = 20
CONNECTED_PERM = 0.2
STIMULUS_TH = 3
LEARNING_TH = 2
BREAK_EVERY = 40
# Generated data older than this many steps is forgotten.
HISTORY = 200


class SyntheticJournal(Journal):
    def __init__(self, store: VizStore, seed: int = 0, interval_ms: int = 200) -> None:
        self.store = store
        self._rng = np.random.default_rng(seed)
        self._timestep = -1
        self._history: dict[str, dict[str, Any]] = {}
        self._order: list[str] = []
        self._viewports: dict[int, dict[LayoutPath, frozenset[int]]] = {}
        self._next_token = 1

        # Feed-forward potential pool of every column, with fixed permanences
        self._pools = np.stack([self._rng.choice(INPUT_BITS, POOL_SIZE, replace=False) for _ in range(N_COLUMNS)])
        self._perms = self._rng.uniform(0.0, 0.4, size=(N_COLUMNS, POOL_SIZE))

        self._timer = QTimer()
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.step)

        self._handlers: dict[JournalCommand, Callable[..., Any]] = {
            JournalCommand.GET_INBITS_COLS: self._inbits_cols,
            JournalCommand.GET_FF_IN_SYNAPSES: self._ff_in_synapses,
            JournalCommand.GET_FF_OUT_SYNAPSES: self._ff_out_synapses,
            JournalCommand.GET_CELL_SEGMENTS: self._cell_segments,
            JournalCommand.REGISTER_VIEWPORT: self._register_viewport,
            JournalCommand.UNREGISTER_VIEWPORT: self._unregister_viewport,
        }

    # ------------------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------------------

    @staticmethod
    def template() -> StepTemplate:
        return StepTemplate(
            inputs={INPUT_ID: (INPUT_BITS,)},
            regions={REGION_ID: {LAYER_ID: (N_COLUMNS,)}},
        )

    @property
    def running(self) -> bool:
        return self._timer.isActive()

    def start(self, n_steps: int = 3) -> None:
        """Publish the template and a few initial steps."""
        self.store.set_step_template(self.template())
        for _ in range(n_steps):
            self.step()

    def step(self) -> None:
        self._timestep += 1
        t = self._timestep
        model_id = f"model-{t}"
        prev = self._history[self._order[-1]] if self._order else None
        self._history[model_id] = self._generate(t, prev)
        self._order.append(model_id)
        while len(self._order) > HISTORY:
            self._history.pop(self._order.pop(0), None)
        self.store.add_step(Step(model_id=model_id, timestep=t))

    def toggle(self) -> None:
        if self._timer.isActive():
            self._timer.stop()
            logger.info("Simulation paused.")
        else:
            self._timer.start()
            logger.info("Simulation running.")

    def _generate(self, t: int, prev: Mapping[str, Any] | None) -> dict[str, Any]:
        # a window sliding along the input, wrapping around
        centre = int((np.sin(t / 7.0) + 1) * 0.5 * INPUT_BITS)
        bits = np.arange(centre - INPUT_ACTIVE // 2, centre + INPUT_ACTIVE // 2) % INPUT_BITS
        active_bits = np.zeros(INPUT_BITS, dtype=bool)
        active_bits[bits] = True

        overlaps = (active_bits[self._pools] & (self._perms >= CONNECTED_PERM)).sum(axis=1)
        noise = self._rng.uniform(0.0, 0.5, size=N_COLUMNS)
        active_cols = np.argsort(-(overlaps + noise), kind="stable")[:N_ACTIVE_COLUMNS]

        pred_cols: list[int] = []
        if prev is not None:
            pred_cols = [int(c) for c in prev["active_cols"] if self._rng.random() < 0.5]
        pred_bits = {int(b): float(self._rng.uniform(0.2, 1.0)) for b in bits if self._rng.random() < 0.3}
        max_overlap = max(1, int(overlaps.max()))
        boosts = self._rng.uniform(0.0, 1.0, size=N_COLUMNS)
        return {
            "t": t,
            "active_bits": sorted(int(b) for b in np.flatnonzero(active_bits)),
            "pred_bits_alpha": pred_bits,
            "active_cols": sorted(int(c) for c in active_cols),
            "pred_cols": sorted(pred_cols),
            "tp_cols": sorted(pred_cols[:2]),
            "overlaps": {int(c): float(o) / max_overlap for c, o in enumerate(overlaps) if o > 0},
            "boosts": {int(c): float(b) for c, b in enumerate(boosts) if b > 0.9},
            "break": t > 0 and t % BREAK_EVERY == 0,
        }

    # ------------------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------------------

    def send(self, command: JournalCommand, *args: Any, reply: PendingReply | None = None) -> None:
        value = self._handlers[JournalCommand(command)](*args)
        if reply is not None:
            QTimer.singleShot(0, lambda: reply.resolve(value))

    def _visible(self, token: Any, path: LayoutPath, n: int) -> frozenset[int]:
        viewport = self._viewports.get(token)
        if viewport is None or path not in viewport:
            return frozenset(range(n))
        return viewport[path]

    def _register_viewport(self, options: Any, path_to_ids: Mapping[LayoutPath, tuple[int, ...]]) -> int:
        token = self._next_token
        self._next_token += 1
        self._viewports[token] = {path: frozenset(ids) for path, ids in path_to_ids.items()}
        logger.debug(f"Registered viewport {token}.")
        return token

    def _unregister_viewport(self, token: Any) -> None:
        self._viewports.pop(token, None)
        logger.debug(f"Unregistered viewport {token}.")

    def _inbits_cols(self, model_id: str, token: Any) -> dict[str, Any] | None:
        data = self._history.get(model_id)
        if data is None:
            return None
        in_ids = self._visible(token, LayoutPath.input(INPUT_ID), INPUT_BITS)
        col_ids = self._visible(token, LayoutPath.layer(REGION_ID, LAYER_ID), N_COLUMNS)
        cols = lambda ids: [c for c in ids if c in col_ids]
        alphas = lambda m: {c: a for c, a in m.items() if c in col_ids}
        return {
            "inputs": {
                INPUT_ID: {
                    "active_bits": [b for b in data["active_bits"] if b in in_ids],
                    "pred_bits_alpha": {b: a for b, a in data["pred_bits_alpha"].items() if b in in_ids},
                },
            },
            "regions": {
                REGION_ID: {
                    LAYER_ID: {
                        "active_columns": cols(data["active_cols"]),
                        "pred_columns": cols(data["pred_cols"]),
                        "tp_columns": cols(data["tp_cols"]),
                        "overlaps_columns_alpha": alphas(data["overlaps"]),
                        "boost_columns_alpha": alphas(data["boosts"]),
                        "break": data["break"],
                    },
                },
            },
        }

    def _synapse(self, col: int, k: int, active_bits: frozenset[int]) -> dict[str, Any]:
        bit = int(self._pools[col, k])
        perm = float(self._perms[col, k])
        if perm < CONNECTED_PERM:
            state = "disconnected"
        elif bit in active_bits:
            state = "active"
        else:
            state = "inactive"
        return {"src_id": INPUT_ID, "src_col": bit, "src_lyr": None, "perm": perm, "syn_state": state}

    def _ff_in_synapses(self, model_id: str, rgn_id: str, lyr_id: str, only_ids, token: Any) -> dict | None:
        data = self._history.get(model_id)
        if data is None:
            return None
        active_bits = frozenset(data["active_bits"])
        if only_ids is None:
            visible = self._visible(token, LayoutPath.layer(rgn_id, lyr_id), N_COLUMNS)
            cols = [c for c in data["active_cols"] if c in visible]
        else:
            cols = [int(c) for c in only_ids if 0 <= int(c) < N_COLUMNS]
        return {
            (rgn_id, lyr_id, col): [
                self._synapse(col, k, active_bits) for k in range(POOL_SIZE)
                if self._perms[col, k] >= CONNECTED_PERM or int(self._pools[col, k]) in active_bits
            ]
            for col in cols
        }

    def _ff_out_synapses(self, model_id: str, inp_id: str, bit: int, token: Any) -> dict | None:
        data = self._history.get(model_id)
        if data is None or inp_id != INPUT_ID:
            return None
        active_bits = frozenset(data["active_bits"])
        cols, ks = np.nonzero(self._pools == bit)
        return {
            (REGION_ID, LAYER_ID, int(col)): [self._synapse(int(col), int(k), active_bits)]
            for col, k in zip(cols, ks)
        }

    def _cell_segments(self, model_id: str, rgn_id: str, lyr_id: str, col: int, cell_seg, token: Any) -> dict | None:
        data = self._history.get(model_id)
        if data is None:
            return None
        idx = self._order.index(model_id)
        prev = self._history[self._order[idx - 1]] if idx > 0 else None
        prev_active = prev["active_cols"] if prev is not None else []
        rng = np.random.default_rng([data["t"], col])
        col_active = col in data["active_cols"]
        sel_ci, sel_si = cell_seg if cell_seg is not None else (None, None)
        cells = {}
        winner = int(rng.integers(CELLS_PER_COLUMN))
        for ci in range(CELLS_PER_COLUMN):
            segments = {}
            for si in range(int(rng.integers(0, 3))):
                sources = rng.choice(N_COLUMNS, 6, replace=False)
                syns = {"active": [], "inactive": []}
                for src in sources:
                    perm = float(rng.uniform(0.1, 1.0))
                    state = "active" if int(src) in prev_active else "inactive"
                    syns[state].append({
                        "src_id": rgn_id, "src_col": int(src), "src_lyr": lyr_id,
                        "perm": perm, "syn_state": state,
                    })
                n_act = len(syns["active"])
                segments[si] = {
                    "n_conn_act": n_act,
                    "n_conn_tot": len(sources),
                    "n_dis_act": int(rng.integers(0, 2)),
                    "n_dis_tot": int(rng.integers(2, 5)),
                    "stimulus_th": STIMULUS_TH,
                    "learning_th": LEARNING_TH,
                    "learn_seg": col_active and ci == winner and si == 0,
                    "selected_seg": (ci, si) == (sel_ci, sel_si),
                    "syns_by_state": syns,
                }
            predictive = any(s["n_conn_act"] >= STIMULUS_TH for s in segments.values())
            active = col_active and (ci == winner or predictive)
            cells[ci] = {
                "cell_active": active,
                "cell_predictive": predictive,
                "selected_cell": ci == sel_ci,
                "cell_state": "active-predicted" if active and predictive
                else "active" if active else "predicted" if predictive else "inactive",
                "segments": segments,
            }
        return cells
