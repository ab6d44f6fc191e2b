"""
Main window: timeline strip, canvas and a toolbar of canvas commands.
"""
from __future__ import annotations

import logging

from PySide6.QtGui import QAction, QCloseEvent
from PySide6.QtWidgets import QComboBox, QLabel, QMainWindow, QSpinBox, QToolBar, QVBoxLayout, QWidget

from cortexviz.app.application import VISIBLE_APP_NAME
from cortexviz.app.state import VizStore
from cortexviz.config import save_options
from cortexviz.controller.commands import Command, CommandLoop
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.model.options import DisplayMode, ViewOptions
from cortexviz.view.draw_cache import DrawCache
from cortexviz.view.timeline import TimelineWidget
from cortexviz.view.viz_canvas import VizCanvas

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(
        self,
        store: VizStore,
        coordinator: FetchCoordinator,
        cache: DrawCache,
        loop: CommandLoop,
    ) -> None:
        super().__init__()
        self.setWindowTitle(VISIBLE_APP_NAME)
        self.resize(1200, 800)

        self.store = store
        self.cache = cache
        self.loop = loop

        # ---- Central: timeline on top + canvas below ----
        central = QWidget(self)
        v = QVBoxLayout(central)
        v.setContentsMargins(0, 0, 0, 0)
        v.setSpacing(0)

        self.timeline = TimelineWidget(store, loop, central)
        v.addWidget(self.timeline, 0)

        self.canvas = VizCanvas(store, coordinator, cache, loop, central)
        v.addWidget(self.canvas, 1)

        self.setCentralWidget(central)

        self._build_toolbar()
        self._sync_controls(store.options)
        store.options_changed.connect(lambda _old, new: self._sync_controls(new))
        store.steps_changed.connect(self._show_cache_stats)

        self.canvas.setFocus()

    # ---- toolbar ----

    def _action(self, toolbar: QToolBar, text: str, command: Command, shortcut: str | None = None) -> QAction:
        act = QAction(text, self)
        if shortcut:
            act.setToolTip(f"{text} ({shortcut})")
        act.triggered.connect(lambda _=False: self.loop.put(command))
        toolbar.addAction(act)
        return act

    def _build_toolbar(self) -> None:
        tb = QToolBar("Main", self)
        tb.setMovable(False)
        self.addToolBar(tb)

        self.actRun = self._action(tb, "Run / Pause", Command.TOGGLE_RUN, "Space")
        self.actBack = self._action(tb, "Step back", Command.STEP_BACKWARD, "Left")
        self.actForward = self._action(tb, "Step forward", Command.STEP_FORWARD, "Right")
        tb.addSeparator()
        self.actSort = self._action(tb, "Sort", Command.SORT)
        self.actClearSort = self._action(tb, "Clear sort", Command.CLEAR_SORT)
        self.actFacet = self._action(tb, "Add facet", Command.ADD_FACET)
        self.actClearFacets = self._action(tb, "Clear facets", Command.CLEAR_FACETS)
        tb.addSeparator()

        self.actApplyAll = QAction("Apply to all layers", self)
        self.actApplyAll.setCheckable(True)
        self.actApplyAll.toggled.connect(self._on_apply_all)
        tb.addAction(self.actApplyAll)

        self.actAnimate = QAction("Animate", self)
        self.actAnimate.setCheckable(True)
        self.actAnimate.toggled.connect(
            lambda on: self.loop.put(Command.UPDATE_DRAWING, {"anim_go": on})
        )
        tb.addAction(self.actAnimate)
        tb.addSeparator()

        tb.addWidget(QLabel("Display ", tb))
        self.cmbMode = QComboBox(tb)
        for mode in DisplayMode:
            self.cmbMode.addItem(str(mode), str(mode))
        self.cmbMode.activated.connect(
            lambda idx: self.loop.put(Command.UPDATE_DRAWING, {"display_mode": DisplayMode(self.cmbMode.itemData(idx))})
        )
        tb.addWidget(self.cmbMode)

        tb.addWidget(QLabel(" Steps ", tb))
        self.spinDrawSteps = QSpinBox(tb)
        self.spinDrawSteps.setRange(1, 100)
        self.spinDrawSteps.editingFinished.connect(
            lambda: self.loop.put(Command.UPDATE_DRAWING, {"draw_steps": self.spinDrawSteps.value()})
        )
        tb.addWidget(self.spinDrawSteps)

    def _on_apply_all(self, on: bool) -> None:
        self.loop.apply_to_all = on

    def _sync_controls(self, options: ViewOptions) -> None:
        """Reflect the store's options without emitting user actions."""
        d = options.drawing
        self.actAnimate.blockSignals(True)
        self.actAnimate.setChecked(d.anim_go)
        self.actAnimate.blockSignals(False)
        self.cmbMode.setCurrentIndex(self.cmbMode.findData(str(d.display_mode)))
        self.spinDrawSteps.blockSignals(True)
        self.spinDrawSteps.setValue(d.draw_steps)
        self.spinDrawSteps.blockSignals(False)

    def _show_cache_stats(self, *_) -> None:
        hits, misses = self.cache.stats()
        if hits + misses:
            self.statusBar().showMessage(
                f"Image cache: {hits} hits, {misses} misses ({100 * self.cache.miss_rate():.0f}% miss)"
            )

    # ---- lifecycle ----

    def closeEvent(self, event: QCloseEvent) -> None:
        logger.info("Closing main window.")
        self.loop.teardown()
        save_options(self.store.options)
        super().closeEvent(event)
