"""
Shared fixtures: an offscreen QApplication, a recording journal, a
simulation driver stub and a small two-layout template.
"""
from __future__ import annotations

import os
from types import SimpleNamespace

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from typing import Any

import pytest
from PySide6.QtWidgets import QApplication

from cortexviz.app.state import VizStore
from cortexviz.controller.commands import CommandLoop
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.controller.journal import Journal, JournalCommand, PendingReply
from cortexviz.controller.viz_controller import VizController
from cortexviz.model.layout import init_layouts
from cortexviz.model.options import ViewOptions
from cortexviz.model.paths import StepTemplate
from cortexviz.model.steps import Step
from cortexviz.view.draw_cache import DrawCache


class FakeJournal(Journal):
    """Records every message; replies are resolved by the test."""

    def __init__(self) -> None:
        self.sent: list[tuple[JournalCommand, tuple, PendingReply | None]] = []

    def send(self, command: JournalCommand, *args: Any, reply: PendingReply | None = None) -> None:
        self.sent.append((JournalCommand(command), args, reply))

    def of(self, command: JournalCommand) -> list[tuple[tuple, PendingReply | None]]:
        return [(args, reply) for cmd, args, reply in self.sent if cmd == command]

    def last(self, command: JournalCommand) -> tuple[tuple, PendingReply | None]:
        return self.of(command)[-1]


class SimDriver:
    def __init__(self) -> None:
        self.steps = 0
        self.toggles = 0

    def step(self) -> None:
        self.steps += 1

    def toggle(self) -> None:
        self.toggles += 1


@pytest.fixture(scope="session")
def qapp() -> QApplication:
    return QApplication.instance() or QApplication([])


@pytest.fixture
def template() -> StepTemplate:
    return StepTemplate(inputs={"in": (10,)}, regions={"R1": {"L1": (20,)}})


@pytest.fixture
def options() -> ViewOptions:
    return ViewOptions().with_drawing(height_px=500, width_px=800)


@pytest.fixture
def steps() -> tuple[Step, ...]:
    """Five steps, most recent (timestep 5, model "m5") first."""
    return tuple(Step(model_id=f"m{t}", timestep=t) for t in range(5, 0, -1))


@pytest.fixture
def layouts(template, options):
    return init_layouts(template, options)


@pytest.fixture
def journal() -> FakeJournal:
    return FakeJournal()


@pytest.fixture
def sim() -> SimDriver:
    return SimDriver()


@pytest.fixture
def wired(qapp, template, options, steps, journal, sim):
    """Store, coordinator, cache, controller and command loop, connected."""
    store = VizStore(options)
    coordinator = FetchCoordinator(journal)
    cache = DrawCache()
    controller = VizController(store, coordinator, cache)
    loop = CommandLoop(store, coordinator, simulation=sim)
    store.set_step_template(template)
    store.set_steps(steps)

    return SimpleNamespace(store=store, coordinator=coordinator, cache=cache, controller=controller, loop=loop)
