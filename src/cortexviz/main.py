"""
Application Initialization
==========================
This module wires the canvas together and starts the Qt event loop.

Why is this file needed?
------------------------
It acts as the "Dependency Injection" root. It:
1. Instantiates the shared state (VizStore) from the persisted settings.
2. Instantiates the fetch coordinator, image cache, controller and command
   loop around it.
3. Connects the synthetic journal, which doubles as the simulation driver.
4. Shows the main window.
"""
from __future__ import annotations

import logging
import os
import sys

from cortexviz.app.application import create_app
from cortexviz.app.state import VizStore
from cortexviz.config import load_options
from cortexviz.controller.commands import CommandLoop
from cortexviz.controller.demo_journal import SyntheticJournal
from cortexviz.controller.fetch import FetchCoordinator
from cortexviz.controller.viz_controller import VizController
from cortexviz.logging_config import setup_logging
from cortexviz.view.draw_cache import DrawCache
from cortexviz.view.main_window import MainWindow


def main() -> int:
    """Main entry point for the application."""
    # e.g. CORTEXVIZ_DEBUG=controller.fetch,view.draw_cache to follow fetches and cache activity
    setup_logging(level=logging.INFO, verbose=os.environ.get("CORTEXVIZ_DEBUG", "").split(","))

    app = create_app()

    store = VizStore(load_options())
    coordinator = FetchCoordinator()
    cache = DrawCache()
    VizController(store, coordinator, cache, parent=app)
    journal = SyntheticJournal(store)
    coordinator.set_journal(journal)
    loop = CommandLoop(store, coordinator, simulation=journal)

    win = MainWindow(store, coordinator, cache, loop)
    win.show()
    journal.start()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
