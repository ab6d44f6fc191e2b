"""
Configuration
=============
Persists the user-tunable subset of the view options.

Why is this file needed?
------------------------
1. Persistence: Display mode, draw steps, retained steps and the
   feed-forward synapse scope survive restarts, via QSettings (INI format,
   see app.application.create_app).
2. Robustness: Unreadable or out-of-range stored values fall back to the
   defaults instead of failing start-up.

Everything else in ViewOptions is either session state (refresh indices,
canvas size) or fixed drawing geometry.
"""
from __future__ import annotations

import logging
from dataclasses import replace

from PySide6.QtCore import QSettings

from cortexviz.model.options import DisplayMode, SynapseScope, ViewOptions

logger = logging.getLogger(__name__)

KEY_DISPLAY_MODE = "view/display_mode"
KEY_DRAW_STEPS = "view/draw_steps"
KEY_KEEP_STEPS = "view/keep_steps"
KEY_FF_SCOPE = "view/ff_synapses_scope"


def load_options(settings: QSettings | None = None, base: ViewOptions | None = None) -> ViewOptions:
    """Overlay stored settings onto ``base`` (defaults if omitted)."""
    settings = settings or QSettings()
    options = base or ViewOptions()
    d = options.drawing
    try:
        display_mode = DisplayMode(settings.value(KEY_DISPLAY_MODE, str(d.display_mode), type=str))
        draw_steps = int(settings.value(KEY_DRAW_STEPS, d.draw_steps, type=int))
        keep_steps = int(settings.value(KEY_KEEP_STEPS, options.keep_steps, type=int))
        scope = SynapseScope(settings.value(KEY_FF_SCOPE, str(options.ff_synapses.scope), type=str))
        return replace(
            options,
            keep_steps=keep_steps,
            ff_synapses=replace(options.ff_synapses, scope=scope),
            drawing=replace(d, display_mode=display_mode, draw_steps=draw_steps),
        )
    except ValueError as e:
        logger.warning(f"Ignoring invalid stored view settings: {e}")
        return options


def save_options(options: ViewOptions, settings: QSettings | None = None) -> None:
    settings = settings or QSettings()
    settings.setValue(KEY_DISPLAY_MODE, str(options.drawing.display_mode))
    settings.setValue(KEY_DRAW_STEPS, options.drawing.draw_steps)
    settings.setValue(KEY_KEEP_STEPS, options.keep_steps)
    settings.setValue(KEY_FF_SCOPE, str(options.ff_synapses.scope))
    settings.sync()
    logger.debug(f"Saved view settings to {settings.fileName()}.")
