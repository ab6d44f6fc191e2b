"""Interactive canvas for inspecting the state of a hierarchical sequence-learning model."""

__version__ = "0.1.0"
