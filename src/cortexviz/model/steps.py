"""
Steps & Per-Step Payloads
=========================
A Step is the immutable identity of one model timestep. Its drawable
payload (active/predicted bits and columns) is fetched lazily from the
journal and parsed into the records below.
"""
from __future__ import annotations

import numbers
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from cortexviz.model.paths import LayoutPath


@dataclass(frozen=True)
class Step:
    model_id: Any
    timestep: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Step:
        return cls(model_id=data["model_id"], timestep=int(data["timestep"]))


def _mapping(value) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _ids(value) -> frozenset[int]:
    if not value or isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        return frozenset()
    return frozenset(int(i) for i in value if isinstance(i, numbers.Integral))


def _alphas(value) -> dict[int, float]:
    alphas = {}
    for k, v in _mapping(value).items():
        try:
            alphas[int(k)] = float(v)
        except (TypeError, ValueError):
            continue
    return alphas


@dataclass(frozen=True)
class InputBits:
    active_bits: frozenset[int] = frozenset()
    pred_bits_alpha: Mapping[int, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InputBits:
        data = _mapping(data)
        return cls(
            active_bits=_ids(data.get("active_bits")),
            pred_bits_alpha=_alphas(data.get("pred_bits_alpha")),
        )


@dataclass(frozen=True)
class LayerColumns:
    active_columns: frozenset[int] = frozenset()
    pred_columns: frozenset[int] = frozenset()
    tp_columns: frozenset[int] = frozenset()
    overlaps_columns_alpha: Mapping[int, float] = field(default_factory=dict)
    boost_columns_alpha: Mapping[int, float] = field(default_factory=dict)
    active_freq_columns_alpha: Mapping[int, float] = field(default_factory=dict)
    n_segments_columns_alpha: Mapping[int, float] = field(default_factory=dict)
    break_: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LayerColumns:
        data = _mapping(data)
        return cls(
            active_columns=_ids(data.get("active_columns")),
            pred_columns=_ids(data.get("pred_columns")),
            tp_columns=_ids(data.get("tp_columns")),
            overlaps_columns_alpha=_alphas(data.get("overlaps_columns_alpha")),
            boost_columns_alpha=_alphas(data.get("boost_columns_alpha")),
            active_freq_columns_alpha=_alphas(data.get("active_freq_columns_alpha")),
            n_segments_columns_alpha=_alphas(data.get("n_segments_columns_alpha")),
            break_=bool(data.get("break", False)),
        )


@dataclass(frozen=True)
class InbitsCols:
    """Everything drawn for one step: input bits and layer columns."""
    inputs: Mapping[str, InputBits] = field(default_factory=dict)
    regions: Mapping[str, Mapping[str, LayerColumns]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> InbitsCols:
        data = _mapping(data)
        inputs = {
            inp_id: InputBits.from_dict(d)
            for inp_id, d in _mapping(data.get("inputs")).items()
        }
        regions = {
            rgn_id: {lyr_id: LayerColumns.from_dict(d) for lyr_id, d in _mapping(layers).items()}
            for rgn_id, layers in _mapping(data.get("regions")).items()
        }
        return cls(inputs=inputs, regions=regions)

    def for_path(self, path: LayoutPath) -> InputBits | LayerColumns | None:
        if path.is_input:
            return self.inputs.get(path.source_id)
        return self.regions.get(path.source_id, {}).get(path.layer_id)

    def active_ids(self, path: LayoutPath) -> list[int]:
        """Sorted active bits (inputs) or active columns (layers)."""
        payload = self.for_path(path)
        if payload is None:
            return []
        if isinstance(payload, InputBits):
            return sorted(payload.active_bits)
        return sorted(payload.active_columns)


def index_of_model(steps: Sequence[Step], model_id: Any) -> int | None:
    """The dt of the step with ``model_id``, if it is still retained."""
    for dt, step in enumerate(steps):
        if step.model_id == model_id:
            return dt
    return None


def max_dt(steps: Sequence[Step]) -> int:
    """Largest selectable dt; one previous step is always assumed to exist."""
    return max(0, len(steps) - 2)
