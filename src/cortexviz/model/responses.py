"""
Journal response records for synapse and cell/segment queries.

Replies are best-effort: a malformed synapse, target, cell or segment is
skipped and logged, never raised, so one bad item doesn't lose the reply.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


class SynapseState(StrEnum):
    GROWING = "growing"
    DISCONNECTED = "disconnected"
    ACTIVE = "active"
    INACTIVE = "inactive"


def _state(value: Any) -> SynapseState:
    try:
        return SynapseState(str(value))
    except ValueError:
        return SynapseState.INACTIVE


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _items(value: Any) -> list:
    """Items of a list-like reply field; anything else counts as empty."""
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        return []
    return list(value)


@dataclass(frozen=True)
class Synapse:
    """One synapse, as seen from its target: the source element and its state."""
    src_id: str
    src_col: int
    src_lyr: str | None
    perm: float | None
    syn_state: SynapseState

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Synapse:
        """Raises ValueError when the source element is missing."""
        data = _mapping(data)
        src_id, src_col = data.get("src_id"), data.get("src_col")
        if src_id is None or src_col is None:
            raise ValueError(f"Synapse without a source: {data!r}")
        perm = data.get("perm")
        return cls(
            src_id=str(src_id),
            src_col=int(src_col),
            src_lyr=data.get("src_lyr"),
            perm=None if perm is None else float(perm),
            syn_state=_state(data.get("syn_state")),
        )


def parse_synapses(items: Any) -> tuple[Synapse, ...]:
    synapses = []
    for item in _items(items):
        try:
            synapses.append(Synapse.from_dict(item))
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping synapse: {e}")
    return tuple(synapses)


# (region id, layer id, column)
TargetKey = tuple[str, str, int]


def _pairs(data: Mapping | Iterable) -> Iterable[tuple[Any, Any]]:
    if isinstance(data, Mapping):
        return data.items()
    return ((item.get("target"), item.get("synapses")) for item in _items(data) if isinstance(item, Mapping))


def parse_ff_synapses(data: Mapping | Iterable | None) -> dict[TargetKey, tuple[Synapse, ...]]:
    """
    Parse a feed-forward synapse reply.

    Accepts either a mapping ``{(rgn, lyr, col): [synapse, ...]}`` or a
    sequence of ``{"target": [rgn, lyr, col], "synapses": [...]}``.
    Targets that aren't a ``(rgn, lyr, col)`` triple are skipped.
    """
    if not data:
        return {}
    parsed: dict[TargetKey, tuple[Synapse, ...]] = {}
    for target, synapses in _pairs(data):
        try:
            rgn_id, lyr_id, col = target
            key = (str(rgn_id), str(lyr_id), int(col))
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping ff synapses of target {target!r}: {e}")
            continue
        parsed[key] = parse_synapses(synapses)
    return parsed


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class SegmentInfo:
    n_conn_act: int = 0
    n_conn_tot: int = 0
    n_dis_act: int = 0
    n_dis_tot: int = 0
    stimulus_th: int = 1
    learning_th: int = 1
    learn_seg: bool = False
    selected_seg: bool = False
    syns_by_state: Mapping[SynapseState, tuple[Synapse, ...]] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.n_conn_act >= self.stimulus_th

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SegmentInfo:
        data = _mapping(data)
        return cls(
            n_conn_act=_int(data.get("n_conn_act"), 0),
            n_conn_tot=_int(data.get("n_conn_tot"), 0),
            n_dis_act=_int(data.get("n_dis_act"), 0),
            n_dis_tot=_int(data.get("n_dis_tot"), 0),
            stimulus_th=_int(data.get("stimulus_th"), 1),
            learning_th=_int(data.get("learning_th"), 1),
            learn_seg=bool(data.get("learn_seg", False)),
            selected_seg=bool(data.get("selected_seg", False)),
            syns_by_state={
                _state(state): parse_synapses(syns)
                for state, syns in _mapping(data.get("syns_by_state")).items()
            },
        )


def _indexed(data: Any, parse) -> dict[int, Any]:
    """``{index: parse(value)}`` sorted by index, dropping non-integer keys."""
    parsed = {}
    for index, value in _mapping(data).items():
        try:
            parsed[int(index)] = parse(value)
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping entry {index!r}: {e}")
    return dict(sorted(parsed.items()))


@dataclass(frozen=True)
class CellInfo:
    cell_active: bool = False
    cell_predictive: bool = False
    selected_cell: bool = False
    cell_state: str = "inactive"
    segments: Mapping[int, SegmentInfo] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CellInfo:
        data = _mapping(data)
        return cls(
            cell_active=bool(data.get("cell_active", False)),
            cell_predictive=bool(data.get("cell_predictive", False)),
            selected_cell=bool(data.get("selected_cell", False)),
            cell_state=str(data.get("cell_state", "inactive")),
            segments=_indexed(data.get("segments"), SegmentInfo.from_dict),
        )


def parse_cell_segments(data: Mapping[Any, Any] | None) -> dict[int, CellInfo]:
    """Cells of one column, sorted by cell index."""
    return _indexed(data, CellInfo.from_dict)
