"""
Layout Paths & Step Template
============================
A LayoutPath names one drawable block on the canvas: either an input
(encoder output bits) or a (region, layer) pair (columns). It is the stable
key into every per-layout structure (layouts, image caches, visible-id sets).

The StepTemplate describes which inputs and layers exist and the topology
(dimensions) of each, which is all the layout code needs from the model.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterator, Mapping


class PathKind(StrEnum):
    INPUTS = "inputs"
    REGIONS = "regions"


@dataclass(frozen=True, order=True)
class LayoutPath:
    kind: PathKind
    source_id: str
    layer_id: str | None = None

    @classmethod
    def input(cls, input_id: str) -> LayoutPath:
        return cls(PathKind.INPUTS, input_id)

    @classmethod
    def layer(cls, region_id: str, layer_id: str) -> LayoutPath:
        return cls(PathKind.REGIONS, region_id, layer_id)

    @property
    def is_input(self) -> bool:
        return self.kind == PathKind.INPUTS

    @property
    def label(self) -> str:
        if self.is_input:
            return self.source_id
        return f"{self.source_id} {self.layer_id}"

    def __str__(self) -> str:
        parts = [str(self.kind), self.source_id]
        if self.layer_id is not None:
            parts.append(self.layer_id)
        return "/".join(parts)


Topology = tuple[int, ...]


def topology_size(dims: Topology) -> int:
    """Number of elements in a topology; an empty topology has none."""
    if not dims:
        return 0
    return math.prod(dims)


@dataclass(frozen=True)
class StepTemplate:
    """Inputs and (region, layer) topologies, in display order."""
    inputs: Mapping[str, Topology] = field(default_factory=dict)
    regions: Mapping[str, Mapping[str, Topology]] = field(default_factory=dict)

    def paths(self) -> list[LayoutPath]:
        """All layout paths: inputs first, then every layer of every region."""
        input_paths = [LayoutPath.input(inp_id) for inp_id in self.inputs]
        layer_paths = [
            LayoutPath.layer(rgn_id, lyr_id)
            for rgn_id, layers in self.regions.items()
            for lyr_id in layers
        ]
        return input_paths + layer_paths

    def topology(self, path: LayoutPath) -> Topology:
        if path.is_input:
            return tuple(self.inputs[path.source_id])
        return tuple(self.regions[path.source_id][path.layer_id])

    def __iter__(self) -> Iterator[LayoutPath]:
        return iter(self.paths())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StepTemplate:
        """
        Build a template from a journal-style mapping.

        Expected shape::

            {"inputs": {"in": {"topology": [10]}},
             "regions": {"R1": {"L1": {"topology": [20]}}}}
        """
        inputs = {
            inp_id: tuple(spec.get("topology", ()))
            for inp_id, spec in (data.get("inputs") or {}).items()
        }
        regions = {
            rgn_id: {
                lyr_id: tuple(spec.get("topology", ()))
                for lyr_id, spec in layers.items()
            }
            for rgn_id, layers in (data.get("regions") or {}).items()
        }
        return cls(inputs=inputs, regions=regions)
