from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: Optional[TickMetrics]
    agents: List[Dict[str, Any]]
    fields: "SnapshotFields"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotMetadata:
    width: int
    height: int
    seed: int
    target_population: int
    boundary: str
    collision: str
    stimulus_mode: str


@dataclass(slots=True)
class SnapshotFields:
    deposition: np.ndarray
    prepattern: np.ndarray
    rgb: np.ndarray
