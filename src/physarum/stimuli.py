from __future__ import annotations

from typing import Iterable, List

from .config import StimulusConfig, StimulusMode
from .logging_utils import get_logger
from .math2d import _clamp_index
from .trail_field import TrailField

_LOGGER = get_logger("stimuli")


class StimulusOverlay:
    """Externally configured point sources written into the field.

    In pre-pattern mode the pre-pattern channel is rebuilt from the stimulus
    list and re-asserted after every field pass. In additive-overlay mode each
    stimulus adds its intensity to the deposition channel before the pass.
    """

    def __init__(
        self,
        mode: StimulusMode,
        stimuli: Iterable[StimulusConfig],
        pre_pattern_weight: float,
        neighbor_factor: float = 0.5,
    ):
        self._mode = mode
        self._stimuli: List[StimulusConfig] = [
            StimulusConfig(position=(int(s.position[0]), int(s.position[1])), intensity=float(s.intensity))
            for s in stimuli
        ]
        self.pre_pattern_weight = pre_pattern_weight
        self.neighbor_factor = neighbor_factor
        self._applied_count = -1

    @property
    def mode(self) -> StimulusMode:
        return self._mode

    @property
    def stimuli(self) -> List[StimulusConfig]:
        return self._stimuli

    def __len__(self) -> int:
        return len(self._stimuli)

    def add(self, position: tuple[int, int], intensity: float) -> int:
        self._stimuli.append(StimulusConfig(position=(int(position[0]), int(position[1])), intensity=float(intensity)))
        return len(self._stimuli) - 1

    def remove(self, index: int) -> bool:
        if not 0 <= index < len(self._stimuli):
            return False
        del self._stimuli[index]
        return True

    def set_intensity(self, index: int, intensity: float) -> bool:
        if not 0 <= index < len(self._stimuli):
            return False
        self._stimuli[index].intensity = float(intensity)
        return True

    def sync(self, field: TrailField) -> bool:
        """Rebuild when the stimulus count changed since the last rebuild."""
        if len(self._stimuli) == self._applied_count:
            return False
        self.rebuild(field)
        return True

    def rebuild(self, field: TrailField) -> None:
        self._applied_count = len(self._stimuli)
        if self._mode is not StimulusMode.PRE_PATTERN:
            return
        field.clear_prepattern()
        for stimulus in self._stimuli:
            x, y = stimulus.position
            if self._in_bounds(field, x, y):
                field.set_prepattern(x, y, stimulus.intensity * self.pre_pattern_weight)
        _LOGGER.info("Rebuilt pre-pattern from %d stimuli", len(self._stimuli))

    def reapply(self, field: TrailField) -> None:
        if self._mode is not StimulusMode.PRE_PATTERN:
            return
        width = field.width
        height = field.height
        for stimulus in self._stimuli:
            x, y = stimulus.position
            if not self._in_bounds(field, x, y):
                continue
            field.set_prepattern(x, y, stimulus.intensity * self.pre_pattern_weight)
            spill = stimulus.intensity * self.neighbor_factor
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    nx = _clamp_index(x + dx, width)
                    ny = _clamp_index(y + dy, height)
                    if nx != x or ny != y:
                        field.add_prepattern(nx, ny, spill)

    def inject(self, field: TrailField) -> None:
        if self._mode is not StimulusMode.ADDITIVE_OVERLAY:
            return
        for stimulus in self._stimuli:
            x, y = stimulus.position
            if self._in_bounds(field, x, y):
                field.deposit(x, y, stimulus.intensity)

    @staticmethod
    def _in_bounds(field: TrailField, x: int, y: int) -> bool:
        return 0 <= x < field.width and 0 <= y < field.height
