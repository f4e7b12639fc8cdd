from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterator, Optional, Tuple

if TYPE_CHECKING:
    from .agent import Agent

Cell = Tuple[int, int]


class OccupancyIndex:
    """Injective map from grid cell to the single agent standing on it.

    Failed inserts are an ordinary outcome; callers re-head the agent or
    retry a spawn sample.
    """

    def __init__(self) -> None:
        self._cells: Dict[Cell, "Agent"] = {}
        self._agent_cells: Dict[int, Cell] = {}

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[Tuple[Cell, "Agent"]]:
        return iter(self._cells.items())

    def clear(self) -> None:
        self._cells.clear()
        self._agent_cells.clear()

    def is_occupied(self, cell: Cell) -> bool:
        return cell in self._cells

    def occupant(self, cell: Cell) -> Optional["Agent"]:
        return self._cells.get(cell)

    def cell_of(self, agent: "Agent") -> Optional[Cell]:
        return self._agent_cells.get(agent.id)

    def try_occupy(self, cell: Cell, agent: "Agent") -> bool:
        current = self._cells.get(cell)
        if current is not None:
            return current is agent
        previous = self._agent_cells.get(agent.id)
        if previous is not None:
            # an agent holds exactly one cell
            self._cells.pop(previous, None)
        self._cells[cell] = agent
        self._agent_cells[agent.id] = cell
        return True

    def release(self, cell: Cell) -> None:
        agent = self._cells.pop(cell, None)
        if agent is not None:
            self._agent_cells.pop(agent.id, None)

    def blocks(self, cell: Cell, agent: "Agent") -> bool:
        """True when another agent already holds ``cell``."""
        current = self._cells.get(cell)
        return current is not None and current is not agent

    def move(self, agent: "Agent", cell: Cell) -> bool:
        """Release the agent's old cell and claim ``cell`` in one step."""
        if self.blocks(cell, agent):
            return False
        previous = self._agent_cells.get(agent.id)
        if previous == cell:
            return True
        if previous is not None:
            self._cells.pop(previous, None)
        self._cells[cell] = agent
        self._agent_cells[agent.id] = cell
        return True
