import asyncio
import enum
import logging
from collections.abc import Callable

from forkspace.models import Project
from forkspace.services.registry import ProjectRegistry
from forkspace.services.validation import validate_project_path

logger = logging.getLogger(__name__)


class CycleDirection(enum.Enum):
    PREV = "prev"  # older entries, higher index
    NEXT = "next"  # newer entries, lower index


class SkipReason(enum.Enum):
    MISSING = "missing"
    INVALID_PATH = "invalid_path"


SkipSink = Callable[[str, SkipReason], None]


def candidate_indices(position: int, length: int, direction: CycleDirection) -> list[int]:
    """Indices to try, in order, when stepping away from `position`.

    Python's % is non-negative for a positive modulus, so walking backwards
    past 0 wraps to the end of the list.
    """
    step = 1 if direction is CycleDirection.PREV else -1
    return [(position + step * (attempt + 1)) % length for attempt in range(length)]


class HistoryCycler:
    """Walks the registry's visit history, skipping projects whose paths fail validation.

    Only one cycle runs at a time; a call made while another is pending
    returns None immediately.
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        validator: Callable[[Project], bool] = validate_project_path,
        skip_sink: SkipSink | None = None,
    ) -> None:
        self._registry = registry
        self._validator = validator
        self._skip_sink = skip_sink
        self._cycling = False

    @property
    def is_cycling(self) -> bool:
        return self._cycling

    def _skip(self, project_id: str, reason: SkipReason) -> None:
        logger.debug("Skipping history entry", extra={"project_id": project_id, "reason": reason.value})
        if self._skip_sink is not None:
            self._skip_sink(project_id, reason)

    async def cycle(self, direction: CycleDirection) -> Project | None:
        """Switch to the nearest valid project in `direction`. Returns it, or None on no-op."""
        if self._cycling:
            return None
        self._cycling = True
        try:
            return await self._cycle(direction)
        finally:
            self._cycling = False

    async def _cycle(self, direction: CycleDirection) -> Project | None:
        state = self._registry.state
        active = {p.id: p for p in state.projects}
        valid_history = [pid for pid in state.history if pid in active]
        if len(valid_history) <= 1:
            return None

        current_id = state.current_project_id
        position = valid_history.index(current_id) if current_id in valid_history else 0

        for index in candidate_indices(position, len(valid_history), direction):
            target_id = valid_history[index]
            if target_id == current_id:
                continue
            target = active.get(target_id)
            if target is None:
                self._skip(target_id, SkipReason.MISSING)
                continue
            if not await asyncio.to_thread(self._validator, target):
                self._skip(target_id, SkipReason.INVALID_PATH)
                continue
            self._registry.switch_for_cycling(target, valid_history, index)
            return target

        logger.warning("No valid projects found in history", extra={"direction": direction.value})
        return None

    async def cycle_prev(self) -> Project | None:
        return await self.cycle(CycleDirection.PREV)

    async def cycle_next(self) -> Project | None:
        return await self.cycle(CycleDirection.NEXT)
