import logging
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from timetable_solver.errors import TeacherConflictError
from timetable_solver.schemas import Slot

logger = logging.getLogger(__name__)

OccupancyKey = Tuple[str, str, int]   # (teacher id, day, period)


def occupancy_key(teacher_id: str, day: str, period: int) -> OccupancyKey:
    """Day names are case-folded so classes spelling a day differently still share it."""
    return (teacher_id, day.casefold(), period)


class OccupancyTable:
    """
    Append-only record of which class holds each (teacher, day, period).
    One scheduling session owns a table; searches only ever see snapshots of it.
    """

    def __init__(self):
        self._holders: Dict[OccupancyKey, str] = {}
        self._slots: Dict[OccupancyKey, Slot] = {}

    def reserve(self, teacher_id: str, slot: Slot, class_name: str) -> None:
        key = occupancy_key(teacher_id, slot.day, slot.period)
        holder = self._holders.get(key)
        if holder is not None:
            raise TeacherConflictError(teacher_id, slot.key, holder, class_name)
        self._holders[key] = class_name
        self._slots[key] = slot
        logger.debug("Teacher %s reserved at %s for class %s.", teacher_id, slot.key, class_name)

    def holder(self, teacher_id: str, slot: Slot) -> Optional[str]:
        return self._holders.get(occupancy_key(teacher_id, slot.day, slot.period))

    def teacher_slots(self, teacher_id: str) -> List[Slot]:
        return [slot for key, slot in self._slots.items() if key[0] == teacher_id]

    def snapshot(self) -> Mapping[OccupancyKey, str]:
        """An immutable copy that a search can read while the table keeps growing."""
        return MappingProxyType(dict(self._holders))

    def __contains__(self, key: OccupancyKey) -> bool:
        return occupancy_key(*key) in self._holders

    def __iter__(self) -> Iterator[OccupancyKey]:
        return iter(self._holders)

    def __len__(self) -> int:
        return len(self._holders)
