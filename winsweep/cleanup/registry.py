"""
Task registry for cleanup operations.

Holds the immutable catalogue of cleanup tasks in declaration order. The
declaration order is the canonical run order used by the RunCoordinator.
"""

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from winsweep.cleanup.actions import best_effort
from winsweep.exceptions import DuplicateTaskError, NotFoundError

Action = Callable[[], None]


class Category(Enum):
    """Presentation groups, in display order."""

    QUICK = "Quick Cleanup"
    PRIVACY = "Privacy"
    SYSTEM = "System Maintenance"
    LOGS = "Logs"
    NETWORK = "Network"
    REGISTRY = "Registry"
    ADVANCED = "Advanced"

    @classmethod
    def parse(cls, raw: str) -> "Category":
        """Look up a category by value or member name, case-insensitively."""
        key = raw.strip().lower().replace("-", " ").replace("_", " ")
        for member in cls:
            if key in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown category: {raw}")


@dataclass(frozen=True)
class Task:
    """
    One independently selectable cleanup operation.

    Args:
        id (str): Stable identifier, also used as the settings key.
        label (str): Progress text shown while the task runs.
        action (Action): Zero-argument callable. Never raises.
        category (Category): Presentation group.
        locking_processes (tuple[str, ...]): Process names that may hold the
            files this task touches open.
    """

    id: str
    label: str
    action: Action = field(compare=False, repr=False)
    category: Category = Category.ADVANCED
    locking_processes: tuple[str, ...] = ()


class TaskRegistry:
    """Ordered, append-only catalogue of cleanup tasks."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def register(
        self,
        task_id: str,
        label: str,
        action: Action,
        category: Category = Category.ADVANCED,
        locking_processes: Iterable[str] = (),
    ) -> Task:
        """
        Add a task at the end of the canonical order.

        The action is wrapped with best_effort(), so a registered task can
        never raise into the coordinator.

        Raises:
            DuplicateTaskError: If task_id is already registered.
        """
        if task_id in self._tasks:
            raise DuplicateTaskError(f"Task already registered: {task_id}")
        task = Task(
            id=task_id,
            label=label,
            action=best_effort(action),
            category=category,
            locking_processes=tuple(locking_processes),
        )
        self._tasks[task_id] = task
        return task

    def get(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise NotFoundError(task_id) from None

    def all(self) -> tuple[Task, ...]:
        return tuple(self._tasks.values())

    def ids(self) -> tuple[str, ...]:
        return tuple(self._tasks)

    def by_category(self) -> dict[Category, list[Task]]:
        """Group tasks by category, keeping declaration order within each group."""
        groups: dict[Category, list[Task]] = {}
        for task in self._tasks.values():
            groups.setdefault(task.category, []).append(task)
        return groups

    def ordered(self, selection: Iterable[str]) -> list[Task]:
        """
        Restrict the canonical order to a selection.

        Raises:
            NotFoundError: If the selection names a task that is not registered.
        """
        wanted = set(selection)
        for task_id in sorted(wanted):
            if task_id not in self._tasks:
                raise NotFoundError(task_id)
        return [task for task in self._tasks.values() if task.id in wanted]

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())
