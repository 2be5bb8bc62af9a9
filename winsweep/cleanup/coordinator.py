"""
Run coordinator.

Executes a selection of cleanup tasks against a TaskRegistry, one task at a
time, and produces a Summary with the number of tasks run and the free space
reclaimed on the target volume.
"""

import logging
import math
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from winsweep.cleanup.actions import TaskBudget, bound_to
from winsweep.cleanup.registry import Task, TaskRegistry
from winsweep.cleanup.space import FreeSpaceMeter, reclaimed_bytes
from winsweep.exceptions import NoTasksSelectedError

logger = logging.getLogger(__name__)

IDLE_LABEL = "Initializing..."

# Seconds to wait for a timed-out task to return once its tools are killed.
STOP_GRACE = 10.0

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class RunState:
    """Live progress of the current run. Written only by the coordinator."""

    total: int = 0
    completed: int = 0
    current_label: str = IDLE_LABEL

    def reset(self) -> None:
        self.total = 0
        self.completed = 0
        self.current_label = IDLE_LABEL


@dataclass(frozen=True)
class Summary:
    """
    Outcome of one run.

    Args:
        tasks_completed (int): Number of task actions invoked.
        space_reclaimed (int): Free space gained on the volume, never negative.
        cancelled (bool): True if the run stopped before the last task.
        timed_out (tuple[str, ...]): Ids of tasks abandoned after their time budget.
    """

    tasks_completed: int
    space_reclaimed: int
    cancelled: bool = False
    timed_out: tuple[str, ...] = ()


class RunCoordinator:
    """
    Runs cleanup tasks sequentially and reports progress.

    Several tasks touch overlapping registry subtrees or stop and start the
    same Windows services, so tasks never run concurrently with each other.

    Example:
        >>> coordinator = RunCoordinator(build_default_registry())
        >>> summary = coordinator.execute({"flush_dns_cache"})
    """

    def __init__(
        self,
        registry: TaskRegistry,
        meter: Callable[[], int] | None = None,
        task_timeout: float | None = None,
        stop_grace: float = STOP_GRACE,
    ) -> None:
        """
        Args:
            registry: Catalogue the selection is resolved against.
            meter: Returns free bytes on the target volume. Raises
                MeasurementError when the volume cannot be read.
            task_timeout: Seconds a single task may run. Tools it still has
                running at the deadline are killed and the run moves on.
                None waits indefinitely.
            stop_grace: Seconds to wait for a timed-out task to return
                after its tools are killed.

        Raises:
            ValueError: If task_timeout is not a positive finite number.
        """
        if task_timeout is not None and not (math.isfinite(task_timeout) and task_timeout > 0):
            raise ValueError(f"task_timeout must be positive and finite, got {task_timeout!r}")
        self.registry = registry
        self.meter = meter or FreeSpaceMeter()
        self.task_timeout = task_timeout
        self.stop_grace = stop_grace
        self.state = RunState()

    def execute(
        self,
        selection: Iterable[str],
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Summary:
        """
        Execute the selected tasks in canonical order.

        Args:
            selection: Task ids to run. Order and duplicates are ignored.
            on_progress: Called with (label, completed, total) before and
                after each task.
            cancel_event: When set, the run stops before the next task.

        Returns:
            Summary of the run.

        Raises:
            NoTasksSelectedError: If the selection is empty.
            NotFoundError: If the selection names an unknown task.
            MeasurementError: If free space cannot be read.
        """
        selected = set(selection)
        if not selected:
            raise NoTasksSelectedError()
        tasks = self.registry.ordered(selected)

        free_before = self.meter()

        total = len(tasks)
        self.state.reset()
        self.state.total = total
        invoked = 0
        timed_out: list[str] = []
        cancelled = False

        try:
            for task in tasks:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Run cancelled after %d of %d tasks", invoked, total)
                    cancelled = True
                    break

                self.state.current_label = task.label
                _notify(on_progress, task.label, invoked, total)

                if not self._run_task(task):
                    timed_out.append(task.id)

                invoked += 1
                self.state.completed = invoked
                _notify(on_progress, task.label, invoked, total)

            free_after = self.meter()
        finally:
            self.state.reset()

        summary = Summary(
            tasks_completed=invoked,
            space_reclaimed=reclaimed_bytes(free_before, free_after),
            cancelled=cancelled,
            timed_out=tuple(timed_out),
        )
        logger.info(
            "Run finished: %d/%d tasks, %d bytes reclaimed",
            summary.tasks_completed,
            total,
            summary.space_reclaimed,
        )
        return summary

    def start(
        self,
        selection: Iterable[str],
        on_progress: ProgressCallback | None = None,
    ) -> "RunHandle":
        """Run execute() on a background thread."""
        handle = RunHandle(self)
        handle._launch(list(selection), on_progress)
        return handle

    def _run_task(self, task: Task) -> bool:
        """
        Run one task to completion or until its time budget expires.

        On expiry the task's running tools are killed and it gets stop_grace
        seconds to return, so the next task does not start alongside it.

        Returns:
            False if the task ran out of time.
        """
        logger.debug("Starting task %s", task.id)
        budget = TaskBudget(self.task_timeout)
        if self.task_timeout is None:
            _invoke(task, budget)
            return True

        worker = threading.Thread(
            target=_invoke, args=(task, budget), name=f"winsweep-{task.id}", daemon=True
        )
        worker.start()
        worker.join(self.task_timeout)
        if not worker.is_alive():
            return True

        killed = budget.expire()
        logger.warning(
            "Task %s exceeded %.0fs, stopped %d running tool(s)", task.id, self.task_timeout, killed
        )
        worker.join(self.stop_grace)
        if worker.is_alive():
            logger.warning("Task %s did not return after its tools were stopped", task.id)
        return False


class RunHandle:
    """
    A run executing on a background thread.

    Attributes:
        coordinator (RunCoordinator): Owner of the live RunState.
        cancel_event (threading.Event): Set by cancel().
    """

    def __init__(self, coordinator: RunCoordinator) -> None:
        self.coordinator = coordinator
        self.cancel_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._summary: Summary | None = None
        self._error: BaseException | None = None

    def _launch(self, selection: list[str], on_progress: ProgressCallback | None) -> None:
        def run() -> None:
            try:
                self._summary = self.coordinator.execute(
                    selection, on_progress, cancel_event=self.cancel_event
                )
            except BaseException as e:
                self._error = e

        self._thread = threading.Thread(target=run, name="winsweep-run", daemon=True)
        self._thread.start()

    @property
    def state(self) -> RunState:
        return self.coordinator.state

    @property
    def done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def cancel(self) -> None:
        """Stop before the next task starts. The task in flight finishes."""
        self.cancel_event.set()

    def wait(self, timeout: float | None = None) -> Summary | None:
        """
        Wait for the run to finish.

        Returns:
            The Summary, or None if the timeout elapsed first.

        Raises:
            WinsweepError: The boundary error that stopped the run.
        """
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                return None
        if self._error is not None:
            raise self._error
        return self._summary


def _invoke(task: Task, budget: TaskBudget) -> None:
    with bound_to(budget):
        task.action()
    logger.debug("Finished task %s", task.id)


def _notify(on_progress: ProgressCallback | None, label: str, completed: int, total: int) -> None:
    if on_progress is not None:
        on_progress(label, completed, total)
