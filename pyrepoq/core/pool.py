"""Runs many repository queries on a fixed-size worker pool.

Every task is an independent `RepoQueryCommand`; the only state the workers
share is the on-disk cache `repoquery` maintains itself. A failing task
never stops the others: its exception is recorded in its outcome.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, NamedTuple, Optional

from .command import RepoQueryCommand
from .models import QueryResult, RepoQueryParams
from ..utils.cache_cleaner import RepoqueryCacheCleaner
from ..utils.process import ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 20


class QueryTask(NamedTuple):
    label: str
    params: RepoQueryParams


class TaskOutcome(NamedTuple):
    """What happened to one task.

    Exactly one of `result` and `exception` is set. `result` may itself
    describe a failed query (process failure or ambiguous spec).
    """

    task: QueryTask
    result: Optional[QueryResult]
    exception: Optional[BaseException]
    worker: str

    @property
    def ok(self) -> bool:
        return self.exception is None and self.result is not None and self.result.ok

    def error_message(self) -> Optional[str]:
        if self.exception is not None:
            return f"{self.worker} : {self.exception}"
        if self.result is not None and self.result.error is not None:
            return f"{self.worker} : {self.result.error}"
        return None


def _run_task(task: QueryTask, process_runner: Optional[ProcessRunner]) -> TaskOutcome:
    worker = threading.current_thread().name
    try:
        result = RepoQueryCommand(task.params, process_runner).run()
    except Exception as e:
        logger.error(f"Query {task.label} failed on {worker}: {e}")
        return TaskOutcome(task, None, e, worker)
    return TaskOutcome(task, result, None, worker)


def run_queries(
    tasks: Iterable[QueryTask],
    workers: int = DEFAULT_WORKERS,
    process_runner: Optional[ProcessRunner] = None,
    cleaner: Optional[RepoqueryCacheCleaner] = None,
) -> List[TaskOutcome]:
    """Runs every task and collects the outcomes.

    Args:
        tasks (Iterable[QueryTask]): The queries to run.
        workers (int): Number of worker threads. Defaults to 20.
        process_runner (Optional[ProcessRunner]): Runner shared by all tasks;
            a fresh `ProcessRunner` per command when None.
        cleaner (Optional[RepoqueryCacheCleaner]): If given, the repoquery
            cache is cleared before the first task and after the last.

    Returns:
        List[TaskOutcome]: One outcome per task, in submission order.
    """
    task_list = list(tasks)
    if cleaner is not None:
        cleaner.perform_cleanup()
    try:
        logger.info(f"Running {len(task_list)} queries on {workers} workers")
        with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="repoquery") as executor:
            futures = [executor.submit(_run_task, task, process_runner) for task in task_list]
            return [future.result() for future in futures]
    finally:
        if cleaner is not None:
            cleaner.perform_cleanup()


def failures(outcomes: Iterable[TaskOutcome]) -> List[TaskOutcome]:
    return [outcome for outcome in outcomes if not outcome.ok]
