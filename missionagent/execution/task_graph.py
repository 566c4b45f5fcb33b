"""
Dependency ordering for the tasks of one plan.

The sort is a depth-first post-order walk seeded in ascending priority:
a task is emitted only after everything it depends on. Two marks are kept
per task (being visited / emitted); reaching a task that is still being
visited means the dependencies form a cycle.
"""

from typing import Dict, List, Mapping, Sequence

from ..core.errors import CircularDependencyError
from ..missions.mission_types import Task, TaskStatus


def sort_tasks(tasks: Sequence[Task]) -> List[Task]:
    """
    Order tasks so that every dependency precedes its dependents.

    Lower priority values seed the walk first; equal priorities keep their
    input order. Dependency ids that are not in ``tasks`` are ignored.

    Args:
        tasks: All tasks of one plan

    Returns:
        A permutation of ``tasks``

    Raises:
        CircularDependencyError: If the dependencies contain a cycle
    """
    by_id: Dict[str, Task] = {t.id: t for t in tasks}
    visiting = set()
    visited = set()
    ordered: List[Task] = []

    def visit(root: Task) -> None:
        if root.id in visited:
            return

        # Explicit stack of (task, remaining dependency ids); chains may be
        # deeper than the recursion limit
        visiting.add(root.id)
        stack = [(root, iter(root.dependencies))]
        while stack:
            task, deps = stack[-1]
            for dep_id in deps:
                dep = by_id.get(dep_id)
                if dep is None or dep.id in visited:
                    continue
                if dep.id in visiting:
                    raise CircularDependencyError(dep.id, dep.title)
                visiting.add(dep.id)
                stack.append((dep, iter(dep.dependencies)))
                break
            else:
                stack.pop()
                visiting.discard(task.id)
                visited.add(task.id)
                ordered.append(task)

    # sorted() is stable
    for task in sorted(tasks, key=lambda t: t.priority):
        visit(task)

    return ordered


def validate_dependencies(tasks: Sequence[Task]) -> List[str]:
    """Return dependency ids that do not reference a task in ``tasks``."""
    known = {t.id for t in tasks}
    missing = []
    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id not in known and dep_id not in missing:
                missing.append(dep_id)
    return missing


def find_unmet_dependencies(task: Task, statuses: Mapping[str, str]) -> List[str]:
    """
    List the dependencies of ``task`` that are not completed.

    Args:
        task: Task about to run
        statuses: Current status of every task in the plan, by id

    Returns:
        Dependency ids whose status is anything but completed
    """
    return [
        dep_id for dep_id in task.dependencies
        if statuses.get(dep_id) != TaskStatus.COMPLETED.value
    ]
