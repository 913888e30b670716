"""Parallel execution utilities for complement."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

console = Console(stderr=True)


@dataclass
class TaskResult:
    """Result of a parallel task."""
    name: str
    success: bool
    duration: float
    result: Any = None
    exception: Optional[BaseException] = None

    @property
    def error(self) -> Optional[str]:
        return str(self.exception) if self.exception is not None else None


def run_parallel(
    tasks: dict[str, Callable[[], Any]],
    max_workers: Optional[int] = None,
    show_progress: bool = False,
    description: str = "Running tasks",
) -> dict[str, TaskResult]:
    """
    Run multiple tasks in parallel using ThreadPoolExecutor.

    Every task gets exactly one TaskResult; a failing task never stops the
    others.

    Args:
        tasks: Dict of {name: callable} to run
        max_workers: Maximum parallel workers (default: one per task)
        show_progress: Show progress bar
        description: Progress description

    Returns:
        Dict of {name: TaskResult}, in the order of ``tasks``
    """
    results: dict[str, TaskResult] = {}

    if not tasks:
        return results

    with ThreadPoolExecutor(max_workers=max_workers or len(tasks)) as executor:
        futures = {}
        start_times = {}

        for name, func in tasks.items():
            start_times[name] = time.time()
            futures[executor.submit(func)] = name

        def collect(future) -> None:
            name = futures[future]
            duration = time.time() - start_times[name]
            try:
                results[name] = TaskResult(
                    name=name,
                    success=True,
                    duration=duration,
                    result=future.result(),
                )
            except Exception as e:
                results[name] = TaskResult(
                    name=name,
                    success=False,
                    duration=duration,
                    exception=e,
                )

        if show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
            ) as progress:
                task = progress.add_task(description, total=len(tasks))

                for future in as_completed(futures):
                    collect(future)
                    progress.advance(task)
        else:
            for future in as_completed(futures):
                collect(future)

    return {name: results[name] for name in tasks}


def format_parallel_results(results: dict[str, TaskResult]) -> str:
    """Format parallel execution results for display."""
    lines = []
    total_time = sum(r.duration for r in results.values())

    successful = [r for r in results.values() if r.success]
    failed = [r for r in results.values() if not r.success]

    lines.append(f"Completed: {len(successful)}/{len(results)} tasks")
    lines.append(f"Total time: {total_time:.2f}s")

    if failed:
        lines.append("\nFailed:")
        for r in failed:
            lines.append(f"  ✗ {r.name}: {r.error}")

    return "\n".join(lines)
