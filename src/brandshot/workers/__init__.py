"""Background workers for async processing tasks."""

from brandshot.workers.generation_worker import (
    GenerationDispatcher,
    fail_stale_jobs,
    run_generation_worker,
)

__all__ = [
    "GenerationDispatcher",
    "fail_stale_jobs",
    "run_generation_worker",
]
