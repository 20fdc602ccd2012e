from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a worker job: either ``value`` or ``error``."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Result[T]:
        return cls(error=error)

    @classmethod
    def capture(cls, fn: Callable[..., T], *args: Any) -> Result[T]:
        try:
            return cls(value=fn(*args))
        except Exception as e:  # delivered to the loop as a message
            return cls(error=e)


@dataclass(frozen=True)
class Job:
    fn: Callable[..., Any]
    args: tuple[Any, ...]
    to_msg: Callable[[Result[Any]], Any]

    def run(self) -> Result[Any]:
        return Result.capture(self.fn, *self.args)


@dataclass(frozen=True)
class Task:
    """Work requested by a message handler.

    ``messages`` are fed straight back into the loop; ``jobs`` run on the
    worker pool and come back as ``job.to_msg(result)``.
    """

    messages: tuple[Any, ...] = ()
    jobs: tuple[Job, ...] = field(default=())

    @classmethod
    def none(cls) -> Task:
        return cls()

    @classmethod
    def done(cls, msg: Any) -> Task:
        return cls(messages=(msg,))

    @classmethod
    def perform(cls, fn: Callable[..., Any], to_msg: Callable[[Result[Any]], Any], *args: Any) -> Task:
        return cls(jobs=(Job(fn, args, to_msg),))

    @classmethod
    def batch(cls, tasks: Iterable[Task]) -> Task:
        messages: list[Any] = []
        jobs: list[Job] = []
        for t in tasks:
            messages.extend(t.messages)
            jobs.extend(t.jobs)
        return cls(messages=tuple(messages), jobs=tuple(jobs))

    @property
    def empty(self) -> bool:
        return not self.messages and not self.jobs
