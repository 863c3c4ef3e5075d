from __future__ import annotations

import asyncio
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineContext:
    """State shared by the steps of one ``process_image`` call.

    - input: request payload (bytes, filename, config snapshot, cancel_event)
    - artifacts: values produced by steps for later steps and the caller
    """

    RUN_ID_KEY: ClassVar[str] = "_run_id"

    input: Mapping[str, Any]
    artifacts: Dict[str, Any] = field(default_factory=dict)

    def set(self, key: str, value: Any) -> None:
        self.artifacts[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.artifacts.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.artifacts

    def update(self, **items: Any) -> None:
        self.artifacts.update(items)

    def get_run_id(self) -> Optional[str]:
        return self.get(self.RUN_ID_KEY)

    def ensure_run_id(self) -> str:
        rid = self.get_run_id()
        if not rid:
            rid = uuid.uuid4().hex[:12]
            self.set(self.RUN_ID_KEY, rid)
        return rid

    def is_cancelled(self) -> bool:
        event = self.input.get("cancel_event")
        return bool(event is not None and event.is_set())


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@runtime_checkable
class Step(Protocol):
    async def __call__(
        self, context: PipelineContext
    ) -> None:  # pragma: no cover - protocol
        ...


class BaseStep(ABC):
    """Pipeline step with required-key checks and per-exception retry.

    Retry policy: ``retries`` attempts after the first for any exception,
    unless an entry of ``retry_exceptions`` matches (first isinstance wins)
    and overrides it, e.g. ``{StorageFailedError: {"retries": 2}}``.
    """

    name: str = "base_step"

    required_keys: List[str] = []
    retries: int = 0
    retry_backoff: float = 0.5  # seconds
    use_exponential_backoff: bool = True
    max_backoff: float = 5.0
    jitter: float = 0.1  # added random [0, jitter) seconds
    retry_exceptions: Dict[type[Exception], Dict[str, Any]] = {}

    status: StepStatus = StepStatus.PENDING
    last_error: Optional[Exception] = None
    duration: float = 0.0
    attempts: int = 0

    async def __call__(self, context: PipelineContext) -> None:
        self.attempts = 0
        self.last_error = None

        missing = [k for k in self.required_keys if not context.has(k)]
        if missing:
            raise KeyError(
                f"Missing required inputs for step '{self.name}': {', '.join(missing)}"
            )

        start = perf_counter()
        try:
            while True:
                self.attempts += 1
                self.status = StepStatus.RUNNING
                logger.debug("Step %s attempt %d", self.name, self.attempts)
                try:
                    await self.run(context)
                except Exception as e:  # noqa: BLE001
                    self.last_error = e
                    self.status = StepStatus.FAILED
                    policy = self._retry_policy_for(e)
                    if self.attempts > policy["retries"]:
                        raise
                    delay = self._backoff_delay(policy)
                    logger.warning(
                        "Step %s attempt %d failed (%s); retrying in %.2fs",
                        self.name,
                        self.attempts,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
                else:
                    self.status = StepStatus.COMPLETED
                    return
        finally:
            self.duration = perf_counter() - start

    @abstractmethod
    async def run(
        self, context: PipelineContext
    ) -> None:  # pragma: no cover - abstract
        ...

    def _retry_policy_for(self, exc: Exception) -> Dict[str, Any]:
        policy: Dict[str, Any] = {
            "retries": self.retries,
            "retry_backoff": self.retry_backoff,
            "max_backoff": self.max_backoff,
            "jitter": self.jitter,
            "use_exponential_backoff": self.use_exponential_backoff,
        }
        for exc_type, overrides in self.retry_exceptions.items():
            if isinstance(exc, exc_type):
                policy.update(overrides)
                break
        policy["retries"] = int(policy["retries"])
        return policy

    def _backoff_delay(self, policy: Mapping[str, Any]) -> float:
        delay = max(0.0, float(policy["retry_backoff"]))
        if policy["use_exponential_backoff"]:
            delay *= 2 ** max(0, self.attempts - 1)
        delay = min(float(policy["max_backoff"]), delay)
        return delay + random.uniform(0.0, max(0.0, float(policy["jitter"])))


@dataclass(slots=True)
class StepReport:
    name: str
    status: StepStatus
    attempts: int
    duration: float


@dataclass(slots=True)
class PipelineRun:
    context: PipelineContext
    steps: List[StepReport]
    duration: float


class Pipeline:
    """Runs steps in order against one context and stops at the first failure.

    The failing step's exception reaches the caller unchanged.
    """

    def __init__(self, steps: List[Step]):
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [_step_name(s) for s in self._steps]

    async def execute(self, context: PipelineContext) -> PipelineRun:
        context.ensure_run_id()
        start = perf_counter()
        reports: List[StepReport] = []

        for step in self._steps:
            step_start = perf_counter()
            try:
                await step(context)
            except Exception as e:  # noqa: BLE001
                logger.error(
                    "[run_id=%s] Step %s failed: %s",
                    context.get_run_id(),
                    _step_name(step),
                    e,
                )
                raise
            reports.append(
                StepReport(
                    name=_step_name(step),
                    status=getattr(step, "status", StepStatus.COMPLETED),
                    attempts=int(getattr(step, "attempts", 1) or 1),
                    duration=perf_counter() - step_start,
                )
            )

        return PipelineRun(context=context, steps=reports, duration=perf_counter() - start)


def _step_name(step: Step) -> str:
    return getattr(step, "name", step.__class__.__name__)


class Middleware(Protocol):  # pragma: no cover - optional extension point
    def __call__(self, step: Step) -> Step: ...


def make_logging_middleware(
    logger_obj: logging.Logger | None = None,
    level_before: int = logging.DEBUG,
    level_after: int = logging.INFO,
) -> Middleware:
    """Wrap each step to log BEGIN and END (status, attempts, duration) with the run id."""
    _log = logger_obj or logger

    def _middleware(step: Step) -> Step:
        class _Logged:
            def __init__(self, inner: Step):
                self._inner = inner

            def __getattr__(self, item):
                return getattr(self._inner, item)

            async def __call__(self, context: PipelineContext) -> None:
                step_name = _step_name(self._inner)
                rid = context.get_run_id()
                _log.log(level_before, "[run_id=%s] Step %s BEGIN", rid, step_name)
                start = perf_counter()
                try:
                    await self._inner(context)
                finally:
                    status = getattr(self._inner, "status", StepStatus.COMPLETED)
                    _log.log(
                        level_after,
                        "[run_id=%s] Step %s END status=%s attempts=%d duration=%.3fs",
                        rid,
                        step_name,
                        getattr(status, "value", str(status)),
                        int(getattr(self._inner, "attempts", 0) or 0),
                        perf_counter() - start,
                    )

        return _Logged(step)

    return _middleware
