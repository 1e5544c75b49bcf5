"""Step state machine for flows that cannot be submitted as one batch.

Each ``FlowStep`` names a primary entry point, an optional fallback entry
point, and an optional ordered retry domain (for example swap fee tiers).
``SequentialFlow.run`` drives the steps in order with a locally tracked
nonce:

* the nonce is fetched once before the first step and incremented per
  submission;
* a failed submission or a non-success receipt gives the nonce back;
* the pending nonce is fetched again from the chain before a fallback
  attempt and after every failed retry-domain candidate;
* a step that exhausts its entry points and candidates raises
  ``StepExecutionError`` and earlier steps are left in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..datalake.schemas import FlowResult, StrategyCall
from ..errors import StepExecutionError
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from .wallet import WalletExecutor

StepBuilder = Callable[["FlowContext", Any], Awaitable[Optional[StrategyCall]]]


@dataclass(slots=True)
class FlowStep:
    name: str
    primary: StepBuilder
    fallback: Optional[StepBuilder] = None
    retry_domain: Sequence[Any] = ()
    fatal: bool = True


@dataclass(slots=True)
class Attempt:
    """One submission (or failed build) of a step."""

    step: str
    entry_point: str
    nonce: Optional[int]
    candidate: Any = None
    transaction_hash: Optional[str] = None
    succeeded: bool = False
    error: Optional[str] = None


@dataclass(slots=True)
class FlowContext:
    """State shared between steps; builders read balances through ``executor``."""

    executor: WalletExecutor
    user: str
    chain_id: int
    values: Dict[str, Any] = field(default_factory=dict)


class SequentialFlow:
    def __init__(self, executor: WalletExecutor, steps: Sequence[FlowStep], *, name: str = "sequential") -> None:
        self._executor = executor
        self._steps = list(steps)
        self._name = name
        self._logger = get_logger(__name__)
        self.attempts: List[Attempt] = []
        self.nonce_refetches = 0

    @property
    def steps(self) -> Sequence[FlowStep]:
        return tuple(self._steps)

    async def _refetch_nonce(self, reason: str) -> int:
        nonce = await self._executor.get_pending_nonce()
        self.nonce_refetches += 1
        METRICS.increment("nonce_refetch")
        self._logger.info("Re-fetched pending nonce %s (%s)", nonce, reason)
        return nonce

    async def _submit(self, attempt: Attempt, call: StrategyCall) -> bool:
        METRICS.increment("sequential_step_attempt")
        try:
            attempt.transaction_hash = await self._executor.send_transaction(call, attempt.nonce)
            receipt = await self._executor.wait_for_receipt(attempt.transaction_hash)
        except Exception as exc:  # noqa: BLE001
            attempt.error = str(exc)
            return False
        if not receipt.succeeded:
            attempt.error = f"receipt status {receipt.status}"
            return False
        attempt.succeeded = True
        return True

    async def run(self, context: FlowContext) -> FlowResult:
        result = FlowResult()
        with correlation_scope():
            nonce = await self._executor.get_pending_nonce()
            self._logger.info("Starting %s flow for %s at nonce %s", self._name, context.user, nonce)
            for step in self._steps:
                nonce, outcome = await self._run_step(step, context, nonce, result)
                if outcome == "skipped":
                    self._logger.info("Step %s skipped", step.name)
                    continue
                if outcome == "failed":
                    METRICS.increment("sequential_step_failure")
                    step_attempts = [a for a in self.attempts if a.step == step.name]
                    last_hash = next(
                        (a.transaction_hash for a in reversed(step_attempts) if a.transaction_hash),
                        None,
                    )
                    error = StepExecutionError(
                        step.name,
                        last_hash,
                        step_attempts,
                        result.completed_steps,
                        result.transaction_hashes,
                    )
                    self._logger.error(
                        str(error),
                        extra={"step": step.name, "last_hash": last_hash, "funds_moved": error.funds_moved},
                    )
                    raise error
                result.completed_steps.append(step.name)
            self._logger.info("%s flow finished with %s transactions", self._name, len(result.transaction_hashes))
        return result

    async def _run_step(
        self, step: FlowStep, context: FlowContext, nonce: int, result: FlowResult
    ) -> tuple[int, str]:
        candidates: List[Any] = list(step.retry_domain) or [None]
        entry_points = [("primary", step.primary)]
        if step.fallback is not None:
            entry_points.append(("fallback", step.fallback))

        for index, candidate in enumerate(candidates):
            for label, builder in entry_points:
                if label == "fallback":
                    nonce = await self._refetch_nonce(f"{step.name} fallback")
                try:
                    call = await builder(context, candidate)
                except Exception as exc:  # noqa: BLE001
                    self.attempts.append(
                        Attempt(step=step.name, entry_point=label, nonce=None, candidate=candidate, error=str(exc))
                    )
                    self._logger.warning("Step %s (%s) could not be built: %s", step.name, label, exc)
                    continue
                if call is None:
                    if label == "primary" and not step.fatal:
                        return nonce, "skipped"
                    continue
                attempt = Attempt(step=step.name, entry_point=label, nonce=nonce, candidate=candidate)
                self.attempts.append(attempt)
                nonce += 1
                if await self._submit(attempt, call):
                    result.transaction_hashes.append(attempt.transaction_hash)
                    if candidate is not None:
                        result.outputs[step.name] = candidate
                    self._logger.info(
                        "Step %s confirmed",
                        step.name,
                        extra={"transaction_hash": attempt.transaction_hash, "entry_point": label, "candidate": candidate},
                    )
                    return nonce, "completed"
                nonce -= 1
                self._logger.warning(
                    "Step %s (%s) failed: %s",
                    step.name,
                    label,
                    attempt.error,
                    extra={"transaction_hash": attempt.transaction_hash, "candidate": candidate},
                )
            if step.retry_domain and index + 1 < len(candidates):
                nonce = await self._refetch_nonce(f"{step.name} candidate {candidate} failed")
        return nonce, "failed"


__all__ = ["Attempt", "FlowContext", "FlowStep", "SequentialFlow", "StepBuilder"]
