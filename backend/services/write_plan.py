"""Ordered multi-step writes with explicit failure policy.

Creating a report touches several tables and buckets with no transaction
spanning them. A ``WritePlan`` runs its steps in order:

* a *required* step that fails stops the plan; compensations registered by
  the steps that already completed run in reverse order and the error is
  re-raised as ``WritePlanAborted``;
* an *optional* step that fails is recorded in ``WriteOutcome.failures`` and
  the plan moves on.

A step without a compensation leaves its effect in place.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class WriteStep:
    name: str
    action: Callable[[Dict[str, Any]], Any]
    compensate: Optional[Callable[[Dict[str, Any]], None]] = None
    required: bool = True


@dataclass
class StepFailure:
    step: str
    message: str

    def to_dict(self):
        return {'step': self.step, 'message': self.message}


@dataclass
class WriteOutcome:
    results: Dict[str, Any] = field(default_factory=dict)
    failures: List[StepFailure] = field(default_factory=list)

    @property
    def complete(self):
        return not self.failures


class WritePlanAborted(Exception):
    """A required step failed; ``outcome`` holds what completed before it."""

    def __init__(self, step, error, outcome):
        super().__init__(f"{step} failed: {error}")
        self.step = step
        self.error = error
        self.outcome = outcome


class WritePlan:
    """Sequential write steps sharing a results dict keyed by step name."""

    def __init__(self, name):
        self.name = name
        self.steps: List[WriteStep] = []

    def add(self, name, action, compensate=None, required=True):
        self.steps.append(WriteStep(name, action, compensate, required))
        return self

    def run(self):
        outcome = WriteOutcome()
        completed = []

        for step in self.steps:
            try:
                outcome.results[step.name] = step.action(outcome.results)
                completed.append(step)
            except Exception as e:
                if step.required:
                    logger.error(f"{self.name}: required step '{step.name}' failed: {e}", exc_info=True)
                    self._compensate(completed, outcome.results)
                    raise WritePlanAborted(step.name, e, outcome) from e
                logger.warning(f"{self.name}: step '{step.name}' failed, continuing: {e}")
                outcome.failures.append(StepFailure(step.name, str(e)))

        logger.info(f"{self.name}: {len(completed)}/{len(self.steps)} steps completed", extra={
            'extra_fields': {'plan': self.name, 'failures': [f.step for f in outcome.failures]}
        })
        return outcome

    def _compensate(self, completed, results):
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate(results)
                logger.info(f"{self.name}: compensated '{step.name}'")
            except Exception as e:
                logger.error(f"{self.name}: compensation for '{step.name}' failed: {e}", exc_info=True)
