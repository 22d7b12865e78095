"""
ModGate - Rule Pipeline
=======================

Runs every rule against a message, then picks one action.

DESIGN:
    Scan-all, not short-circuit: each rule's verdict is recorded even when
    a higher-priority rule will win, so report-only rules still produce
    their reports. Resolution keeps triggered results and takes the best
    priority (KICK > WARN_CUSTOM > WARN > HOLD > MESSAGE_CLEANUP > LOG);
    ties go to the earliest rule. A rule that overrides its action moves
    tiers but keeps its place in pipeline order.

    Each rule runs inside its own fault boundary. An evaluator that raises
    is logged, counted and treated as not triggered.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from modgate.core.logger import logger
from modgate.moderation.errors import RuleEvaluationError
from modgate.moderation.models import (
    NOT_TRIGGERED,
    ActionKind,
    InboundMessage,
    RuleOutcome,
    RuleResult,
    Verdict,
)
from modgate.utils.metrics import metrics


Evaluator = Callable[[InboundMessage], Awaitable[Verdict]]


@dataclass(frozen=True)
class Rule:
    """A named evaluator bound to its default action."""
    name: str
    evaluator: Evaluator
    default_action: ActionKind


class RulePipeline:
    """Ordered list of rules with priority resolution."""

    def __init__(self, rules: Sequence[Rule]) -> None:
        self.rules: List[Rule] = list(rules)

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self.rules]

    async def _run_rule(self, rule: Rule, message: InboundMessage) -> RuleResult:
        try:
            verdict = await rule.evaluator(message)
        except Exception as e:
            error = RuleEvaluationError(rule.name, e)
            metrics.increment(f"rule.{rule.name}.error")
            logger.error("Rule Evaluation Failed", [
                ("Rule", rule.name),
                ("Message", str(message.id)),
                ("Error Type", type(e).__name__),
                ("Error", str(error)[:200]),
            ])
            verdict = NOT_TRIGGERED

        if verdict.triggered:
            metrics.increment(f"rule.{rule.name}.triggered")
        return RuleResult(rule.name, rule.default_action, verdict)

    async def evaluate_all(self, message: InboundMessage) -> List[RuleResult]:
        """Run every rule in order and return every result."""
        with metrics.timer("pipeline.evaluate"):
            return [await self._run_rule(rule, message) for rule in self.rules]

    @staticmethod
    def resolve(results: Sequence[RuleResult]) -> Optional[RuleOutcome]:
        """Pick the highest-priority triggered result, earliest rule on ties."""
        triggered = [r for r in results if r.triggered]
        if not triggered:
            return None
        winner = min(triggered, key=lambda r: r.action.priority)
        return RuleOutcome.from_result(winner)

    async def evaluate(self, message: InboundMessage) -> Optional[RuleOutcome]:
        return self.resolve(await self.evaluate_all(message))


__all__ = ["Rule", "RulePipeline", "Evaluator"]
