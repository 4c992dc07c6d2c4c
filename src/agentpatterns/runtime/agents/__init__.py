"""Interaction patterns and the executor that frames their output.

- PatternExecutor / PatternRun: input validation, framing, failure markers
- Strategies: direct, sequential, routing, parallel, orchestrator,
  evaluator-optimizer and tool-use
- TaskScheduler: dependency-ordered concurrent plan execution
"""

from .base import Capabilities, PatternExecutor, PatternRun, PatternStrategy
from .direct import DirectStreamStrategy
from .evaluator import TRANSLATION, TRANSLATION_EVALUATION, EvaluatorOptimizerStrategy
from .orchestrator import PLAN, OrchestratorStrategy
from .parallel import AGGREGATION, DEFAULT_BRANCHES, Branch, ParallelStrategy
from .presets import default_executors
from .routing import CLASSIFICATION, DEFAULT_SPECIALISTS, GENERAL, RoutingStrategy, Specialist
from .scheduler import PlanTask, TaskOutcome, TaskScheduler, plan_summary, validate_plan
from .sequential import DRAFT, SequentialStrategy
from .tool_use import AGENT_STEP, ToolUseStrategy

__all__ = [
    "PatternExecutor", "PatternRun", "PatternStrategy", "Capabilities", "default_executors",
    "DirectStreamStrategy", "SequentialStrategy", "RoutingStrategy", "ParallelStrategy",
    "OrchestratorStrategy", "EvaluatorOptimizerStrategy", "ToolUseStrategy",
    "Specialist", "DEFAULT_SPECIALISTS", "GENERAL", "CLASSIFICATION",
    "Branch", "DEFAULT_BRANCHES", "AGGREGATION",
    "PlanTask", "TaskOutcome", "TaskScheduler", "validate_plan", "plan_summary", "PLAN",
    "DRAFT", "TRANSLATION", "TRANSLATION_EVALUATION", "AGENT_STEP",
]
