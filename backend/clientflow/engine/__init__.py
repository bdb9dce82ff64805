"""Workflow Engine - Definition loading, compilation and stateless evaluation"""
from .loader import DefinitionLoader
from .task_library import TaskLibrary
from .compiler import WorkflowCompiler
from .condition_evaluator import ConditionEvaluator
from .transition_resolver import TransitionResolver
from .progress import ProgressCalculator
from .input_validator import StepInputValidator

__all__ = [
    "DefinitionLoader",
    "TaskLibrary",
    "WorkflowCompiler",
    "ConditionEvaluator",
    "TransitionResolver",
    "ProgressCalculator",
    "StepInputValidator",
]
