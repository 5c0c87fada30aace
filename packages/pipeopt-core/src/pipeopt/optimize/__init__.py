"""Metric-driven pipeline optimization."""

from pipeopt.optimize.api import (
    STRATEGIES,
    get_strategy,
    identity_strategy,
    optimize,
    resume_optimization,
    validate_trainset,
)
from pipeopt.optimize.beam import (
    BeamSearchOptimizer,
    analyze_convergence,
    beam_search,
    score_candidates,
    select_top_candidates,
    suggest_beam_width,
)
from pipeopt.optimize.candidate import Candidate
from pipeopt.optimize.checkpoint import load_checkpoint, save_checkpoint
from pipeopt.optimize.mutation import (
    HINTS,
    BackendHintMutator,
    MutationStrategy,
    PromptHintMutator,
    generate_candidates,
)
from pipeopt.optimize.results import ConvergenceReport, HistoryEntry, OptimizationResult

__all__ = [
    "HINTS",
    "STRATEGIES",
    "BackendHintMutator",
    "BeamSearchOptimizer",
    "Candidate",
    "ConvergenceReport",
    "HistoryEntry",
    "MutationStrategy",
    "OptimizationResult",
    "PromptHintMutator",
    "analyze_convergence",
    "beam_search",
    "generate_candidates",
    "get_strategy",
    "identity_strategy",
    "load_checkpoint",
    "optimize",
    "resume_optimization",
    "save_checkpoint",
    "score_candidates",
    "select_top_candidates",
    "suggest_beam_width",
    "validate_trainset",
]
