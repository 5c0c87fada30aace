"""Pipeline evaluation against datasets."""

from pipeopt.evaluate.core import (
    EvaluationReport,
    ExampleResult,
    evaluate,
    evaluate_dataset,
    evaluate_example,
    format_dataset,
    format_report,
)
from pipeopt.evaluate.metrics import (
    METRICS,
    Metric,
    create_metric,
    exact_equality_metric,
    exact_match,
    get_metric,
    passage_match,
    semantic_f1,
    semantic_similarity,
)

__all__ = [
    "METRICS",
    "EvaluationReport",
    "ExampleResult",
    "Metric",
    "create_metric",
    "evaluate",
    "evaluate_dataset",
    "evaluate_example",
    "exact_equality_metric",
    "exact_match",
    "format_dataset",
    "format_report",
    "get_metric",
    "passage_match",
    "semantic_f1",
    "semantic_similarity",
]
