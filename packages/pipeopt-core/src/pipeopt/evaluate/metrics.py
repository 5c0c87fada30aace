"""Scoring metrics.

Every metric takes ``(prediction, ground_truth)`` and returns a score in
[0.0, 1.0], 1.0 meaning a perfect match. Predictions and ground truths may be
plain strings or mappings with an ``answer`` key.
"""

from __future__ import annotations

import math
import numbers
import re
from collections import Counter
from typing import Any, Callable, Mapping

from pipeopt.errors import MetricRangeError, UnknownMetricError

MetricFn = Callable[[Any, Any], float]

_TOKEN = re.compile(r"\w+")


class Metric:
    """A named metric whose scores are checked against [0.0, 1.0]."""

    def __init__(self, name: str, fn: MetricFn) -> None:
        self.name = name
        self._fn = fn

    def __call__(self, prediction: Any, ground_truth: Any) -> float:
        return check_score(self.name, self._fn(prediction, ground_truth))

    def __repr__(self) -> str:
        return f"Metric({self.name!r})"


def check_score(metric: str, score: object) -> float:
    """Return ``score`` as a float or raise ``MetricRangeError``."""
    if isinstance(score, bool) or not isinstance(score, numbers.Real):
        raise MetricRangeError(metric, score)
    value = float(score)
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise MetricRangeError(metric, score)
    return value


def create_metric(name: str, fn: MetricFn) -> Metric:
    return Metric(name, fn)


def metric_name(metric: Callable[..., Any]) -> str:
    if isinstance(metric, Metric):
        return metric.name
    return getattr(metric, "__name__", "unknown")


def _answer(value: Any) -> Any:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("answer")
    return None


def _normalize(text: str) -> str:
    return text.strip().lower()


def answer_exact_match(prediction: Any, ground_truth: Any) -> float:
    pred, truth = _answer(prediction), _answer(ground_truth)
    if not isinstance(pred, str) or not isinstance(truth, str):
        return 0.0
    return 1.0 if _normalize(pred) == _normalize(truth) else 0.0


def answer_passage_match(prediction: Any, ground_truth: Any) -> float:
    """1.0 if the predicted answer occurs in the ground-truth passage."""
    pred = _answer(prediction)
    if isinstance(ground_truth, Mapping):
        passage = ground_truth.get("context") or ground_truth.get("passage") or ground_truth.get("answer")
    else:
        passage = ground_truth if isinstance(ground_truth, str) else None
    if not isinstance(pred, str) or not pred.strip() or not isinstance(passage, str):
        return 0.0
    return 1.0 if _normalize(pred) in passage.lower() else 0.0


def token_f1(prediction: Any, ground_truth: Any) -> float:
    """Token-overlap F1 between predicted and expected answers."""
    pred, truth = _answer(prediction), _answer(ground_truth)
    if not isinstance(pred, str) or not isinstance(truth, str):
        return 0.0
    pred_tokens = _TOKEN.findall(pred.lower())
    truth_tokens = _TOKEN.findall(truth.lower())
    if not pred_tokens or not truth_tokens:
        return 1.0 if pred_tokens == truth_tokens else 0.0

    overlap = sum((Counter(pred_tokens) & Counter(truth_tokens)).values())
    if overlap == 0:
        return 0.0
    precision = overlap / len(pred_tokens)
    recall = overlap / len(truth_tokens)
    return 2 * precision * recall / (precision + recall)


def exact_equality(actual: Any, expected: Any) -> float:
    return 1.0 if actual == expected else 0.0


def _text(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("text", value.get("answer", value)))
    return str(value)


def word_jaccard(actual: Any, expected: Any) -> float:
    """Word-set Jaccard similarity of the ``text``/``answer`` of both sides."""
    actual_words = set(_text(actual).lower().split())
    expected_words = set(_text(expected).lower().split())
    union = actual_words | expected_words
    if not union:
        return 0.0
    return len(actual_words & expected_words) / len(union)


exact_match = create_metric("exact_match", answer_exact_match)
passage_match = create_metric("passage_match", answer_passage_match)
semantic_f1 = create_metric("semantic_f1", token_f1)
exact_equality_metric = create_metric("exact_equality", exact_equality)
semantic_similarity = create_metric("semantic_similarity", word_jaccard)

METRICS: dict[str, Metric] = {
    m.name: m
    for m in (exact_match, passage_match, semantic_f1, exact_equality_metric, semantic_similarity)
}


def get_metric(metric: str | Callable[..., Any]) -> Callable[..., Any]:
    """Resolve a metric name (``exact-match`` or ``exact_match``) or pass a callable through."""
    if callable(metric):
        return metric
    if isinstance(metric, str):
        found = METRICS.get(metric.replace("-", "_"))
        if found is not None:
            return found
    raise UnknownMetricError(metric, sorted(METRICS))
