"""Evaluation engine: score a pipeline against a dataset with a metric."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

import structlog

from pipeopt.concurrency import parallel_map, with_timeout
from pipeopt.config import EvaluationConfig
from pipeopt.errors import InvalidDatasetError, MetricRangeError
from pipeopt.evaluate.metrics import check_score, get_metric, metric_name

logger = structlog.get_logger()

Pipeline = Callable[[dict[str, Any]], Any]

GROUND_TRUTH_KEYS = ("answer", "expected", "ground_truth", "ground-truth")


@dataclass(frozen=True)
class ExampleResult:
    """Outcome of running the pipeline on a single example."""

    success: bool
    example: Mapping[str, Any]
    score: float = 0.0
    prediction: Any = None
    ground_truth: Any = None
    error: BaseException | None = None
    metric: str = "unknown"


@dataclass(frozen=True)
class EvaluationReport:
    """Aggregate result: ``score`` is the mean over successful examples only."""

    score: float
    count: int
    total: int
    results: tuple[ExampleResult, ...] = field(default_factory=tuple)
    errors: tuple[ExampleResult, ...] = field(default_factory=tuple)


def model_input(example: Mapping[str, Any]) -> dict[str, Any]:
    """The example with its ground-truth fields removed."""
    return {k: v for k, v in example.items() if k not in GROUND_TRUTH_KEYS}


def ground_truth_of(example: Mapping[str, Any]) -> Any:
    for key in ("ground_truth", "ground-truth", "expected"):
        if example.get(key) is not None:
            return example[key]
    return example


async def _invoke(pipeline: Pipeline, inputs: dict[str, Any]) -> Any:
    prediction = pipeline(inputs)
    if inspect.isawaitable(prediction):
        prediction = await prediction
    return prediction


async def evaluate_example(
    pipeline: Pipeline,
    example: Mapping[str, Any],
    metric: Callable[[Any, Any], float],
    timeout_ms: float,
) -> ExampleResult:
    """Run one example. Pipeline failures and timeouts become failed results."""
    name = metric_name(metric)
    try:
        outcome = await with_timeout(_invoke(pipeline, model_input(example)), timeout_ms)
    except Exception as exc:
        logger.warning("evaluation_example_failed", example_id=example.get("id"), error=str(exc))
        return ExampleResult(success=False, example=example, error=exc, metric=name)

    if outcome.timed_out:
        exc = TimeoutError(f"Pipeline did not answer within {timeout_ms}ms")
        logger.warning("evaluation_example_timeout", example_id=example.get("id"), timeout_ms=timeout_ms)
        return ExampleResult(success=False, example=example, error=exc, metric=name)

    prediction = outcome.value
    truth = ground_truth_of(example)
    try:
        score = check_score(name, metric(prediction, truth))
    except MetricRangeError:
        raise
    except Exception as exc:
        logger.warning("evaluation_metric_failed", example_id=example.get("id"), error=str(exc))
        return ExampleResult(
            success=False,
            example=example,
            prediction=prediction,
            ground_truth=truth,
            error=exc,
            metric=name,
        )

    return ExampleResult(
        success=True,
        example=example,
        score=score,
        prediction=prediction,
        ground_truth=truth,
        metric=name,
    )


def summarize(results: Sequence[ExampleResult]) -> EvaluationReport:
    successful = [r for r in results if r.success]
    scores = [r.score for r in successful]
    return EvaluationReport(
        score=sum(scores) / len(scores) if scores else 0.0,
        count=len(successful),
        total=len(results),
        results=tuple(results),
        errors=tuple(r for r in results if r.error is not None),
    )


async def evaluate(
    pipeline: Pipeline,
    dataset: Sequence[Mapping[str, Any]],
    metric: Callable[[Any, Any], float] | str,
    options: EvaluationConfig | None = None,
) -> EvaluationReport:
    """Evaluate ``pipeline`` on every example of ``dataset``.

    A failing or slow example never aborts the batch; it is recorded with a
    0.0 score and excluded from the mean. Parallel mode only changes wall
    time, not the report.
    """
    options = options or EvaluationConfig()
    metric_fn = get_metric(metric)

    async def _one(example: Mapping[str, Any]) -> ExampleResult:
        return await evaluate_example(pipeline, example, metric_fn, options.timeout_ms)

    if options.parallel:
        results = await parallel_map(_one, dataset, options.max_concurrency)
    else:
        results = [await _one(example) for example in dataset]

    report = summarize(results)
    logger.debug(
        "evaluation_complete",
        score=round(report.score, 4),
        count=report.count,
        total=report.total,
        metric=metric_name(metric_fn),
    )
    return report


# ---------------------------------------------------------------------------
# Dataset helpers
# ---------------------------------------------------------------------------

_INPUT_KEYS = ("question", "input", "query")
_OUTPUT_KEYS = ("answer", "output", "expected")


def format_dataset(dataset: Sequence[Any]) -> list[dict[str, Any]]:
    """Normalise a dataset to ``{"question": ..., "answer": ...}`` examples.

    Accepts examples that already have ``question``/``answer``, ``(input,
    output)`` pairs, and mappings keyed by ``input``/``query`` and
    ``output``/``expected``.
    """
    if not isinstance(dataset, Sequence) or isinstance(dataset, (str, bytes)):
        raise InvalidDatasetError(f"Unsupported dataset format: {type(dataset).__name__}")
    if not dataset:
        return []

    first = dataset[0]
    if isinstance(first, (tuple, list)) and len(first) == 2:
        return [{"question": inp, "answer": out} for inp, out in dataset]

    if isinstance(first, Mapping):
        formatted = []
        for example in dataset:
            in_key = next((k for k in _INPUT_KEYS if example.get(k) is not None), "question")
            out_key = next((k for k in _OUTPUT_KEYS if example.get(k) is not None), "answer")
            formatted.append({**example, "question": example.get(in_key), "answer": example.get(out_key)})
        return formatted

    raise InvalidDatasetError(f"Unsupported dataset format: sample={list(dataset[:2])!r}")


async def evaluate_dataset(
    pipeline: Pipeline,
    dataset: Sequence[Any],
    metric: Callable[[Any, Any], float] | str,
    options: EvaluationConfig | None = None,
) -> EvaluationReport:
    """``evaluate`` after normalising the dataset and resolving a metric name."""
    return await evaluate(pipeline, format_dataset(dataset), get_metric(metric), options)


def format_report(report: EvaluationReport, detail_limit: int = 10) -> str:
    """Human-readable summary of a report."""
    lines = [
        "=== Evaluation Results ===",
        f"Score: {report.score:.3f} ({report.count}/{report.total} examples)",
    ]
    if report.errors:
        lines.append("Errors:")
        lines.extend(f"  - {r.error}" for r in report.errors)
    if report.results and report.total <= detail_limit:
        lines.append("Detailed Results:")
        for r in report.results:
            if r.success:
                lines.append(
                    f"  + Score: {r.score:.3f} - {r.example.get('question')!r} -> {r.prediction!r}"
                )
            else:
                lines.append(f"  x Error: {r.error}")
    return "\n".join(lines)
