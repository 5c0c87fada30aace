"""Tests for the evaluation engine and metric library."""

import asyncio

import numpy as np
import pytest
from _helpers import answer_pipeline, constant_metric

from pipeopt.config import EvaluationConfig
from pipeopt.errors import InvalidDatasetError, MetricRangeError, UnknownMetricError
from pipeopt.evaluate import (
    create_metric,
    evaluate,
    evaluate_dataset,
    exact_match,
    format_dataset,
    format_report,
    get_metric,
    passage_match,
    semantic_f1,
    semantic_similarity,
)


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_single_exact_match(self) -> None:
        report = await evaluate(
            answer_pipeline("4"), [{"question": "2+2", "answer": "4"}], exact_match
        )
        assert report.score == 1.0
        assert (report.count, report.total) == (1, 1)
        assert report.errors == ()

    @pytest.mark.asyncio
    async def test_numpy_metric_scores_count(self) -> None:
        report = await evaluate(
            answer_pipeline("4"), [{"question": "2+2", "answer": "4"}], lambda p, t: np.float32(1.0)
        )
        assert report.score == 1.0
        assert report.errors == ()

    @pytest.mark.asyncio
    async def test_ground_truth_fields_are_hidden_from_pipeline(self) -> None:
        seen = []

        def pipeline(inputs):
            seen.append(inputs)
            return {"answer": "x"}

        example = {"question": "q", "answer": "a", "expected": "e", "ground_truth": "g", "ground-truth": "h"}
        await evaluate(pipeline, [example], constant_metric(0.5))
        assert seen == [{"question": "q"}]

    @pytest.mark.asyncio
    async def test_ground_truth_precedence(self) -> None:
        received = []

        def metric(prediction, truth):
            received.append(truth)
            return 1.0

        dataset = [
            {"question": "a", "ground_truth": "gt", "expected": "exp"},
            {"question": "b", "expected": "exp"},
            {"question": "c", "answer": "whole"},
        ]
        await evaluate(answer_pipeline("x"), dataset, metric)
        assert received[:2] == ["gt", "exp"]
        assert received[2] == dataset[2]

    @pytest.mark.asyncio
    async def test_pipeline_failure_becomes_failed_result(self, qa_dataset) -> None:
        def pipeline(inputs):
            if inputs["question"] == "3*3":
                raise RuntimeError("model crashed")
            return {"answer": "4"}

        report = await evaluate(pipeline, qa_dataset, exact_match)
        assert report.total == 3
        assert report.count == 2
        assert report.score == pytest.approx(0.5)
        assert len(report.errors) == 1
        assert isinstance(report.errors[0].error, RuntimeError)
        assert report.results[2].score == 0.0

    @pytest.mark.asyncio
    async def test_slow_example_times_out(self) -> None:
        async def pipeline(inputs):
            if inputs["question"] == "slow":
                await asyncio.sleep(0.5)
            return {"answer": "ok"}

        dataset = [{"question": "slow", "answer": "ok"}, {"question": "fast", "answer": "ok"}]
        report = await evaluate(pipeline, dataset, exact_match, EvaluationConfig(timeout_ms=20))
        assert [r.success for r in report.results] == [False, True]
        assert isinstance(report.results[0].error, TimeoutError)
        assert report.score == 1.0

    @pytest.mark.asyncio
    async def test_all_failures_score_zero(self) -> None:
        def pipeline(inputs):
            raise ValueError("nope")

        report = await evaluate(pipeline, [{"question": "q", "answer": "a"}], exact_match)
        assert report.score == 0.0
        assert report.count == 0

    @pytest.mark.asyncio
    async def test_out_of_range_metric_propagates(self) -> None:
        with pytest.raises(MetricRangeError):
            await evaluate(answer_pipeline("a"), [{"question": "q"}], constant_metric(1.5))

    @pytest.mark.asyncio
    async def test_non_numeric_metric_propagates(self) -> None:
        with pytest.raises(MetricRangeError):
            await evaluate(answer_pipeline("a"), [{"question": "q"}], lambda p, t: "high")

    @pytest.mark.asyncio
    async def test_metric_exception_marks_example_failed(self) -> None:
        def metric(prediction, truth):
            raise KeyError("missing")

        report = await evaluate(answer_pipeline("a"), [{"question": "q"}], metric)
        assert report.count == 0
        assert report.results[0].prediction == {"answer": "a"}

    @pytest.mark.asyncio
    async def test_parallel_matches_sequential(self, qa_dataset) -> None:
        async def pipeline(inputs):
            await asyncio.sleep(0.001)
            return {"answer": {"2+2": "4", "3*3": "9"}.get(inputs["question"], "?")}

        sequential = await evaluate(pipeline, qa_dataset, exact_match)
        parallel = await evaluate(
            pipeline, qa_dataset, exact_match, EvaluationConfig(parallel=True, max_concurrency=2)
        )
        assert parallel.score == sequential.score
        assert [r.score for r in parallel.results] == [r.score for r in sequential.results]

    @pytest.mark.asyncio
    async def test_metric_by_name(self) -> None:
        report = await evaluate(answer_pipeline("4"), [{"question": "2+2", "answer": "4"}], "exact-match")
        assert report.results[0].metric == "exact_match"


class TestDatasets:
    def test_pairs(self) -> None:
        assert format_dataset([("q", "a")]) == [{"question": "q", "answer": "a"}]

    def test_input_output_keys(self) -> None:
        formatted = format_dataset([{"input": "q", "output": "a"}])
        assert formatted[0]["question"] == "q"
        assert formatted[0]["answer"] == "a"

    def test_query_expected_keys(self) -> None:
        formatted = format_dataset([{"query": "q", "expected": "a"}])
        assert (formatted[0]["question"], formatted[0]["answer"]) == ("q", "a")

    def test_rejects_unknown_shapes(self) -> None:
        with pytest.raises(InvalidDatasetError):
            format_dataset([1, 2, 3])
        with pytest.raises(InvalidDatasetError):
            format_dataset("not a dataset")

    @pytest.mark.asyncio
    async def test_evaluate_dataset_normalises_pairs(self) -> None:
        report = await evaluate_dataset(answer_pipeline("4"), [("2+2", "4")], "exact_match")
        assert report.score == 1.0

    def test_format_report(self) -> None:
        from pipeopt.evaluate.core import EvaluationReport

        text = format_report(EvaluationReport(score=0.75, count=3, total=4))
        assert "0.750" in text
        assert "3/4" in text


class TestMetrics:
    def test_exact_match_normalises_case_and_whitespace(self) -> None:
        assert exact_match({"answer": " Paris "}, {"answer": "paris"}) == 1.0
        assert exact_match("Paris", "London") == 0.0
        assert exact_match(None, "x") == 0.0

    def test_passage_match(self) -> None:
        assert passage_match("eiffel", {"context": "The Eiffel Tower is in Paris"}) == 1.0
        assert passage_match("", {"context": "anything"}) == 0.0

    def test_semantic_f1(self) -> None:
        assert semantic_f1("the cat sat", "the cat sat") == pytest.approx(1.0)
        assert 0.0 < semantic_f1("the cat", "the dog") < 1.0
        assert semantic_f1("alpha", "beta") == 0.0

    def test_semantic_similarity_is_jaccard(self) -> None:
        assert semantic_similarity({"text": "a b"}, {"text": "b c"}) == pytest.approx(1 / 3)

    def test_create_metric_validates_range(self) -> None:
        bad = create_metric("bad", lambda p, t: -0.1)
        with pytest.raises(MetricRangeError):
            bad("x", "y")

    def test_bool_is_not_a_score(self) -> None:
        with pytest.raises(MetricRangeError):
            create_metric("boolish", lambda p, t: True)("x", "y")

    def test_numpy_scalars_are_scores(self) -> None:
        assert create_metric("np64", lambda p, t: np.float64(0.25))("x", "y") == 0.25
        assert create_metric("npint", lambda p, t: np.int64(1))("x", "y") == 1.0
        with pytest.raises(MetricRangeError):
            create_metric("np_out_of_range", lambda p, t: np.float32(1.5))("x", "y")

    def test_get_metric(self) -> None:
        assert get_metric("semantic-f1") is semantic_f1
        fn = constant_metric(0.2)
        assert get_metric(fn) is fn
        with pytest.raises(UnknownMetricError):
            get_metric("bleu")
