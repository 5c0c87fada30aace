"""Basic example: optimize a prompt pipeline over a mock backend."""

import asyncio
import random

from pipeopt.backend.base import EmbeddingResult, GenerationResult
from pipeopt.config import OptimizationConfig
from pipeopt.evaluate import evaluate, format_report
from pipeopt.logs import configure_logging
from pipeopt.middleware import backend_info, with_middlewares
from pipeopt.optimize import analyze_convergence, optimize
from pipeopt.pipeline import PromptPipeline
from pipeopt.storage import InMemoryStorage

ANSWERS = {"2+2": "4", "3*3": "9", "10-7": "3", "capital of France": "Paris"}


class MockBackend:
    """Answers arithmetic questions, occasionally wrong."""

    async def generate(self, prompt: str, options=None) -> GenerationResult:
        await asyncio.sleep(0.01)
        question = prompt.rsplit("Question: ", 1)[-1].split("\n", 1)[0]
        answer = ANSWERS.get(question, "unknown")
        if random.random() < 0.2:
            answer = "not sure"
        return GenerationResult(text=answer, model="mock")

    async def embed(self, text: str, options=None) -> EmbeddingResult:
        return EmbeddingResult(vector=(0.0,), model="mock")

    async def stream(self, prompt: str, options=None):
        return None


async def main() -> None:
    configure_logging(level="info")

    backend = with_middlewares(
        MockBackend(),
        {
            "throttle": {"rps": 50},
            "retry": {"max_retries": 2, "initial_delay_ms": 50},
            "timeout": {"timeout_ms": 2000},
            "logging": {"log_requests": False},
        },
    )
    print(f"Backend layers: {backend_info(backend)['middleware_layers']}")

    pipeline = PromptPipeline(backend)
    trainset = [{"question": q, "answer": a} for q, a in ANSWERS.items()]

    baseline = await evaluate(pipeline, trainset, "exact_match")
    print(format_report(baseline))

    storage = InMemoryStorage()
    options = OptimizationConfig(beam_width=2, max_iterations=3, concurrency=4, checkpoint_interval=1)
    result = await optimize(pipeline, trainset, "exact_match", options, storage=storage)

    print(f"\nOptimization complete (run {result.run_id})")
    print(f"Best score: {result.best_score:.3f}, converged: {result.converged}")
    for entry in result.history:
        print(f"  Iter {entry.iteration}: score={entry.score:.3f}, candidates={entry.candidates_evaluated}")

    convergence = analyze_convergence(result.history, threshold=0.01)
    print(f"Convergence: {convergence.converged} (variance={convergence.variance})")


if __name__ == "__main__":
    asyncio.run(main())
