import math

import pytest

from app.embeddings.client import EmbeddingClient
from app.memory.retrieval import Retriever
from tests.conftest import FakeEmbedder

USER = "6281234567890"


def _at(cos: float) -> list[float]:
    return [cos, math.sqrt(1 - cos * cos)]


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(vectors={"apa alergi saya?": [1.0, 0.0]})


@pytest.fixture
def retriever(repository, embedder) -> Retriever:
    return Retriever(
        repository, EmbeddingClient(embedder, model="test-embed"), threshold=0.75, top_k=3
    )


async def test_relevant_fact_returned(retriever, repository):
    await repository.save_fact_chunks(USER, [("Saya alergi kacang", _at(0.81))])
    matches = await retriever.find_relevant(USER, "apa alergi saya?")
    assert [m.content for m in matches] == ["Saya alergi kacang"]
    assert matches[0].similarity == pytest.approx(0.81, abs=1e-4)


async def test_irrelevant_fact_filtered(retriever, repository):
    await repository.save_fact_chunks(USER, [("Saya suka kopi", _at(0.5))])
    assert await retriever.find_relevant(USER, "apa alergi saya?") == []


async def test_capped_at_top_k_in_descending_order(retriever, repository):
    for cos in (0.8, 0.95, 0.76, 0.9, 0.85):
        await repository.save_fact_chunks(USER, [(f"fakta {cos}", _at(cos))])

    matches = await retriever.find_relevant(USER, "apa alergi saya?")
    assert [m.content for m in matches] == ["fakta 0.95", "fakta 0.9", "fakta 0.85"]


async def test_only_owner_facts_returned(retriever, repository):
    await repository.save_fact_chunks("someone-else", [("Alergi udang", [1.0, 0.0])])
    assert await retriever.find_relevant(USER, "apa alergi saya?") == []


async def test_empty_query_makes_no_provider_call(retriever, embedder):
    assert await retriever.find_relevant(USER, "   ") == []
    assert embedder.calls == []


async def test_embedding_failure_returns_empty(repository):
    class Failing:
        async def embed(self, texts, model=None):
            raise RuntimeError("ollama down")

    await repository.save_fact_chunks(USER, [("Saya alergi kacang", [1.0, 0.0])])
    retriever = Retriever(repository, EmbeddingClient(Failing(), model="m", timeout=1.0))
    assert await retriever.find_relevant(USER, "alergi") == []
