import asyncio
import json

import lancedb
import pytest

from yoursai.src.core.errors import EmbeddingDimensionError, EmbeddingError, SecretResolutionError
from yoursai.src.core.ingestor import IngestOrchestrator
from yoursai.src.database.vector_store import KnowledgeVectorStore, LanceConnectionPool


class EmbedderStub:
    def __init__(self, fail_on=None, dimension=4):
        self.fail_on = fail_on
        self.dimension = dimension
        self.calls = []
        self.methods = []

    async def embed(self, text, api_key):
        self.methods.append("query")
        return await self._vector(text)

    async def embed_document(self, text, api_key):
        self.methods.append("document")
        return await self._vector(text)

    async def _vector(self, text):
        self.calls.append(text)
        if self.fail_on is not None and len(self.calls) - 1 == self.fail_on:
            raise EmbeddingError("quota exceeded")
        return [float(len(self.calls))] * self.dimension


class SecretsStub:
    def __init__(self, fail=False):
        self.fail = fail

    def get_secret(self, name):
        if self.fail:
            raise SecretResolutionError("missing")
        return "gemini-key"


@pytest.fixture
def store(test_settings):
    pool = LanceConnectionPool(db_path=test_settings.LANCEDB_PATH, table_name="aiknowledge", dimension=4)
    return KnowledgeVectorStore(pool)


def _ingest(test_settings, sleep_recorder, store, embedder=None, secrets=None):
    embedder = embedder or EmbedderStub()
    return IngestOrchestrator(embedder, store, secrets or SecretsStub(), config=test_settings, sleep=sleep_recorder), embedder


def _run(ingest, auth, body):
    if isinstance(body, dict):
        body = json.dumps(body)
    return asyncio.run(ingest.handle(auth, body))


def test_thousand_word_document_is_stored_as_three_chunks(test_settings, sleep_recorder, store, bearer):
    ingest, embedder = _ingest(test_settings, sleep_recorder, store)
    text = " ".join(f"word{i}" for i in range(1000))

    response = _run(ingest, bearer("alice"), {"documentName": "notes.txt", "text": text})

    assert response.status_code == 200
    assert response.body == {"message": "Document 'notes.txt' ingested successfully", "chunks": 3}
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert [len(chunk.split()) for chunk in embedder.calls] == [375, 375, 250]
    assert store.count(document_name="notes.txt", owner="alice") == 3
    assert store.count() == 3
    # pause between chunks, not before the first
    assert len(sleep_recorder.calls) == 2
    assert embedder.methods == ["document"] * 3


def test_embedding_failure_rolls_back_whole_document(test_settings, sleep_recorder, store, bearer):
    ingest, embedder = _ingest(test_settings, sleep_recorder, store, embedder=EmbedderStub(fail_on=2))
    text = " ".join(["word"] * 1000)

    response = _run(ingest, bearer("alice"), {"documentName": "notes.txt", "text": text})

    assert response.status_code == 500
    assert response.body == {"error": "Failed to ingest document"}
    assert len(embedder.calls) == 3
    assert store.count(document_name="notes.txt") == 0


def test_dimension_mismatch_rolls_back(test_settings, sleep_recorder, store, bearer):
    ingest, _ = _ingest(test_settings, sleep_recorder, store, embedder=EmbedderStub(dimension=3))
    response = _run(ingest, bearer("alice"), {"documentName": "d.md", "text": "a b c"})
    assert response.status_code == 500
    assert store.count() == 0
    assert issubclass(EmbeddingDimensionError, EmbeddingError)


def test_missing_credential_is_401(test_settings, sleep_recorder, store):
    ingest, embedder = _ingest(test_settings, sleep_recorder, store)
    response = _run(ingest, "Bearer nope", {"documentName": "d.md", "text": "a b c"})
    assert response.status_code == 401
    assert response.body == {"error": "Authentication required"}
    assert embedder.calls == []


@pytest.mark.parametrize("body", ["{", '{"text": "abc"}', '{"documentName": "d.md"}', '{"documentName": " ", "text": "abc"}', '{"documentName": "d.md", "text": 7}'])
def test_invalid_body_is_400(body, test_settings, sleep_recorder, store, bearer):
    ingest, embedder = _ingest(test_settings, sleep_recorder, store)
    response = _run(ingest, bearer(), body)
    assert response.status_code == 400
    assert response.body == {"error": "Invalid request body"}
    assert embedder.calls == []


def test_oversized_document_is_413_before_any_work(test_settings, sleep_recorder, store, bearer):
    small = test_settings.model_copy(update={"MAX_DOCUMENT_BYTES": 10})
    ingest, embedder = _ingest(small, sleep_recorder, store)

    # 6 characters, 12 UTF-8 bytes
    response = _run(ingest, bearer(), {"documentName": "d.md", "text": "éééééé"})

    assert response.status_code == 413
    assert "10 bytes" in response.body["error"]
    assert embedder.calls == []


def test_secret_failure_is_500(test_settings, sleep_recorder, store, bearer):
    ingest, _ = _ingest(test_settings, sleep_recorder, store, secrets=SecretsStub(fail=True))
    response = _run(ingest, bearer(), {"documentName": "d.md", "text": "a b c"})
    assert response.status_code == 500
    assert response.body == {"error": "Failed to get API key"}


def test_database_connection_failure_is_500(test_settings, sleep_recorder, store, bearer, monkeypatch):
    def broken_connect(*args, **kwargs):
        raise OSError("disk unavailable")

    monkeypatch.setattr(lancedb, "connect", broken_connect)
    ingest, embedder = _ingest(test_settings, sleep_recorder, store)

    response = _run(ingest, bearer(), {"documentName": "d.md", "text": "a b c"})

    assert response.status_code == 500
    assert response.body == {"error": "Database connection failed"}
    assert embedder.calls == []


def test_documents_are_partitioned_by_owner(test_settings, sleep_recorder, store, bearer):
    ingest, _ = _ingest(test_settings, sleep_recorder, store)
    _run(ingest, bearer("alice"), {"documentName": "a.md", "text": "alpha beta"})
    _run(ingest, bearer("bob"), {"documentName": "b.md", "text": "gamma delta"})

    hits = store.nearest([1.0, 1.0, 1.0, 1.0], owner="bob", k=3)
    assert [hit.document_name for hit in hits] == ["b.md"]


def test_document_without_words_commits_zero_chunks(test_settings, sleep_recorder, store, bearer):
    ingest, embedder = _ingest(test_settings, sleep_recorder, store)

    response = _run(ingest, bearer("alice"), {"documentName": "d.md", "text": "  \n\t "})

    assert response.status_code == 200
    assert response.body == {"message": "Document 'd.md' ingested successfully", "chunks": 0}
    assert embedder.calls == []
    assert store.count() == 0


def test_commit_failure_is_500_and_nothing_is_stored(test_settings, sleep_recorder, store, bearer, monkeypatch):
    def failing_add(self, *args, **kwargs):
        raise OSError("write failed")

    ingest, embedder = _ingest(test_settings, sleep_recorder, store)
    text = " ".join(["word"] * 1000)

    with monkeypatch.context() as patch:
        patch.setattr(lancedb.table.LanceTable, "add", failing_add)
        response = _run(ingest, bearer("alice"), {"documentName": "notes.txt", "text": text})

    assert response.status_code == 500
    assert response.body == {"error": "Failed to ingest document"}
    assert len(embedder.calls) == 3
    assert store.count(document_name="notes.txt") == 0
