"""Unit tests for VectorStore and the ranking helpers."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
import numpy as np
from unittest.mock import Mock, patch, MagicMock
from models.chunk import Chunk, ScoredChunk
from models.tag_filter import TagFilter
from services.vector_store import VectorStore, rank_chunks, cosine_similarities
from errors import StorageError
from conftest import make_chunk


HR = {"type": "policy", "department": "hr"}
FINANCE = {"type": "policy", "department": "finance"}


class TestCosineSimilarities:
    """Score computation."""

    def test_scores(self):
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0], [-1.0, 0.0]])
        scores = cosine_similarities([1.0, 0.0], matrix)

        assert scores[0] == pytest.approx(1.0)
        assert scores[1] == pytest.approx(0.0)
        assert scores[2] == pytest.approx(1 / np.sqrt(2))
        assert scores[3] == pytest.approx(-1.0)

    def test_zero_norm_scores_zero(self):
        scores = cosine_similarities([1.0, 0.0], np.array([[0.0, 0.0]]))
        assert scores[0] == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            cosine_similarities([1.0, 0.0, 0.0], np.array([[1.0, 0.0]]))


class TestRankChunks:
    """Filter-then-rank contract."""

    def test_descending_scores(self):
        chunks = [
            make_chunk("a", [0.0, 1.0]),
            make_chunk("b", [1.0, 0.0]),
            make_chunk("c", [1.0, 1.0]),
        ]
        result = rank_chunks([1.0, 0.0], chunks, top_k=3)

        assert [r.chunk.chunk_id for r in result] == ["b", "c", "a"]
        scores = [r.relevance_score for r in result]
        assert scores == sorted(scores, reverse=True)

    def test_equal_scores_keep_ingestion_order(self):
        chunks = [
            make_chunk("first", [2.0, 0.0]),
            make_chunk("other", [0.0, 1.0]),
            make_chunk("second", [1.0, 0.0]),
            make_chunk("third", [5.0, 0.0]),
        ]
        result = rank_chunks([1.0, 0.0], chunks, top_k=4)

        assert [r.chunk.chunk_id for r in result] == ["first", "second", "third", "other"]

    def test_filter_excludes_non_matching_regardless_of_similarity(self):
        chunks = [
            make_chunk("finance", [1.0, 0.0], tags=FINANCE),
            make_chunk("hr", [0.0, 1.0], tags=HR),
        ]
        result = rank_chunks([1.0, 0.0], chunks, TagFilter.from_dict(HR), top_k=5)

        assert [r.chunk.chunk_id for r in result] == ["hr"]
        assert all(TagFilter.from_dict(HR).matches(r.chunk.tags) for r in result)

    def test_filtered_chunks_are_never_scored(self):
        chunks = [
            make_chunk("hr", [1.0, 0.0], tags=HR),
            # Wrong dimension: scoring it would raise
            make_chunk("finance", [1.0, 0.0, 0.0], tags=FINANCE),
        ]
        result = rank_chunks([1.0, 0.0], chunks, TagFilter.from_dict(HR), top_k=5)
        assert [r.chunk.chunk_id for r in result] == ["hr"]

    def test_top_k_bound(self):
        chunks = [make_chunk(str(i), [1.0, float(i)]) for i in range(10)]
        assert len(rank_chunks([1.0, 0.0], chunks, top_k=3)) == 3

    def test_fewer_than_top_k_returns_all(self):
        chunks = [make_chunk("a", [1.0, 0.0]), make_chunk("b", [0.0, 1.0])]
        assert len(rank_chunks([1.0, 0.0], chunks, top_k=10)) == 2

    def test_no_candidates(self):
        assert rank_chunks([1.0, 0.0], [], top_k=5) == []
        chunks = [make_chunk("a", [1.0, 0.0], tags=HR)]
        assert rank_chunks([1.0, 0.0], chunks, TagFilter.from_dict({"region": "emea"}), top_k=5) == []


def paged(*pages):
    """range() side effect serving `pages` by offset, then an empty page."""
    starts = {}
    offset = 0
    for page in pages:
        starts[offset] = page
        offset += len(page)

    def page_at(start, end):
        query = Mock()
        query.execute.return_value = Mock(data=starts.get(start, []))
        return query
    return page_at


def mock_supabase(rows=None):
    """Supabase client mock whose select chains return `rows`."""
    client = MagicMock()
    table = client.table.return_value
    response = Mock(data=rows or [], count=len(rows or []))
    select = table.select.return_value
    select.order.return_value.range.side_effect = paged(rows or [])
    select.contains.return_value.order.return_value.range.side_effect = paged(rows or [])
    select.execute.return_value = response
    return client


def row(chunk_id, embedding, tags, document_id="policy_vacation_txt", position=0, row_id=1):
    return {
        "id": row_id,
        "chunk_id": chunk_id,
        "document_id": document_id,
        "source_name": "policy_vacation.txt",
        "position": position,
        "text": f"text {chunk_id}",
        "token_count": 10,
        "tags": tags,
        "embedding": embedding,
    }


def stored_chunk(chunk_id, position=0, document_id="policy_vacation_txt"):
    return Chunk(
        chunk_id=chunk_id,
        text="Employees get 20 vacation days.",
        document_id=document_id,
        source_name="policy_vacation.txt",
        position=position,
        token_count=5,
        tags=dict(HR),
        embedding=[0.1, 0.2, 0.3]
    )


class TestVectorStore:
    """Test suite for the Supabase-backed VectorStore."""

    @patch('services.vector_store.create_client')
    def test_initialization_success(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        assert store.table_name == "document_chunks"
        mock_create_client.assert_called_once_with("https://test.supabase.co", "test_key")

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            VectorStore(supabase_url=None, supabase_key="test_key")

        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            VectorStore(supabase_url="https://test.supabase.co", supabase_key=None)

    @patch('services.vector_store.create_client')
    def test_upsert_empty_list(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(ValueError, match="Chunks list cannot be empty"):
            store.upsert([])

    @patch('services.vector_store.create_client')
    def test_upsert_requires_embeddings(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")
        chunk = stored_chunk("policy_vacation_txt_0")
        chunk.embedding = None

        with pytest.raises(ValueError, match="has no embedding"):
            store.upsert([chunk])

    @patch('services.vector_store.create_client')
    def test_upsert_records(self, mock_create_client):
        mock_client = mock_supabase()
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        store.upsert([stored_chunk("policy_vacation_txt_0"), stored_chunk("policy_vacation_txt_1", 1)])

        mock_client.table.assert_called_with("document_chunks")
        upsert = mock_client.table.return_value.upsert
        upsert.assert_called_once()
        records = upsert.call_args[0][0]
        assert upsert.call_args[1] == {"on_conflict": "chunk_id"}
        assert len(records) == 2
        assert records[0]["chunk_id"] == "policy_vacation_txt_0"
        assert records[0]["document_id"] == "policy_vacation_txt"
        assert records[0]["tags"] == HR
        assert records[0]["embedding"] == [0.1, 0.2, 0.3]
        assert records[1]["position"] == 1

    @patch('services.vector_store.create_client')
    def test_upsert_database_failure(self, mock_create_client):
        mock_client = mock_supabase()
        mock_client.table.return_value.upsert.side_effect = Exception("Database error")
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError, match="Failed to add chunks"):
            store.upsert([stored_chunk("policy_vacation_txt_0")])

    @patch('services.vector_store.create_client')
    def test_replace_document_removes_stale_positions(self, mock_create_client):
        mock_client = mock_supabase()
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        store.replace_document(
            "policy_vacation_txt",
            [stored_chunk("policy_vacation_txt_0"), stored_chunk("policy_vacation_txt_1", 1)]
        )

        table = mock_client.table.return_value
        table.upsert.assert_called_once()
        table.delete.return_value.eq.assert_called_once_with("document_id", "policy_vacation_txt")
        table.delete.return_value.eq.return_value.gte.assert_called_once_with("position", 2)

    @patch('services.vector_store.create_client')
    def test_replace_document_failed_write_keeps_old_rows(self, mock_create_client):
        mock_client = mock_supabase()
        mock_client.table.return_value.upsert.side_effect = Exception("Database error")
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError):
            store.replace_document("policy_vacation_txt", [stored_chunk("policy_vacation_txt_0")])

        mock_client.table.return_value.delete.assert_not_called()

    @patch('services.vector_store.create_client')
    def test_replace_document_failed_cleanup_raises_after_write(self, mock_create_client):
        mock_client = mock_supabase()
        delete = mock_client.table.return_value.delete.return_value
        delete.eq.return_value.gte.return_value.execute.side_effect = Exception("connection reset")
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError, match="ingest the document again") as exc_info:
            store.replace_document("policy_vacation_txt", [stored_chunk("policy_vacation_txt_0")])

        assert "from position 1" in str(exc_info.value)
        mock_client.table.return_value.upsert.assert_called_once()

    @patch('services.vector_store.create_client')
    def test_replace_document_rejects_foreign_chunks(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(ValueError, match="must belong"):
            store.replace_document("other_txt", [stored_chunk("policy_vacation_txt_0")])

    @patch('services.vector_store.create_client')
    def test_search_empty_embedding(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(ValueError, match="Query embedding cannot be empty"):
            store.search([])

    @patch('services.vector_store.create_client')
    def test_search_invalid_top_k(self, mock_create_client):
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(ValueError, match="top_k must be positive"):
            store.search([0.1, 0.2], top_k=0)

    @patch('services.vector_store.create_client')
    def test_search_pushes_filter_down_and_ranks(self, mock_create_client):
        rows = [
            row("policy_vacation_txt_0", "[0.0,1.0]", HR, row_id=1),
            row("policy_vacation_txt_1", [1.0, 0.0], HR, position=1, row_id=2),
        ]
        mock_client = mock_supabase(rows)
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        result = store.search([1.0, 0.0], tag_filter=TagFilter.from_dict(HR), top_k=5)

        select = mock_client.table.return_value.select.return_value
        select.contains.assert_called_with("tags", HR)
        select.contains.return_value.order.assert_called_with("id")
        assert [r.chunk.chunk_id for r in result] == ["policy_vacation_txt_1", "policy_vacation_txt_0"]
        assert result[0].relevance_score == pytest.approx(1.0)
        assert result[1].chunk.embedding == [0.0, 1.0]
        assert isinstance(result[0], ScoredChunk)

    @patch('services.vector_store.create_client')
    def test_search_drops_rows_failing_filter(self, mock_create_client):
        rows = [
            row("finance_txt_0", [1.0, 0.0], FINANCE, document_id="finance_txt", row_id=1),
            row("policy_vacation_txt_0", [0.5, 0.5], HR, row_id=2),
        ]
        mock_create_client.return_value = mock_supabase(rows)
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        result = store.search([1.0, 0.0], tag_filter=TagFilter.from_dict(HR))

        assert [r.chunk.document_id for r in result] == ["policy_vacation_txt"]

    @patch('services.vector_store.create_client')
    def test_search_without_filter(self, mock_create_client):
        rows = [row("policy_vacation_txt_0", [1.0, 0.0], HR)]
        mock_client = mock_supabase(rows)
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        result = store.search([1.0, 0.0])

        mock_client.table.return_value.select.return_value.contains.assert_not_called()
        assert len(result) == 1

    @patch('services.vector_store.create_client')
    def test_search_reads_every_page_when_server_caps_rows(self, mock_create_client):
        # Server returns at most 2 rows per request although PAGE_SIZE asks for more
        rows = [
            row(f"policy_vacation_txt_{i}", [1.0, float(i)], HR, position=i, row_id=i + 1)
            for i in range(5)
        ]
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        range_call = mock_client.table.return_value.select.return_value.order.return_value.range
        range_call.side_effect = paged(rows[:2], rows[2:4], rows[4:])
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        result = store.search([1.0, 0.0], top_k=10)

        assert [call[0] for call in range_call.call_args_list] == [
            (0, 999), (2, 1001), (4, 1003), (5, 1004)
        ]
        assert len(result) == 5
        assert result[0].chunk.chunk_id == "policy_vacation_txt_0"

    @patch('services.vector_store.create_client')
    def test_search_database_failure(self, mock_create_client):
        mock_client = mock_supabase()
        mock_client.table.return_value.select.side_effect = Exception("Database error")
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError, match="Failed to search vector store"):
            store.search([0.1, 0.2])

    @patch('services.vector_store.create_client')
    def test_search_dimension_mismatch(self, mock_create_client):
        mock_create_client.return_value = mock_supabase([row("policy_vacation_txt_0", [1.0, 0.0, 0.0], HR)])
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError, match="Failed to rank"):
            store.search([1.0, 0.0])

    @patch('services.vector_store.create_client')
    def test_list_documents(self, mock_create_client):
        rows = [
            {"document_id": "a_txt", "source_name": "a.txt"},
            {"document_id": "a_txt", "source_name": "a.txt"},
            {"document_id": "b_txt", "source_name": "b.txt"},
        ]
        mock_create_client.return_value = mock_supabase(rows)
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        assert store.list_documents() == [
            {"document_id": "a_txt", "source_name": "a.txt", "chunks": 2},
            {"document_id": "b_txt", "source_name": "b.txt", "chunks": 1},
        ]

    @patch('services.vector_store.create_client')
    def test_list_documents_across_pages(self, mock_create_client):
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        range_call = mock_client.table.return_value.select.return_value.order.return_value.range
        range_call.side_effect = paged(
            [{"document_id": "a_txt", "source_name": "a.txt"}],
            [{"document_id": "a_txt", "source_name": "a.txt"}, {"document_id": "b_txt", "source_name": "b.txt"}],
        )
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        assert store.list_documents() == [
            {"document_id": "a_txt", "source_name": "a.txt", "chunks": 2},
            {"document_id": "b_txt", "source_name": "b.txt", "chunks": 1},
        ]
        assert range_call.call_count == 3

    @patch('services.vector_store.create_client')
    def test_delete_document(self, mock_create_client):
        mock_client = mock_supabase()
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        store.delete_document("a_txt")

        mock_client.table.return_value.delete.return_value.eq.assert_called_once_with("document_id", "a_txt")

    @patch('services.vector_store.create_client')
    def test_count(self, mock_create_client):
        mock_client = MagicMock()
        mock_client.table.return_value.select.return_value.execute.return_value = Mock(count=42)
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        assert store.count() == 42
        mock_client.table.return_value.select.assert_called_with("chunk_id", count="exact")

    @patch('services.vector_store.create_client')
    def test_clear_failure(self, mock_create_client):
        mock_client = MagicMock()
        mock_client.table.return_value.delete.side_effect = Exception("Database error")
        mock_create_client.return_value = mock_client
        store = VectorStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(StorageError, match="Failed to clear vector store"):
            store.clear()
