"""
Tests for the ingestion pipeline and file readers (no HTTP).
"""

import pytest

from smart_dairy.core.errors import PersistenceError
from smart_dairy.ingest.loader import bytes_to_text, profile_table
from smart_dairy.services.ingestion_service import (
    NoFilesError,
    _sanitize_filename,
    extract_chunks,
    ingest_documents,
    ingest_farm_data,
)

LONG_TEXT = " ".join(f"Paragraph {i}: heifers should reach breeding weight before first service." for i in range(40))


class TestLoader:
    def test_text_bytes_are_decoded(self) -> None:
        assert bytes_to_text("Kühe".encode(), "notes.txt") == "Kühe"

    def test_profile_table(self, herd_csv) -> None:
        assert profile_table(herd_csv) == (4, ["cow_id", "date", "milk_yield"])

    def test_unparseable_table_profiles_empty(self, tmp_path) -> None:
        bad = tmp_path / "broken.xlsx"
        bad.write_bytes(b"not a spreadsheet")
        assert profile_table(bad) == (0, [])


class TestSanitizeFilename:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("../../etc/passwd", "passwd"),
            ("herd data 2024.csv", "herd_data_2024.csv"),
            ("", "unnamed"),
        ],
    )
    def test_sanitize(self, raw: str, expected: str) -> None:
        assert _sanitize_filename(raw) == expected


class TestIngestDocuments:
    @pytest.mark.asyncio
    async def test_long_text_is_chunked_and_stored(self, store, tmp_path) -> None:
        (result,) = await ingest_documents(store, [("heifers.txt", LONG_TEXT.encode())], upload_dir=tmp_path)

        assert result["chunk_count"] > 1
        fragments = await store.get_fragments([result["id"]])
        assert [f.chunk_index for f in fragments] == list(range(result["chunk_count"]))
        assert all(f.document_name == "heifers.txt" for f in fragments)
        saved = list(tmp_path.glob("*-heifers.txt"))
        assert len(saved) == 1

    @pytest.mark.asyncio
    async def test_rejected_types_are_reported_per_file(self, store, tmp_path) -> None:
        results = await ingest_documents(store, [("scan.png", b"\x89PNG")], upload_dir=tmp_path)
        assert results == [{"file_name": "scan.png", "error": "Only PDF and text files are allowed"}]
        assert await store.list_documents() == []

    @pytest.mark.asyncio
    async def test_empty_upload_raises(self, store) -> None:
        with pytest.raises(NoFilesError, match="No files provided"):
            await ingest_documents(store, [])

    @pytest.mark.asyncio
    async def test_failed_registration_removes_saved_file(self, store, tmp_path, monkeypatch) -> None:
        async def broken_add_document(**kwargs):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(store, "add_document", broken_add_document)
        upload_dir = tmp_path / "docs"

        with pytest.raises(PersistenceError):
            await ingest_documents(store, [("heifers.txt", LONG_TEXT.encode())], upload_dir=upload_dir)

        assert list(upload_dir.iterdir()) == []

    def test_unreadable_pdf_gives_no_chunks(self, tmp_path) -> None:
        bad = tmp_path / "broken.pdf"
        bad.write_bytes(b"not a pdf")
        assert extract_chunks(bad) == []


class TestIngestFarmData:
    @pytest.mark.asyncio
    async def test_registers_profile(self, store, herd_csv, tmp_path) -> None:
        (result,) = await ingest_farm_data(store, [("herd.csv", herd_csv.read_bytes())], upload_dir=tmp_path / "fd")

        assert result["row_count"] == 4
        assert result["columns"] == ["cow_id", "date", "milk_yield"]
        (registered,) = await store.list_farm_data_files()
        assert registered.file_type == "csv"
        assert registered.id == result["id"]

    @pytest.mark.asyncio
    async def test_failed_registration_removes_saved_file(self, store, herd_csv, tmp_path, monkeypatch) -> None:
        async def broken_add_farm_data_file(**kwargs):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(store, "add_farm_data_file", broken_add_farm_data_file)
        upload_dir = tmp_path / "fd"

        with pytest.raises(PersistenceError):
            await ingest_farm_data(store, [("herd.csv", herd_csv.read_bytes())], upload_dir=upload_dir)

        assert list(upload_dir.iterdir()) == []
