import langchain_google_genai
import pytest

from conftest import HashingEmbedder
from docchat.config.settings import settings
from docchat.scripts import setup_db
from docchat.src.database.vector_store import DocumentVectorStore


@pytest.fixture
def isolated_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LANCEDB_PATH", tmp_path / "lancedb")
    monkeypatch.setattr(settings, "DOCUMENT_STORAGE_PATH", tmp_path / "uploads")
    monkeypatch.setattr(langchain_google_genai, "GoogleGenerativeAIEmbeddings", lambda **kwargs: HashingEmbedder())
    return tmp_path


def _write_corpus(root):
    (root / "nested").mkdir(parents=True)
    (root / "leave.md").write_text("Annual leave is twenty five days.")
    (root / "nested" / "travel.txt").write_text("Book travel through the portal.")
    (root / "image.png").write_bytes(b"\x89PNG")


def test_collect_files_filters_by_extension(tmp_path):
    _write_corpus(tmp_path)
    files = setup_db.collect_files(tmp_path, ["pdf", "txt", "md"])
    assert [f.name for f in files] == ["leave.md", "travel.txt"]


def test_ingests_directory_with_category(isolated_paths):
    source = isolated_paths / "corpus"
    _write_corpus(source)

    assert setup_db.main(["--source", str(source), "--category", "hr"]) == 0

    store = DocumentVectorStore(HashingEmbedder())
    assert store.count() == 2
    assert store.category_counts() == {"hr": 2}


def test_drop_only_empties_the_table(isolated_paths):
    source = isolated_paths / "corpus"
    _write_corpus(source)
    setup_db.main(["--source", str(source)])

    assert setup_db.main(["--drop-only"]) == 0
    assert DocumentVectorStore(HashingEmbedder()).count() == 0


def test_missing_source_directory_is_an_error(isolated_paths):
    assert setup_db.main(["--source", str(isolated_paths / "nope")]) == 2
