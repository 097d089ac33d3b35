import os
import pytest

from config import settings
from elibrary.library import Library
from elibrary.pipeline import build_pipeline
from elibrary.retry import ConflictRetryPolicy


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def lib(db_file):
    # Default retry budget: 3 retries at 100/200/400ms
    lib = Library(db_file=db_file, retry_policy=ConflictRetryPolicy())
    yield lib
    for suffix in ("", "-wal", "-shm"):
        path = db_file + suffix
        if os.path.exists(path):
            os.remove(path)


@pytest.fixture
def pipeline(lib):
    return build_pipeline(lib, settings)


@pytest.fixture
def book(lib):
    return lib.create_book("Empire of Silence", "Christopher Ruocchio", "9780756419264", 2018, quantity=3)
