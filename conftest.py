import pytest
from fastapi.testclient import TestClient

from config import settings
from library import Library
from models import BookRequest, BorrowerRequest

@pytest.fixture
def db_file(tmp_path, request):
    # A unique database file for every test
    return str(tmp_path / f"test_{request.node.name}.db")

@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()

@pytest.fixture
def secret_seven(lib):
    return lib.catalog.register_book(BookRequest("0-061-96436-0", "Secret seven adventures", "Enid Bliton"))

@pytest.fixture
def udara(lib):
    return lib.catalog.register_borrower(BorrowerRequest("Udara Wikum", "udarawikum@gmail.com"))

@pytest.fixture
def client(lib):
    import api as api_module

    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    try:
        yield TestClient(api_module.app)
    finally:
        api_module.app.dependency_overrides.clear()

@pytest.fixture
def api_headers():
    return {"X-API-Key": settings.api_key}
