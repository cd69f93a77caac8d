import pytest

from library import Library


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that exercise several layers together")


@pytest.fixture
def db_file(tmp_path, request):
    # Her test için benzersiz bir veritabanı dosyası oluştur
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()
