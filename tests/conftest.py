import pytest

import bank_bad
import bank_good
import files_app


@pytest.fixture
def files_client(tmp_path, monkeypatch):
    """Test client for files_app with BASE_DIR pointed at a temp dir."""
    base = (tmp_path / "files").resolve()
    base.mkdir()
    monkeypatch.setattr(files_app, "BASE_DIR", base)
    files_app.REQUESTS.clear()
    files_app.app.config["TESTING"] = True
    with files_app.app.test_client() as client:
        yield client


@pytest.fixture
def bad_client():
    bank_bad.init_db()
    bank_bad.app.config["TESTING"] = True
    with bank_bad.app.test_client() as client:
        yield client


@pytest.fixture
def good_client():
    bank_good.init_db()
    bank_good.app.config["TESTING"] = True
    with bank_good.app.test_client() as client:
        yield client
