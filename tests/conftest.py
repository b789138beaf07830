import pytest

from wellness_path.curriculum import load_curriculum


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_wellness.db")
    return db_path


@pytest.fixture(scope="session")
def curriculum():
    """The bundled 30-day curriculum."""
    return load_curriculum()
