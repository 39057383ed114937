import pytest

from tests.fakes import NOW, InMemoryCardStore, InMemoryReviewLog, StubSchedulingModel


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def card_store():
    """Seven single-sided new cards under flashcards/."""
    return InMemoryCardStore({f"card{i}": 1 for i in range(1, 8)})


@pytest.fixture
def review_log():
    return InMemoryReviewLog()


@pytest.fixture
def stub_model():
    return StubSchedulingModel()


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory structure mimicking a vault."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    return home
