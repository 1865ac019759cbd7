import pytest

from goalbot.config import Settings

KEYS = (
    "BOT_TOKEN",
    "DATABASE_URL",
    "ROOT_ADMIN_IDS",
    "ENTITLED_USER_IDS",
    "SWEEP_INTERVAL_MINUTES",
    "SWEEP_CONCURRENCY",
    "SWEEP_TIMEOUT_SECONDS",
    "LEADERBOARD_LIMIT",
    "ENVIRONMENT",
)


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)  # no stray .env
    for key in KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(env):
    env.setenv("BOT_TOKEN", "123:abc")
    s = Settings.load()
    assert s.bot_token == "123:abc"
    assert s.database_url == "sqlite+aiosqlite:///./goalbot.db"
    assert s.sweep_interval_minutes == 60
    assert s.sweep_concurrency == 4
    assert s.leaderboard_points_per_place == 10
    assert s.entitled_user_ids == ()
    assert not s.is_dev


def test_lists_and_numbers(env):
    env.setenv("BOT_TOKEN", "t")
    env.setenv("ROOT_ADMIN_IDS", "[1, 2 3]")
    env.setenv("ENTITLED_USER_IDS", "10,11")
    env.setenv("SWEEP_CONCURRENCY", "8")
    env.setenv("ENVIRONMENT", "development")
    s = Settings.load()
    assert s.root_admin_ids == (1, 2, 3)
    assert s.entitled_user_ids == (10, 11)
    assert s.sweep_concurrency == 8
    assert s.is_dev


def test_fails_fast(env):
    with pytest.raises(RuntimeError):
        Settings.load()
    assert Settings.load(require_token=False).bot_token == ""

    env.setenv("BOT_TOKEN", "t")
    env.setenv("SWEEP_INTERVAL_MINUTES", "soon")
    with pytest.raises(RuntimeError):
        Settings.load()

    env.setenv("SWEEP_INTERVAL_MINUTES", "0")
    with pytest.raises(RuntimeError):
        Settings.load()
