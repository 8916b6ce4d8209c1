import pytest

from config.settings import (
    COMPOSITE_TIERS,
    INCOME_BRACKETS,
    STATE_NAME_TO_ABBREVIATION,
    Settings,
    get_settings,
    is_all,
    normalize_state_name,
    state_abbreviation,
)


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("DEFAULT_PAGE_SIZE", raising=False)
    settings = Settings(EXPORT_DIR=str(tmp_path / "exports"), LOG_DIR="", _env_file=None)

    assert settings.DEFAULT_PAGE_SIZE == 7
    assert settings.PERSONS_PER_HOUSEHOLD == 2.5
    assert settings.TAM_PER_HOUSEHOLD == 100
    assert settings.SAM_MIN_COMPOSITE_SCORE == 15
    assert settings.SAM_URBANICITY == "Urban"
    assert (tmp_path / "exports").is_dir()


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("MAP_MARKER_LIMIT", "10")
    settings = Settings(EXPORT_DIR=str(tmp_path), LOG_DIR="", _env_file=None)
    assert settings.MAP_MARKER_LIMIT == 10


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_static_tables():
    assert [name for name, _, _ in COMPOSITE_TIERS] == ["low", "medium", "high"]
    assert len(INCOME_BRACKETS) == 16
    assert INCOME_BRACKETS == sorted(INCOME_BRACKETS)
    assert len(STATE_NAME_TO_ABBREVIATION) == 51


@pytest.mark.parametrize("value", [None, "", "  ", "all", "ALL", " All "])
def test_is_all(value):
    assert is_all(value)


def test_is_all_false_for_names():
    assert not is_all("Florida")


@pytest.mark.parametrize(
    "state, expected",
    [
        ("Florida", "FL"),
        ("  new   york ", "NY"),
        ("PUERTO RICO", "PR"),
        ("Atlantis", None),
        ("all", None),
        (None, None),
    ],
)
def test_state_abbreviation(state, expected):
    assert state_abbreviation(state) == expected


def test_normalize_state_name():
    assert normalize_state_name("  north   carolina ") == "North Carolina"
