import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

import config


def test_config_from_environment():
    cfg = config.Config()
    assert cfg.page_size == 100
    assert cfg.retry_max_attempts == 3
    assert cfg.convergence_timeout_seconds == 5
    assert cfg.log_level == "DEBUG"


def test_get_config_is_cached():
    assert config.get_config() is config.get_config()


def test_config_is_frozen():
    cfg = config.Config()
    with pytest.raises(ValidationError):
        cfg.page_size = 10  # type: ignore # noqa: PGH003


@given(st.integers(min_value=1, max_value=config.MAX_PAGE_SIZE))
@settings(max_examples=20)
def test_valid_page_sizes(page_size: int):
    assert config.Config(page_size=page_size).page_size == page_size


@pytest.mark.parametrize(
    "overrides",
    [
        {"page_size": 0},
        {"page_size": config.MAX_PAGE_SIZE + 1},
        {"retry_timeout_seconds": 0},
        {"retry_max_attempts": 0},
        {"apply_max_workers": 0},
        {"retry_initial_wait_seconds": 20, "retry_max_wait_seconds": 10},
    ],
)
def test_invalid_config(overrides: dict):
    with pytest.raises(ValidationError):
        config.Config(**overrides)


def test_env_override(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("apply_max_workers", "8")
    assert config.Config().apply_max_workers == 8
