import pytest

from app.db import bootstrap


def _raise_error(message: str):
    raise RuntimeError(message)


def test_runtime_schema_bootstrap_raises_on_validation_failure(monkeypatch):
    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", lambda bind: None)
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema bootstrap failed"):
        bootstrap.ensure_runtime_schema()


def test_runtime_schema_bootstrap_creates_required_tables():
    bootstrap.ensure_runtime_schema()
    missing_tables, missing_columns = bootstrap.missing_schema_items()
    assert missing_tables == []
    assert missing_columns == {}
