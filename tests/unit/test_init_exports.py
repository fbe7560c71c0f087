from __future__ import annotations

import pytest

import dynaplan_py as dynaplan


def test_init_exposes_lazy_exports_via_getattr() -> None:
    assert callable(dynaplan.Table)
    assert callable(dynaplan.QueryPlanner)
    assert callable(dynaplan.UniqueItemStore)
    assert callable(dynaplan.UniqueEntitySchema)
    assert callable(dynaplan.DynamoDBExecutor)
    assert callable(dynaplan.DataSourceSettings.from_env)
    assert callable(dynaplan.build_query)


def test_init_all_names_resolve() -> None:
    for name in dynaplan.__all__:
        assert getattr(dynaplan, name) is not None


def test_init_rejects_unknown_names() -> None:
    with pytest.raises(AttributeError, match="nope"):
        dynaplan.nope  # noqa: B018
