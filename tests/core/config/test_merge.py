# tests/core/config/test_merge.py
"""
Testes do deep-merge de configuração.

Os testes asseguram que:
- overrides simples substituem valores
- seções aninhadas são combinadas chave a chave
- listas são substituídas integralmente
- int e float são compatíveis; outros conflitos de tipo são fatais
- as entradas nunca são mutadas
"""

import pytest

try:
    from atlas_deployflow.core.config.merge import deep_merge
    from atlas_deployflow.core.config.errors import ConfigTypeConflictError
except Exception as e:  # noqa: BLE001
    deep_merge = None
    ConfigTypeConflictError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing config merge module. Import error: {_IMPORT_ERR}")


def test_merge_simple_override():
    _require_imports()
    base = {"a": 1, "b": 2}
    override = {"b": 99}

    out = deep_merge(base, override)

    assert out == {"a": 1, "b": 99}
    assert base == {"a": 1, "b": 2}
    assert override == {"b": 99}


def test_merge_nested_dict():
    """Override de `engine.concurrency` não apaga `engine.grace_period_s`."""
    _require_imports()
    base = {"engine": {"concurrency": 4, "grace_period_s": 5.0}}
    out = deep_merge(base, {"engine": {"concurrency": 2}})
    assert out == {"engine": {"concurrency": 2, "grace_period_s": 5.0}}


def test_merge_list_override_total():
    _require_imports()
    base = {"notify": {"channels": ["slack", "email"]}}
    out = deep_merge(base, {"notify": {"channels": ["pager"]}})
    assert out == {"notify": {"channels": ["pager"]}}


def test_merge_int_over_float_is_compatible():
    _require_imports()
    out = deep_merge({"engine": {"grace_period_s": 5.0}}, {"engine": {"grace_period_s": 2}})
    assert out["engine"]["grace_period_s"] == 2


def test_merge_new_keys_are_added():
    _require_imports()
    out = deep_merge({"jobs": {}}, {"jobs": {"deploy": {"enabled": False}}})
    assert out == {"jobs": {"deploy": {"enabled": False}}}


def test_merge_type_conflict_raises():
    """Um dict não pode ser sobrescrito por um escalar (e vice-versa)."""
    _require_imports()
    with pytest.raises(ConfigTypeConflictError):
        deep_merge({"engine": {"concurrency": 4}}, {"engine": "fast"})
    with pytest.raises(ConfigTypeConflictError):
        deep_merge({"engine": {"concurrency": 4}}, {"engine": {"concurrency": "four"}})
