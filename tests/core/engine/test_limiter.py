# tests/core/engine/test_limiter.py
"""
Testes do limitador de concorrência.

Invariantes:
    - No máximo `limit` detentores simultâneos
    - Dupla admissão e liberação indevida são violações fatais
"""
import pytest

try:
    from atlas_deployflow.core.engine.limiter import ConcurrencyLimiter
    from atlas_deployflow.core.exceptions import InvariantViolationError
except Exception as e:  # noqa: BLE001
    ConcurrencyLimiter = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing ConcurrencyLimiter. Import error: {_IMPORT_ERR}")


def test_acquire_up_to_limit():
    _require_imports()
    limiter = ConcurrencyLimiter(2)

    assert limiter.try_acquire("a")
    assert limiter.try_acquire("b")
    assert not limiter.try_acquire("c")
    assert limiter.running == 2
    assert limiter.available == 0

    limiter.release("a")
    assert limiter.try_acquire("c")
    assert limiter.holds("c")
    assert not limiter.holds("a")
    assert limiter.peak == 2


def test_double_admission_is_fatal():
    _require_imports()
    limiter = ConcurrencyLimiter(3)
    limiter.try_acquire("deploy")
    with pytest.raises(InvariantViolationError):
        limiter.try_acquire("deploy")
    assert limiter.running == 1


def test_release_not_held_is_fatal():
    _require_imports()
    limiter = ConcurrencyLimiter(1)
    with pytest.raises(InvariantViolationError):
        limiter.release("ghost")


@pytest.mark.parametrize("limit", [0, -1, 1.5, True])
def test_invalid_limit(limit):
    _require_imports()
    with pytest.raises(ValueError):
        ConcurrencyLimiter(limit)
