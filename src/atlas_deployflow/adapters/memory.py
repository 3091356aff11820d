# src/atlas_deployflow/adapters/memory.py
"""
Adapters em memória para os ports do Atlas DeployFlow.

Usados em testes, demonstrações e integrações embarcadas:
    - CallableBackend       → executa Jobs chamando uma função Python
    - InMemoryTrafficRouter → guarda a divisão de tráfego corrente e o histórico
    - StaticMetricsSource   → serve amostras fixas (ou trocadas em tempo de execução)
    - RecordingSink         → acumula registros publicados
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from atlas_deployflow.core.canary.health import HealthSample
from atlas_deployflow.core.pipeline.job import CommandContract
from atlas_deployflow.core.pipeline.types import CommandResult


def _as_result(value: Any) -> CommandResult:
    if isinstance(value, CommandResult):
        return value
    if value is None:
        return CommandResult(exit_status=0)
    if isinstance(value, bool):
        return CommandResult(exit_status=0 if value else 1)
    if isinstance(value, int):
        return CommandResult(exit_status=value)
    if isinstance(value, str):
        return CommandResult(exit_status=0, output=value)
    raise TypeError(f"unsupported command result type: {type(value).__name__}")


class CallableBackend:
    """
    Executa o comando chamando `fn(command)`.

    `fn` pode ser síncrona (roda em thread) ou assíncrona. O retorno é
    normalizado: `CommandResult`, `int` (exit status), `str` (saída com
    status 0), `bool` ou `None` (sucesso).
    """

    def __init__(self, fn: Callable[[CommandContract], Any]) -> None:
        self.fn = fn
        self.calls: List[Any] = []

    async def execute(self, command: CommandContract, timeout: float) -> CommandResult:
        self.calls.append(command.invocation)
        if inspect.iscoroutinefunction(self.fn):
            value = await self.fn(command)
        else:
            value = await asyncio.to_thread(self.fn, command)
            if inspect.isawaitable(value):
                value = await value
        return _as_result(value)


class InMemoryTrafficRouter:
    def __init__(self) -> None:
        self.stable = 100
        self.canary = 0
        self.history: List[Tuple[int, int]] = []

    def set_weights(self, stable_pct: int, canary_pct: int) -> None:
        if stable_pct < 0 or canary_pct < 0 or stable_pct + canary_pct != 100:
            raise ValueError(f"invalid traffic split: {stable_pct}/{canary_pct}")
        self.stable = stable_pct
        self.canary = canary_pct
        self.history.append((stable_pct, canary_pct))

    @property
    def canary_history(self) -> List[int]:
        return [c for _, c in self.history]


class StaticMetricsSource:
    """Fonte de métricas com valores fixos, carimbados com o instante da consulta."""

    def __init__(self, values: Optional[Dict[str, Iterable[float]]] = None) -> None:
        self._values: Dict[str, List[float]] = {k: list(v) for k, v in (values or {}).items()}
        self.queries: List[Tuple[str, float]] = []

    def set(self, metric: str, values: Iterable[float]) -> None:
        self._values[metric] = list(values)

    def query(self, metric: str, window_s: float) -> Sequence[HealthSample]:
        self.queries.append((metric, window_s))
        now = datetime.now(timezone.utc)
        return [HealthSample(metric=metric, value=float(v), timestamp=now) for v in self._values.get(metric, [])]


class RecordingSink:
    """Sink que acumula registros; `fail_with` simula indisponibilidade."""

    def __init__(self, fail_with: Optional[BaseException] = None) -> None:
        self.records: List[Dict[str, Any]] = []
        self.fail_with = fail_with

    def publish(self, record: Dict[str, Any]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.records.append(record)

    def by_type(self, record_type: str) -> List[Dict[str, Any]]:
        return [r for r in self.records if r.get("type") == record_type]
