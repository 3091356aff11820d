# src/atlas_deployflow/core/ports.py
"""
Contratos externos (ports) do Atlas DeployFlow.

Este módulo define as interfaces estreitas pelas quais o core conversa
com colaboradores fora do seu escopo:

    - CommandBackend   → executa o comando opaco de um Job
    - MetricsSource    → fornece amostras de métricas para o Health Gate
    - TrafficRouter    → recebe os pesos stable/canary do Rollout Controller
    - NotificationSink → recebe registros terminais de JobRun e PipelineRun

Conformidade é verificada por duck typing (`@runtime_checkable`): nenhum
adapter precisa herdar destas classes. Cada método pode ser síncrono ou
assíncrono; o core normaliza a chamada via `resolve`.

Limites explícitos:
    - Não define como comandos são realizados (shell, container, SDK)
    - Não define protocolo de rede nem formato de arquivo
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Dict, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from atlas_deployflow.core.canary.health import HealthSample
    from atlas_deployflow.core.pipeline.job import CommandContract
    from atlas_deployflow.core.pipeline.types import CommandResult


@runtime_checkable
class CommandBackend(Protocol):
    def execute(self, command: "CommandContract", timeout: float) -> "CommandResult":
        """Executa o comando e retorna status de saída, saída e erro."""
        ...


@runtime_checkable
class MetricsSource(Protocol):
    def query(self, metric: str, window_s: float) -> Sequence["HealthSample"]:
        """Retorna as amostras de `metric` observadas na janela informada."""
        ...


@runtime_checkable
class TrafficRouter(Protocol):
    def set_weights(self, stable_pct: int, canary_pct: int) -> Any:
        """Aplica a divisão de tráfego; nenhuma resposta além do ack é exigida."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    def publish(self, record: Dict[str, Any]) -> Any:
        """Recebe um registro terminal (fire-and-forget)."""
        ...


async def resolve(value: Any) -> Any:
    """Aguarda `value` quando for awaitable; caso contrário retorna-o intacto."""
    if inspect.isawaitable(value):
        return await value
    return value
