"""
Definição canônica de Job do Atlas DeployFlow.

Um Job é a menor unidade declarativa do pipeline: identifica-se por um
`id` único, declara suas dependências, um contrato de comando opaco com
timeout, uma política de retry e sua classificação (blocking/advisory).

Jobs são imutáveis após o carregamento da definição do pipeline; o
estado de execução vive exclusivamente em `JobRun`.

Invariantes:
    - `id` é uma string não vazia
    - `depends_on` é um conjunto ordenado (sem duplicatas, ordem preservada)
    - `command.timeout` é estritamente positivo
    - `retry.max_attempts >= 1`

Limites explícitos:
    - Não executa comandos
    - Não valida existência das dependências (responsabilidade do grafo)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from atlas_deployflow.core.canary.rollout import CanaryConfig

from .types import JobClassification, JobKind


@dataclass(frozen=True)
class RetryPolicy:
    """
    Política de retry com backoff exponencial limitado.

    O atraso antes da tentativa `n + 1` (após `n` tentativas falhas) é:

        min(max_delay_s, base_delay_s * multiplier ** (n - 1))
    """
    max_attempts: int = 1
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ValueError("retry.max_attempts must be an integer")
        if self.max_attempts < 1:
            raise ValueError("retry.max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("retry.base_delay_s must be >= 0")
        if self.max_delay_s < self.base_delay_s:
            raise ValueError("retry.max_delay_s must be >= retry.base_delay_s")
        if self.multiplier < 1:
            raise ValueError("retry.multiplier must be >= 1")

    def delay_after(self, failed_attempts: int) -> float:
        if failed_attempts < 1:
            return 0.0
        return min(self.max_delay_s, self.base_delay_s * self.multiplier ** (failed_attempts - 1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay_s": self.base_delay_s,
            "max_delay_s": self.max_delay_s,
            "multiplier": self.multiplier,
        }


@dataclass(frozen=True)
class CommandContract:
    """
    Contrato de comando de um Job.

    `invocation` é opaco para o core: pode ser uma linha de shell, uma
    lista de argumentos, um nome de operação de SDK, etc. Apenas o
    backend de execução o interpreta.
    """
    invocation: Any
    timeout: float = 300.0
    env: Dict[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise ValueError("command.timeout must be a number")
        if self.timeout <= 0:
            raise ValueError("command.timeout must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {"invocation": self.invocation, "timeout": self.timeout, "env": dict(self.env)}


def _ordered_unique(ids: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for dep in ids:
        if not isinstance(dep, str) or not dep.strip():
            raise ValueError("dependency ids must be non-empty strings")
        seen.setdefault(dep, None)
    return tuple(seen)


@dataclass(frozen=True)
class Job:
    """
    Job declarativo do pipeline.

    Campos:
        - id: identificador único e estável
        - command: contrato de comando (invocação opaca + timeout)
        - depends_on: ids dos Jobs dos quais depende (ordem preservada)
        - retry: política de retry
        - classification: BLOCKING (padrão) ou ADVISORY
        - kind: classificação semântica informativa
        - canary: parâmetros de rollout; presente apenas em Jobs canary
    """
    id: str
    command: CommandContract
    depends_on: Tuple[str, ...] = ()
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    classification: JobClassification = JobClassification.BLOCKING
    kind: JobKind = JobKind.GENERIC
    canary: Optional[CanaryConfig] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("job.id must be a non-empty string")
        object.__setattr__(self, "depends_on", _ordered_unique(self.depends_on or ()))
        object.__setattr__(self, "classification", JobClassification(self.classification))
        object.__setattr__(self, "kind", JobKind(self.kind))

    @property
    def is_advisory(self) -> bool:
        return self.classification is JobClassification.ADVISORY

    @property
    def is_canary(self) -> bool:
        return self.canary is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "classification": self.classification.value,
            "depends_on": list(self.depends_on),
            "command": self.command.to_dict(),
            "retry": self.retry.to_dict(),
            "canary": self.canary.to_dict() if self.canary is not None else None,
        }
