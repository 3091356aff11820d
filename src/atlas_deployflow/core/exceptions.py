"""
Atlas DeployFlow — Canonical Exceptions (v1)

Este módulo define exceções tipadas internas do Atlas DeployFlow.

Objetivo:
- Permitir que backends sinalizem falhas
  semânticas tipadas
- Facilitar o mapeamento determinístico para DeployErrorPayload
- Separar falhas esperadas (registradas no JobRun) de violações de
  invariantes internas (fatais)

Erros estruturais de definição (duplicidade, dependência desconhecida,
ciclos) vivem junto aos módulos que os detectam (`registry`, `planner`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import (
    DeployErrorPayload,
    JOB_COMMAND_FAILED,
    JOB_EXECUTION_ERROR,
    JOB_TIMEOUT,
)


@dataclass(frozen=True)
class DeployflowException(Exception):
    """Base class para exceções internas do Atlas DeployFlow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    error_type = JOB_EXECUTION_ERROR
    retryable = True

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    def to_payload(self) -> DeployErrorPayload:
        return DeployErrorPayload(
            type=self.error_type,
            message=self.message,
            details=dict(self.details),
            hint=self.hint,
            retryable=self.retryable,
        )


# ---------------------------------------------------------------------------
# Execução de Jobs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobCommandFailed(DeployflowException):
    """Comando do Job terminou com status diferente de zero."""

    error_type = JOB_COMMAND_FAILED


@dataclass(frozen=True)
class JobTimeoutError(DeployflowException):
    """Tentativa do Job excedeu o timeout declarado."""

    error_type = JOB_TIMEOUT


# ---------------------------------------------------------------------------
# Invariantes internas (fatais)
# ---------------------------------------------------------------------------

class InvariantViolationError(RuntimeError):
    """Violação de invariante interna do engine (ex.: dupla admissão de JobRun).

    Esta é a única falha de tempo de execução que encerra o processo de
    execução do pipeline em vez de ser registrada no JobRun.
    """


class IllegalTransitionError(InvariantViolationError):
    """Transição de estado fora da tabela de transições permitidas."""
