"""
Atlas DeployFlow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros de execução do Atlas DeployFlow.
Falhas de Jobs não escapam do Scheduler como exceção: elas são capturadas e
registradas no JobRun como payloads, que devem ser:

- explícitos
- serializáveis
- distinguíveis por `type`
- acionáveis
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeployErrorPayload:
    """
    Payload canônico de erro de execução.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador
    - retryable: indica se a política de retry pode reexecutar o Job
    """

    type: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

JOB_TIMEOUT = "TimeoutError"
JOB_CANCELLED = "CancelledError"
JOB_COMMAND_FAILED = "JobCommandFailed"
JOB_EXECUTION_ERROR = "JobExecutionError"
ROLLBACK_TRIGGERED = "RollbackTriggered"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def job_timeout(*, job_id: str, timeout: float, attempt: int) -> DeployErrorPayload:
    return DeployErrorPayload(
        type=JOB_TIMEOUT,
        message=f"Job exceeded its timeout of {timeout:g}s",
        details={"job_id": job_id, "timeout": timeout, "attempt": attempt},
        hint="Aumente o timeout declarado do Job ou investigue a lentidão do comando.",
    )


def job_cancelled(*, job_id: str, attempt: int, reason: str) -> DeployErrorPayload:
    return DeployErrorPayload(
        type=JOB_CANCELLED,
        message="Job cancelled by pipeline cancellation",
        details={"job_id": job_id, "attempt": attempt, "reason": reason},
        hint="A execução foi cancelada; reexecute o pipeline quando apropriado.",
        retryable=False,
    )


def job_command_failed(
    *,
    job_id: str,
    exit_status: int,
    error: str,
    attempt: int,
) -> DeployErrorPayload:
    return DeployErrorPayload(
        type=JOB_COMMAND_FAILED,
        message=f"Command exited with status {exit_status}",
        details={
            "job_id": job_id,
            "exit_status": exit_status,
            "stderr": error,
            "attempt": attempt,
        },
        hint="Verifique a saída de erro do comando.",
    )


def job_execution_error(
    *,
    job_id: str,
    exc: BaseException,
    attempt: int,
) -> DeployErrorPayload:
    return DeployErrorPayload(
        type=JOB_EXECUTION_ERROR,
        message=str(exc) or "Unexpected error while executing job",
        details={
            "job_id": job_id,
            "exception_class": exc.__class__.__name__,
            "attempt": attempt,
        },
        hint="Verifique o backend de execução configurado para o pipeline.",
    )


def rollback_triggered(
    *,
    job_id: str,
    canary_weight: int,
    reason: str,
    steps: int,
) -> DeployErrorPayload:
    return DeployErrorPayload(
        type=ROLLBACK_TRIGGERED,
        message="Canary rolled back",
        details={
            "job_id": job_id,
            "canary_weight_at_decision": canary_weight,
            "reason": reason,
            "steps": steps,
        },
        hint="Analise as métricas do canary antes de promover uma nova versão.",
        retryable=False,
    )
