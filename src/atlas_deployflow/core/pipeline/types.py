"""
Tipos canônicos do pipeline do Atlas DeployFlow.

Este módulo define os enums e estruturas fundamentais que padronizam a
comunicação entre definição de Jobs, Scheduler, backends e rastreabilidade.

Componentes principais:
    - JobState          → máquina de estados de um JobRun (com tabela de transições)
    - PipelineState     → estado agregado de um PipelineRun
    - JobClassification → blocking vs advisory
    - JobKind           → classificação semântica informativa
    - CommandResult     → resultado imutável de um comando externo

Princípios fundamentais:
    - Estados são enumerações fechadas, nunca strings livres
    - Transições ilegais são rejeitadas explicitamente
    - Valores textuais são estáveis para persistência em Manifest

Limites explícitos:
    - Não executa Jobs
    - Não decide políticas de retry ou skip
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from atlas_deployflow.core.exceptions import IllegalTransitionError


class JobKind(str, Enum):
    """
    Tipos semânticos de Jobs no pipeline.

    O tipo é puramente informativo: o Scheduler não altera comportamento
    com base no `kind`. Jobs canary são identificados pela presença de
    `CanaryConfig`, não por este enum.
    """
    BUILD = "build"
    SCAN = "scan"
    TEST = "test"
    DEPLOY = "deploy"
    CANARY = "canary"
    ROLLBACK = "rollback"
    GENERIC = "generic"


class JobClassification(str, Enum):
    """
    Classificação de impacto de falha de um Job.

    - BLOCKING: falha terminal marca todos os dependentes transitivos como SKIPPED
    - ADVISORY: falha é registrada, mas dependentes prosseguem assim que
      o Job atinge qualquer estado terminal
    """
    BLOCKING = "blocking"
    ADVISORY = "advisory"


class JobState(str, Enum):
    """
    Estados de um JobRun.

    Fluxo nominal: PENDING → READY → RUNNING → SUCCEEDED.

    Uma tentativa falha com retries restantes retorna de RUNNING para
    READY (nunca para PENDING). Os estados SUCCEEDED, FAILED e SKIPPED
    são terminais.
    """
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_JOB_STATES


_TERMINAL_JOB_STATES: FrozenSet[JobState] = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.SKIPPED}
)

JOB_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.PENDING: frozenset({JobState.READY, JobState.SKIPPED}),
    # READY -> FAILED apenas quando um retry pendente é cancelado
    JobState.READY: frozenset({JobState.RUNNING, JobState.SKIPPED, JobState.FAILED}),
    JobState.RUNNING: frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.READY}),
    JobState.SUCCEEDED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.SKIPPED: frozenset(),
}


def check_job_transition(current: JobState, target: JobState) -> JobState:
    """Valida a transição `current → target` e retorna `target`.

    Raises:
        IllegalTransitionError: Se a transição não pertence à tabela.
    """
    if target not in JOB_TRANSITIONS[current]:
        raise IllegalTransitionError(
            f"Illegal job transition: {current.value} -> {target.value}"
        )
    return target


class PipelineState(str, Enum):
    """Estado agregado de um PipelineRun."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CommandResult:
    """
    Resultado imutável da execução de um comando pelo backend.

    Campos:
        - exit_status: código de saída (0 indica sucesso)
        - output: saída capturada (ex.: stdout)
        - error: saída de erro capturada (ex.: stderr)
    """
    exit_status: int
    output: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0
