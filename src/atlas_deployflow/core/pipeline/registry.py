"""
Registro estrutural de Jobs do pipeline.

Este módulo define o `JobRegistry`, responsável por registrar Jobs e
validar sua unicidade antes de qualquer construção de grafo ou execução.

Responsabilidades do módulo:
    - Validar unicidade de `job.id`
    - Preservar ordem de registro dos Jobs (usada como desempate
      determinístico na ordenação topológica)
    - Expor acesso controlado aos Jobs registrados

Invariantes:
    - Cada Job registrado possui um `job.id` único
    - `all()` reflete exatamente a ordem de registro

Limites explícitos:
    - Não resolve dependências (ver `core.engine.planner`)
    - Não executa Jobs
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from .job import Job


class DuplicateJobError(ValueError):
    """
    Exceção levantada ao registrar um Job cujo `id` já existe no registry.

    A duplicidade é tratada como erro fatal de definição: o pipeline não
    pode ser iniciado.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Duplicate job id: {job_id}")
        self.job_id = job_id


class UnknownJobError(KeyError):
    """Exceção levantada ao consultar um `job.id` não registrado."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Unknown job id: {self.job_id}"


@dataclass
class JobRegistry:
    """
    Registro canônico de Jobs, em ordem de inserção.

    Os Jobs armazenados são imutáveis; o registry apenas cresce durante o
    carregamento da definição do pipeline.
    """

    _jobs: Dict[str, Job] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def from_jobs(cls, jobs: Iterable[Job]) -> "JobRegistry":
        registry = cls()
        for job in jobs:
            registry.register(job)
        return registry

    def register(self, job: Job) -> None:
        job_id = getattr(job, "id", None)
        if not isinstance(job_id, str) or not job_id.strip():
            raise ValueError("job.id must be a non-empty string")

        if job_id in self._jobs:
            raise DuplicateJobError(job_id)

        self._jobs[job_id] = job
        self._order.append(job_id)

    def get(self, job_id: str) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    def all(self) -> Tuple[Job, ...]:
        return tuple(self._jobs[jid] for jid in self._order)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._order)
