"""
Contexto de execução compartilhado do pipeline.

Este módulo define o `RunContext`, a estrutura canônica que acompanha uma
execução de pipeline no Atlas DeployFlow.

O RunContext é o ponto único de:
    - identidade da execução (`run_id`, `created_at`)
    - configuração efetiva resolvida
    - log estruturado de eventos (scheduler, jobs e rollouts)
    - warnings não fatais por Job (ex.: falha do sink de notificação)
    - referência opcional ao Manifest da execução

Invariantes:
    - Eventos de log sempre incluem `run_id`, `job_id`, `level`, `message`
      e `timestamp`
    - Warnings são agrupados por `job_id`
    - Cada execução possui seu próprio contexto

Limites explícitos:
    - Não executa Jobs
    - Não decide políticas de execução
    - Não persiste dados automaticamente
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# job_id usado para eventos de escopo do pipeline
PIPELINE_SCOPE = "<pipeline>"


@dataclass
class RunContext:
    """
    Contexto de execução de uma run do pipeline.

    Campos canônicos:
    - run_id: identificador único da execução
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + overrides)
    - meta: metadados livres (ex.: run_dir, trigger, commit)
    - manifest: Manifest associado, quando a execução é rastreada
    - events: log estruturado de eventos
    - warnings: warnings por job_id
    """
    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)
    manifest: Optional[Any] = None

    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)

    @classmethod
    def create(cls, config: Dict[str, Any], **meta: Any) -> "RunContext":
        return cls(
            run_id=f"run-{uuid.uuid4().hex[:12]}",
            created_at=datetime.now(timezone.utc),
            config=config,
            meta=dict(meta),
        )

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, job_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "job_id": job_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def add_warning(self, *, job_id: str, message: str) -> None:
        if job_id not in self.warnings:
            self.warnings[job_id] = []
        self.warnings[job_id].append(message)

    def events_for(self, job_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("job_id") == job_id]
