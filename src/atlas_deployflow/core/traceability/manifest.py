# src/atlas_deployflow/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade forense de execuções de deploy.

O Manifest consolida, de forma determinística e auditável:
    - metadados da execução (run)
    - hashes semânticos de entradas (config efetiva e definição do pipeline)
    - estado incremental de cada Job
    - Event Log ordenado de eventos explícitos

Eventos canônicos:
    job_started, job_retried, job_finished, job_failed, job_skipped,
    rollout_weights_changed, pipeline_finished

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico (`sort_keys=True`)
    - Nenhum evento é emitido implicitamente: toda mutação ocorre por
      chamada explícita da API
    - A API aceita o Manifest como objeto ou como dict serializado

Invariantes:
    - `events` é sempre uma lista ordenada pela ordem de chamada
    - `jobs` é sempre um dicionário indexado por job_id

Limites explícitos:
    - Não executa pipeline
    - Não decide políticas de execução (retry, skip, rollback)
    - Não realiza migração de versões de schema
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Normaliza um timestamp para timezone-aware em UTC (naive é assumido UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class DeployManifest:
    """
    Manifest v1 — registro forense de uma execução de pipeline de deploy.

    Campos principais:
        - run: metadados da execução (run_id, started_at, deployflow_version,
          e ao final state/finished_at)
        - inputs: hashes de configuração e da definição do pipeline
        - jobs: estado incremental de cada Job
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    jobs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "jobs": {k: dict(v) for k, v in self.jobs.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            jobs={k: dict(v) for k, v in (data.get("jobs", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("event_type") == event_type]


ManifestLike = Union[DeployManifest, Dict[str, Any]]


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    deployflow_version: str,
    config_hash: str,
    pipeline_hash: str,
) -> DeployManifest:
    """
    Cria o Manifest inicial de uma execução.

    ⚠️ Esta função **não emite eventos**: o Event Log inicia vazio.
    """
    return DeployManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "deployflow_version": deployflow_version,
        },
        inputs={
            "config_hash": config_hash,
            "pipeline_hash": pipeline_hash,
        },
        jobs={},
        events=[],
    )


def _get_manifest(manifest: ManifestLike) -> Tuple[DeployManifest, bool]:
    if isinstance(manifest, DeployManifest):
        return manifest, False
    return DeployManifest.from_dict(manifest), True


def _sync_back(manifest: ManifestLike, m: DeployManifest, is_dict: bool) -> None:
    if is_dict:
        manifest.clear()  # type: ignore[union-attr]
        manifest.update(m.to_dict())  # type: ignore[union-attr]


def add_event(
    manifest: ManifestLike,
    *,
    event_type: str,
    ts: datetime,
    job_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Adiciona um evento explícito ao Event Log.

    Invariantes:
        - Cada chamada adiciona exatamente um evento
        - `event_type` e `timestamp` estão sempre presentes
        - Eventos não são reordenados ou deduplicados
    """
    m, is_dict = _get_manifest(manifest)

    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if job_id is not None:
        ev["job_id"] = job_id
    if payload is not None:
        ev["payload"] = payload
    m.events.append(ev)

    _sync_back(manifest, m, is_dict)


def job_started(manifest: ManifestLike, *, job_id: str, kind: str, attempt: int, ts: datetime) -> None:
    m, is_dict = _get_manifest(manifest)

    j = m.jobs.setdefault(job_id, {"job_id": job_id})
    j.setdefault("started_at", _iso(ts))
    j.update({"kind": kind, "status": "running", "attempts": attempt})

    add_event(m, event_type="job_started", ts=ts, job_id=job_id, payload={"kind": kind, "attempt": attempt})
    _sync_back(manifest, m, is_dict)


def job_retried(
    manifest: ManifestLike,
    *,
    job_id: str,
    attempt: int,
    delay_s: float,
    error: Dict[str, Any],
    ts: datetime,
) -> None:
    """Registra uma tentativa falha que será reexecutada após `delay_s`."""
    m, is_dict = _get_manifest(manifest)

    j = m.jobs.setdefault(job_id, {"job_id": job_id})
    j.update({"status": "ready", "last_error": dict(error)})

    add_event(
        m,
        event_type="job_retried",
        ts=ts,
        job_id=job_id,
        payload={"attempt": attempt, "delay_s": delay_s, "error_type": error.get("type")},
    )
    _sync_back(manifest, m, is_dict)


def _finish(m: DeployManifest, job_id: str, ts: datetime, fields: Dict[str, Any]) -> Dict[str, Any]:
    j = m.jobs.setdefault(job_id, {"job_id": job_id})
    started_iso = j.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts
    j.update(fields)
    j.update({"finished_at": _iso(ts), "duration_ms": _ms_between(started_dt, ts)})
    return j


def job_finished(manifest: ManifestLike, *, job_id: str, ts: datetime, result: Dict[str, Any]) -> None:
    """
    Registra a conclusão bem-sucedida de um Job.

    `result` segue o formato de `JobRun.to_record()`; apenas `summary`,
    `attempts` e `rollout` são incorporados ao estado do Job.
    """
    m, is_dict = _get_manifest(manifest)

    j = _finish(
        m,
        job_id,
        ts,
        {
            "status": "succeeded",
            "summary": result.get("summary"),
            "attempts": result.get("attempts", 0),
            "rollout": result.get("rollout"),
        },
    )

    add_event(
        m,
        event_type="job_finished",
        ts=ts,
        job_id=job_id,
        payload={"status": "succeeded", "duration_ms": j["duration_ms"]},
    )
    _sync_back(manifest, m, is_dict)


def job_failed(manifest: ManifestLike, *, job_id: str, ts: datetime, error: Dict[str, Any], attempts: int = 0) -> None:
    m, is_dict = _get_manifest(manifest)

    _finish(m, job_id, ts, {"status": "failed", "error": dict(error), "attempts": attempts})

    add_event(
        m,
        event_type="job_failed",
        ts=ts,
        job_id=job_id,
        payload={"error_type": error.get("type"), "message": error.get("message")},
    )
    _sync_back(manifest, m, is_dict)


def job_skipped(manifest: ManifestLike, *, job_id: str, ts: datetime, reason: str) -> None:
    m, is_dict = _get_manifest(manifest)

    j = m.jobs.setdefault(job_id, {"job_id": job_id})
    j.update({"status": "skipped", "summary": reason, "finished_at": _iso(ts)})

    add_event(m, event_type="job_skipped", ts=ts, job_id=job_id, payload={"reason": reason})
    _sync_back(manifest, m, is_dict)


def rollout_weights_changed(
    manifest: ManifestLike,
    *,
    job_id: str,
    ts: datetime,
    stable_weight: int,
    canary_weight: int,
    state: str,
    reason: str,
) -> None:
    add_event(
        manifest,
        event_type="rollout_weights_changed",
        ts=ts,
        job_id=job_id,
        payload={
            "stable_weight": stable_weight,
            "canary_weight": canary_weight,
            "state": state,
            "reason": reason,
        },
    )


def pipeline_finished(manifest: ManifestLike, *, ts: datetime, state: str, counts: Dict[str, int]) -> None:
    m, is_dict = _get_manifest(manifest)

    m.run.update({"state": state, "finished_at": _iso(ts)})
    add_event(m, event_type="pipeline_finished", ts=ts, payload={"state": state, "counts": dict(counts)})
    _sync_back(manifest, m, is_dict)


def save_manifest(manifest: ManifestLike, path: Path) -> None:
    """
    Persiste o Manifest em JSON determinístico.

    Diretórios intermediários são criados automaticamente.

    Raises:
        OSError: falha de escrita
        TypeError: conteúdo não serializável
    """
    data = manifest.to_dict() if isinstance(manifest, DeployManifest) else manifest
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")


def load_manifest(path: Path) -> DeployManifest:
    data = json.loads(path.read_text(encoding="utf-8"))
    return DeployManifest.from_dict(data)
