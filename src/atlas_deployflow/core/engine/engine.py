# src/atlas_deployflow/core/engine/engine.py
"""
Engine de execução do pipeline do Atlas DeployFlow.

Fachada que conecta resolvedor de dependências, Scheduler e Manifest:

    jobs → build_graph (falha rápida) → Manifest inicial → Scheduler.run
         → PipelineRun final

Decisões arquiteturais:
    - Erros estruturais (ids duplicados, dependências desconhecidas,
      ciclos) são levantados na construção do Engine, antes de qualquer
      despacho
    - O Manifest é criado com o hash da config efetiva e o hash da
      definição do pipeline, e associado ao RunContext
    - `run()` é a entrada síncrona (`asyncio.run`); `arun()` é a entrada
      para quem já está num event loop
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Union

from atlas_deployflow.core.config.hashing import compute_config_hash
from atlas_deployflow.core.config.loader import resolve_config
from atlas_deployflow.core.definition.hashing import compute_pipeline_hash
from atlas_deployflow.core.pipeline.context import RunContext
from atlas_deployflow.core.pipeline.job import Job
from atlas_deployflow.core.pipeline.registry import JobRegistry
from atlas_deployflow.core.pipeline.run import PipelineRun
from atlas_deployflow.core.ports import CommandBackend, MetricsSource, NotificationSink, TrafficRouter
from atlas_deployflow.core.traceability.manifest import DeployManifest, create_manifest

from .planner import build_graph
from .scheduler import GateFactory, Scheduler


class Engine:
    """Engine canônico do Atlas DeployFlow (resolvedor + scheduler)."""

    def __init__(
        self,
        *,
        jobs: Union[JobRegistry, Iterable[Job]],
        backend: CommandBackend,
        ctx: Optional[RunContext] = None,
        metrics: Optional[MetricsSource] = None,
        router: Optional[TrafficRouter] = None,
        sink: Optional[NotificationSink] = None,
        gate_factory: Optional[GateFactory] = None,
    ) -> None:
        self.registry = jobs if isinstance(jobs, JobRegistry) else JobRegistry.from_jobs(jobs)
        self.graph = build_graph(self.registry)
        self.ctx = ctx if ctx is not None else RunContext.create(resolve_config())
        self.scheduler = Scheduler(
            backend,
            ctx=self.ctx,
            metrics=metrics,
            router=router,
            sink=sink,
            gate_factory=gate_factory,
        )
        self.result: Optional[PipelineRun] = None

    @property
    def manifest(self) -> Optional[DeployManifest]:
        return self.ctx.manifest

    def _ensure_manifest(self) -> None:
        if self.ctx.manifest is not None:
            return
        from atlas_deployflow import __version__

        self.ctx.manifest = create_manifest(
            run_id=self.ctx.run_id,
            started_at=self.ctx.created_at,
            deployflow_version=__version__,
            config_hash=compute_config_hash(self.ctx.config),
            pipeline_hash=compute_pipeline_hash(self.registry.all()),
        )

    async def arun(
        self,
        *,
        concurrency_limit: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineRun:
        self._ensure_manifest()
        self.result = await self.scheduler.run(
            self.graph,
            concurrency_limit=concurrency_limit,
            cancel_event=cancel_event,
        )
        return self.result

    def run(self, *, concurrency_limit: Optional[int] = None) -> PipelineRun:
        return asyncio.run(self.arun(concurrency_limit=concurrency_limit))

    def cancel(self) -> None:
        """Cancela a execução em curso; seguro a partir de outra thread durante `run()`."""
        self.scheduler.cancel()
