# src/atlas_deployflow/core/engine/scheduler.py
"""
Execution Scheduler — execução concorrente do DAG de Jobs.

O Scheduler recebe um `DependencyGraph` já validado e conduz todos os
JobRuns até um estado terminal, respeitando dependências, limite de
concorrência, retry, timeout e cancelamento.

Modelo de execução:
    - Um único laço de despacho (asyncio) promove Jobs Pending → Ready e
      despacha os Ready em ordem topológica enquanto houver slot livre no
      `ConcurrencyLimiter`
    - Cada tentativa roda como tarefa própria, limitada por
      `asyncio.wait_for(command.timeout)`
    - Jobs canary, após o comando concluir com sucesso, iniciam um
      `RolloutController` como tarefa autônoma e aguardam seu estado
      terminal dentro da mesma tentativa (o timeout cobre o rollout)
    - Ao fim de cada tentativa a tarefa acorda o laço de despacho

Decisões arquiteturais:
    - Toda transição de estado passa por `_transition`, uma seção crítica
      síncrona (lock, sem pontos de suspensão)
    - Falhas esperadas nunca escapam como exceção: viram `DeployErrorPayload`
      no `JobRun.error`
    - `InvariantViolationError` é a única falha fatal e interrompe o run
    - Jobs desabilitados por configuração (`jobs.<id>.enabled: false`) são
      marcados Skipped antes do despacho e contam como satisfeitos
    - Backends síncronos rodam em thread (`asyncio.to_thread`); o timeout
      libera o slot mas não interrompe a thread

Cancelamento:
    - O sinal (`cancel_event` ou `cancel()`) interrompe o despacho
    - Pending e Ready nunca tentados → Skipped
    - Ready aguardando retry → Failed (`CancelledError`)
    - Tentativas em execução recebem o sinal cooperativo (rollouts fazem
      rollback) e um período de graça; as restantes são canceladas e
      marcadas Failed (`CancelledError`)

Limites explícitos:
    - Não valida a estrutura do grafo (ver `planner`)
    - Não define como comandos são executados (ver `ports.CommandBackend`)
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple

from atlas_deployflow.core import errors
from atlas_deployflow.core.canary.rollout import (
    CanaryConfig,
    Gate,
    RolloutController,
    RolloutState,
    WeightChange,
)
from atlas_deployflow.core.errors import DeployErrorPayload
from atlas_deployflow.core.exceptions import DeployflowException, InvariantViolationError
from atlas_deployflow.core.pipeline.context import PIPELINE_SCOPE, RunContext
from atlas_deployflow.core.pipeline.job import Job
from atlas_deployflow.core.pipeline.run import JobRun, PipelineRun
from atlas_deployflow.core.pipeline.types import CommandResult, JobState, PipelineState
from atlas_deployflow.core.ports import (
    CommandBackend,
    MetricsSource,
    NotificationSink,
    TrafficRouter,
    resolve,
)
from atlas_deployflow.core.traceability import manifest as mf

from .limiter import ConcurrencyLimiter
from .planner import DependencyGraph


GateFactory = Callable[[CanaryConfig], Gate]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """Executa um `DependencyGraph` e produz o `PipelineRun` resultante."""

    def __init__(
        self,
        backend: CommandBackend,
        *,
        ctx: RunContext,
        metrics: Optional[MetricsSource] = None,
        router: Optional[TrafficRouter] = None,
        sink: Optional[NotificationSink] = None,
        concurrency_limit: Optional[int] = None,
        grace_period_s: Optional[float] = None,
        gate_factory: Optional[GateFactory] = None,
    ) -> None:
        engine_cfg = (ctx.config or {}).get("engine", {}) or {}
        self.backend = backend
        self.ctx = ctx
        self.metrics = metrics
        self.router = router
        self.sink = sink
        self.gate_factory = gate_factory
        self.concurrency_limit = int(
            concurrency_limit if concurrency_limit is not None else engine_cfg.get("concurrency", 4)
        )
        self.grace_period_s = float(
            grace_period_s if grace_period_s is not None else engine_cfg.get("grace_period_s", 5.0)
        )

        self.limiter: Optional[ConcurrencyLimiter] = None
        self.pipeline_run: Optional[PipelineRun] = None

        self._lock = threading.Lock()
        self._graph: Optional[DependencyGraph] = None
        self._cancel_requested = False
        self._cancel_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wake: Optional[asyncio.Event] = None
        self._fatal: Optional[InvariantViolationError] = None
        self._publishing: Set["asyncio.Task[None]"] = set()

    # ------------------------------------------------------------------
    # Configuração
    # ------------------------------------------------------------------
    def _is_enabled(self, job_id: str) -> bool:
        jobs_cfg = (self.ctx.config or {}).get("jobs", {}) or {}
        job_cfg = jobs_cfg.get(job_id, {}) or {}
        return bool(job_cfg.get("enabled", True))

    def _check_ports(self, graph: DependencyGraph) -> None:
        canaries = [job.id for job in graph.jobs if job.is_canary]
        if canaries and (self.metrics is None or self.router is None):
            raise ValueError(
                f"Canary jobs {canaries} require both a MetricsSource and a TrafficRouter"
            )

    # ------------------------------------------------------------------
    # Seção crítica
    # ------------------------------------------------------------------
    def _transition(self, run: JobRun, target: JobState, **updates: Any) -> None:
        with self._lock:
            run.transition(target)
            for name, value in updates.items():
                setattr(run, name, value)

    def _admit(self, run: JobRun) -> bool:
        assert self.limiter is not None
        with self._lock:
            if not self.limiter.try_acquire(run.job_id):
                return False
            run.begin_attempt()
            run.transition(JobState.RUNNING)
            return True

    def _release(self, run: JobRun) -> None:
        assert self.limiter is not None
        with self._lock:
            if self.limiter.holds(run.job_id):
                self.limiter.release(run.job_id)

    # ------------------------------------------------------------------
    # Notificação e rastreabilidade
    # ------------------------------------------------------------------
    def _publish(self, record: Dict[str, Any], job_id: str) -> None:
        if self.sink is None:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(record, job_id))
        self._publishing.add(task)
        task.add_done_callback(self._publishing.discard)

    async def _deliver(self, record: Dict[str, Any], job_id: str) -> None:
        assert self.sink is not None
        try:
            await resolve(self.sink.publish(record))
        except Exception as exc:
            message = f"notification sink failed: {exc.__class__.__name__}: {exc}"
            self.ctx.add_warning(job_id=job_id, message=message)
            self.ctx.log(job_id=job_id, level="WARNING", message=message, event="sink_failed")

    def _on_started(self, run: JobRun) -> None:
        self.ctx.log(
            job_id=run.job_id,
            level="INFO",
            message="job started",
            event="job_started",
            attempt=run.attempts,
        )
        if self.ctx.manifest is not None:
            mf.job_started(
                self.ctx.manifest,
                job_id=run.job_id,
                kind=run.job.kind.value,
                attempt=run.attempts,
                ts=_utcnow(),
            )

    def _on_terminal(self, run: JobRun) -> None:
        ts = run.finished_at or _utcnow()
        record = run.to_record()
        if run.state is JobState.SUCCEEDED:
            self.ctx.log(job_id=run.job_id, level="INFO", message=run.summary, event="job_finished")
            if self.ctx.manifest is not None:
                mf.job_finished(self.ctx.manifest, job_id=run.job_id, ts=ts, result=record)
        elif run.state is JobState.FAILED:
            self.ctx.log(
                job_id=run.job_id,
                level="ERROR",
                message=run.summary,
                event="job_failed",
                error_type=run.error_type,
            )
            if self.ctx.manifest is not None:
                mf.job_failed(
                    self.ctx.manifest,
                    job_id=run.job_id,
                    ts=ts,
                    error=run.error or {},
                    attempts=run.attempts,
                )
        else:
            self.ctx.log(job_id=run.job_id, level="INFO", message=run.summary, event="job_skipped")
            if self.ctx.manifest is not None:
                mf.job_skipped(self.ctx.manifest, job_id=run.job_id, ts=ts, reason=run.summary)
        self._publish(record, run.job_id)

    def _record_weights(self, change: WeightChange) -> None:
        if self.ctx.manifest is not None:
            mf.rollout_weights_changed(
                self.ctx.manifest,
                job_id=change.job_id,
                ts=change.timestamp,
                stable_weight=change.stable_weight,
                canary_weight=change.canary_weight,
                state=change.state.value,
                reason=change.reason,
            )

    # ------------------------------------------------------------------
    # Desfechos
    # ------------------------------------------------------------------
    def _skip(self, run: JobRun, reason: str) -> None:
        self._transition(run, JobState.SKIPPED, summary=reason)
        self._on_terminal(run)

    def _skip_dependents(self, run: JobRun) -> None:
        assert self._graph is not None and self.pipeline_run is not None
        pr = self.pipeline_run
        # Jobs desabilitados já estão satisfeitos: a propagação não os atravessa
        blocked: Set[str] = set()
        frontier = [run.job_id]
        while frontier:
            for dep_id in self._graph.dependents_of(frontier.pop()):
                if dep_id in pr.disabled or dep_id in blocked:
                    continue
                blocked.add(dep_id)
                frontier.append(dep_id)
        for dep_id in (job.id for job in self._graph.topological_order() if job.id in blocked):
            dep = pr.get(dep_id)
            if dep.state is JobState.PENDING or (dep.state is JobState.READY and dep.attempts == 0):
                self._skip(dep, f"skipped: dependency '{run.job_id}' failed")

    def _fail(self, run: JobRun, payload: DeployErrorPayload, *, output: str = "") -> None:
        self._transition(run, JobState.FAILED, error=payload.to_dict(), summary=payload.message, output=output)
        self._on_terminal(run)
        if not run.job.is_advisory:
            self._skip_dependents(run)

    def _attempt_failed(self, run: JobRun, payload: DeployErrorPayload, *, output: str = "") -> None:
        cancelling = self._cancel_event is not None and self._cancel_event.is_set()
        if payload.retryable and run.has_attempts_left and not cancelling:
            delay = run.job.retry.delay_after(run.attempts)
            not_before = asyncio.get_running_loop().time() + delay
            self._transition(run, JobState.READY, error=payload.to_dict(), output=output, not_before=not_before)
            self.ctx.log(
                job_id=run.job_id,
                level="WARNING",
                message=f"attempt {run.attempts} failed; retrying in {delay:g}s",
                event="job_retried",
                error_type=payload.type,
                delay_s=delay,
            )
            if self.ctx.manifest is not None:
                mf.job_retried(
                    self.ctx.manifest,
                    job_id=run.job_id,
                    attempt=run.attempts,
                    delay_s=delay,
                    error=payload.to_dict(),
                    ts=_utcnow(),
                )
            return
        self._fail(run, payload, output=output)

    def _attempt_succeeded(self, run: JobRun, result: CommandResult, controller: Optional[RolloutController]) -> None:
        if controller is None:
            summary = "succeeded"
        else:
            summary = f"canary promoted after {controller.rollout.steps} steps"
        self._transition(run, JobState.SUCCEEDED, output=result.output, summary=summary, error=None)
        self._on_terminal(run)

    # ------------------------------------------------------------------
    # Tentativa
    # ------------------------------------------------------------------
    async def _call_backend(self, job: Job) -> CommandResult:
        execute = self.backend.execute
        if inspect.iscoroutinefunction(execute):
            result = await execute(job.command, job.command.timeout)
        else:
            result = await resolve(await asyncio.to_thread(execute, job.command, job.command.timeout))
        if not isinstance(result, CommandResult):
            raise TypeError(
                f"CommandBackend.execute must return CommandResult, got {type(result).__name__}"
            )
        return result

    async def _run_rollout(self, run: JobRun) -> RolloutController:
        job = run.job
        assert job.canary is not None and self.metrics is not None and self.router is not None
        controller = RolloutController.for_job(
            job.id,
            job.canary,
            metrics=self.metrics,
            router=self.router,
            gate=self.gate_factory(job.canary) if self.gate_factory is not None else None,
            ctx=self.ctx,
            listeners=[self._record_weights],
        )
        task = asyncio.ensure_future(controller.run(self._cancel_event))
        try:
            await task
        finally:
            with self._lock:
                run.rollout = {
                    "state": controller.rollout.state.value,
                    "steps": controller.rollout.steps,
                    "stable_weight": controller.rollout.stable_weight,
                    "canary_weight": controller.rollout.canary_weight,
                    "decisions": [d.value for d in controller.decisions],
                }
        return controller

    async def _execute(self, run: JobRun) -> Tuple[CommandResult, Optional[RolloutController]]:
        result = await self._call_backend(run.job)
        if not result.ok or not run.job.is_canary:
            return result, None
        return result, await self._run_rollout(run)

    async def _attempt_body(self, run: JobRun) -> None:
        job = run.job
        attempt = run.attempts
        try:
            result, controller = await asyncio.wait_for(self._execute(run), timeout=job.command.timeout)
        except asyncio.TimeoutError:
            self._attempt_failed(run, errors.job_timeout(job_id=job.id, timeout=job.command.timeout, attempt=attempt))
        except asyncio.CancelledError:
            self._fail(run, errors.job_cancelled(job_id=job.id, attempt=attempt, reason="grace period expired"))
            raise
        except DeployflowException as exc:
            self._attempt_failed(run, exc.to_payload())
        except InvariantViolationError:
            raise
        except Exception as exc:
            self._attempt_failed(run, errors.job_execution_error(job_id=job.id, exc=exc, attempt=attempt))
        else:
            if not result.ok:
                payload = errors.job_command_failed(
                    job_id=job.id,
                    exit_status=result.exit_status,
                    error=result.error,
                    attempt=attempt,
                )
                self._attempt_failed(run, payload, output=result.output)
            elif controller is not None and controller.rollout.state is RolloutState.ROLLED_BACK:
                payload = errors.rollback_triggered(
                    job_id=job.id,
                    canary_weight=controller.rollback_weight or 0,
                    reason=controller.rollback_reason or "health_gate",
                    steps=controller.rollout.steps,
                )
                self._attempt_failed(run, payload, output=result.output)
            else:
                self._attempt_succeeded(run, result, controller)

    async def _attempt(self, run: JobRun) -> None:
        try:
            await self._attempt_body(run)
        except InvariantViolationError as exc:
            self._fatal = exc
        finally:
            self._release(run)
            assert self._wake is not None
            self._wake.set()

    # ------------------------------------------------------------------
    # Laço de despacho
    # ------------------------------------------------------------------
    def _dependency_satisfied(self, dep: JobRun, pr: PipelineRun) -> bool:
        if dep.job_id in pr.disabled:
            return True
        if dep.state is JobState.SUCCEEDED:
            return True
        return dep.job.is_advisory and dep.state.is_terminal

    def _promote_ready(self, graph: DependencyGraph, pr: PipelineRun) -> None:
        for idx in graph.order:
            run = pr.job_runs[graph.jobs[idx].id]
            if run.state is not JobState.PENDING:
                continue
            deps = [pr.job_runs[graph.jobs[d].id] for d in graph.dependencies[idx]]
            if all(self._dependency_satisfied(dep, pr) for dep in deps):
                self._transition(run, JobState.READY, not_before=0.0)

    def _dispatch(
        self,
        graph: DependencyGraph,
        pr: PipelineRun,
        tasks: Dict[str, "asyncio.Task[None]"],
    ) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()
        for idx in graph.order:
            run = pr.job_runs[graph.jobs[idx].id]
            if run.state is not JobState.READY or run.not_before > now:
                continue
            if not self._admit(run):
                break
            if run.attempts == 1:
                pr.dispatch_order.append(run.job_id)
            self._on_started(run)
            tasks[run.job_id] = loop.create_task(self._attempt(run), name=f"job:{run.job_id}")

    def _next_wakeup(self, pr: PipelineRun, tasks: Dict[str, "asyncio.Task[None]"]) -> Optional[float]:
        now = asyncio.get_running_loop().time()
        waiting = [r.not_before for r in pr if r.state is JobState.READY and r.not_before > now]
        if waiting:
            return max(0.0, min(waiting) - now)
        if not any(not t.done() for t in tasks.values()):
            stuck = sorted(jid for jid, r in pr.job_runs.items() if not r.state.is_terminal)
            raise InvariantViolationError(f"Scheduler stalled with non-terminal jobs: {stuck}")
        return None

    def _raise_if_fatal(self) -> None:
        if self._fatal is not None:
            raise self._fatal

    async def _watch_cancel(self) -> None:
        assert self._cancel_event is not None and self._wake is not None
        await self._cancel_event.wait()
        self._wake.set()

    async def _drain_cancelled(self, graph: DependencyGraph, pr: PipelineRun, tasks: Dict[str, "asyncio.Task[None]"]) -> None:
        pr.cancelled = True
        self.ctx.log(job_id=PIPELINE_SCOPE, level="WARNING", message="pipeline cancelled", event="pipeline_cancelled")

        for job in graph.topological_order():
            run = pr.get(job.id)
            if run.state is JobState.PENDING or (run.state is JobState.READY and run.attempts == 0):
                self._skip(run, "skipped: pipeline cancelled")
            elif run.state is JobState.READY:
                self._fail(
                    run,
                    errors.job_cancelled(job_id=job.id, attempt=run.attempts, reason="cancelled while waiting for retry"),
                    output=run.output,
                )

        running = [t for t in tasks.values() if not t.done()]
        if not running:
            return
        _, pending = await asyncio.wait(running, timeout=self.grace_period_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _finish_publishing(self) -> None:
        while self._publishing:
            await asyncio.gather(*list(self._publishing))

    def cancel(self) -> None:
        """Solicita cancelamento cooperativo da execução em curso.

        Pode ser chamado de outra thread (ex.: durante `Engine.run()`): nesse
        caso o sinal é entregue ao event loop da execução via
        `call_soon_threadsafe`. Chamado antes de `run()`, cancela a próxima
        execução.
        """
        self._cancel_requested = True
        loop, event = self._loop, self._cancel_event
        if loop is None or event is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            event.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(event.set)

    async def run(
        self,
        graph: DependencyGraph,
        concurrency_limit: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineRun:
        """
        Executa o grafo até que todo JobRun esteja em estado terminal.

        Nunca levanta exceção para falhas esperadas de Jobs; apenas
        `InvariantViolationError` (fatal) e erros de uso (ValueError) escapam.
        """
        self._check_ports(graph)
        limit = concurrency_limit if concurrency_limit is not None else self.concurrency_limit
        self.limiter = ConcurrencyLimiter(limit)
        self._graph = graph
        self._fatal = None
        self._wake = asyncio.Event()
        self._cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self._loop = asyncio.get_running_loop()
        if self._cancel_requested:
            self._cancel_event.set()

        disabled = [job.id for job in graph.jobs if not self._is_enabled(job.id)]
        pr = PipelineRun.for_jobs(self.ctx.run_id, graph.jobs, disabled=disabled)
        self.pipeline_run = pr
        pr.start()
        self.ctx.log(
            job_id=PIPELINE_SCOPE,
            level="INFO",
            message="pipeline started",
            event="pipeline_started",
            jobs=len(graph),
            concurrency=limit,
        )

        for job in graph.topological_order():
            if job.id in pr.disabled:
                self._skip(pr.get(job.id), "skipped by config")

        tasks: Dict[str, "asyncio.Task[None]"] = {}
        watcher = asyncio.ensure_future(self._watch_cancel())
        try:
            while not self._cancel_event.is_set():
                self._wake.clear()
                self._raise_if_fatal()
                self._promote_ready(graph, pr)
                self._dispatch(graph, pr, tasks)
                if pr.is_complete:
                    break
                timeout = self._next_wakeup(pr, tasks)
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    pass

            self._raise_if_fatal()
            if not pr.is_complete:
                await self._drain_cancelled(graph, pr, tasks)
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            self._raise_if_fatal()
        except BaseException:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        finally:
            watcher.cancel()
            # o pedido de cancelamento vale para uma única execução
            self._cancel_requested = False
            self._loop = None

        state = pr.finish()
        counts = _count_states(pr.job_runs.values())
        self.ctx.log(
            job_id=PIPELINE_SCOPE,
            level="INFO" if state is PipelineState.SUCCEEDED else "ERROR",
            message=f"pipeline {state.value}",
            event="pipeline_finished",
            counts=counts,
        )
        if self.ctx.manifest is not None:
            mf.pipeline_finished(self.ctx.manifest, ts=pr.finished_at or _utcnow(), state=state.value, counts=counts)
        self._publish(pr.to_record(), PIPELINE_SCOPE)
        await self._finish_publishing()
        return pr


def _count_states(runs: Iterable[JobRun]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for run in runs:
        counts[run.state.value] = counts.get(run.state.value, 0) + 1
    return dict(sorted(counts.items()))
