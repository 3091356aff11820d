# tests/core/engine/test_scheduler_happy_path.py
"""
Testes do caminho feliz do Scheduler.

Os testes asseguram que:
- todos os Jobs terminam SUCCEEDED e o pipeline SUCCEEDED
- nenhum Job inicia antes de suas dependências terminarem
- o limite de concorrência é respeitado
- backends síncronos e assíncronos são aceitos

Decisões arquiteturais:
    - Backends em memória com atrasos curtos (centésimos de segundo)
    - Cada teste cria seu próprio event loop via `asyncio.run`

Limites explícitos:
    - Falhas, retry e cancelamento são cobertos em módulos próprios
"""
import asyncio

import pytest

try:
    from atlas_deployflow.adapters.memory import CallableBackend
    from atlas_deployflow.core.engine.planner import build_graph
    from atlas_deployflow.core.engine.scheduler import Scheduler
    from atlas_deployflow.core.pipeline.types import CommandResult, JobState, PipelineState
except Exception as e:  # noqa: BLE001
    Scheduler = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    """
    Garante que Scheduler, planner e adapters em memória estejam disponíveis.

    Falha imediatamente, com mensagem explícita, quando algum dos módulos
    necessários para executar um grafo de Jobs não pode ser importado.
    """
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing scheduler. Implement:"
            "- src/atlas_deployflow/core/engine/scheduler.py (Scheduler)"
            f"Import error: {_IMPORT_ERR}"
        )


class _TimelineBackend:
    """Backend assíncrono que registra início/fim de cada invocação."""

    def __init__(self, duration=0.02):
        self.duration = duration
        self.timeline = []
        self.running = 0
        self.max_running = 0

    async def execute(self, command, timeout):
        loop = asyncio.get_running_loop()
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        self.timeline.append(("start", command.invocation, loop.time()))
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.running -= 1
            self.timeline.append(("end", command.invocation, loop.time()))
        return CommandResult(exit_status=0, output=f"{command.invocation} ok")

    def first(self, kind, job_id):
        return next(t for k, j, t in self.timeline if k == kind and j == job_id)

    def order(self, kind):
        return [j for k, j, _ in self.timeline if k == kind]


def test_happy_path_all_succeed(make_job, dummy_ctx, scripted_backend):
    _require_imports()
    jobs = [make_job("build"), make_job("test", ["build"]), make_job("deploy", ["test"])]
    backend = scripted_backend()
    scheduler = Scheduler(backend, ctx=dummy_ctx)

    result = asyncio.run(scheduler.run(build_graph(jobs)))

    assert result.state is PipelineState.SUCCEEDED
    assert result.states() == {
        "build": JobState.SUCCEEDED,
        "test": JobState.SUCCEEDED,
        "deploy": JobState.SUCCEEDED,
    }
    assert backend.calls == ["build", "test", "deploy"]
    assert result.dispatch_order == ["build", "test", "deploy"]
    for run in result:
        assert run.attempts == 1
        assert run.summary == "succeeded"
        assert run.transitions == [JobState.READY, JobState.RUNNING, JobState.SUCCEEDED]
        assert run.started_at is not None and run.finished_at is not None
    assert result.started_at <= result.finished_at


def test_diamond_with_concurrency_two(make_job, dummy_ctx):
    """
    A (sem deps), B (dep A), C (dep A), D (deps B, C), limite 2.

    Invariantes:
        - A executa sozinho
        - B e C executam concorrentemente após A
        - D inicia apenas após B e C terminarem
        - nunca há mais de 2 execuções simultâneas
    """
    _require_imports()
    jobs = [
        make_job("A"),
        make_job("B", ["A"]),
        make_job("C", ["A"]),
        make_job("D", ["B", "C"]),
    ]
    backend = _TimelineBackend(duration=0.05)
    scheduler = Scheduler(backend, ctx=dummy_ctx)

    result = asyncio.run(scheduler.run(build_graph(jobs), concurrency_limit=2))

    assert result.state is PipelineState.SUCCEEDED
    assert backend.order("start")[0] == "A"
    assert backend.order("start")[-1] == "D"
    assert backend.first("start", "B") >= backend.first("end", "A")
    assert backend.first("start", "C") >= backend.first("end", "A")
    assert backend.first("start", "D") >= backend.first("end", "B")
    assert backend.first("start", "D") >= backend.first("end", "C")
    assert backend.max_running == 2
    assert scheduler.limiter.peak == 2
    assert result.dispatch_order == ["A", "B", "C", "D"]


def test_concurrency_limit_is_respected(make_job, dummy_ctx):
    _require_imports()
    jobs = [make_job(f"job{i}") for i in range(6)]
    backend = _TimelineBackend(duration=0.03)
    scheduler = Scheduler(backend, ctx=dummy_ctx, concurrency_limit=3)

    result = asyncio.run(scheduler.run(build_graph(jobs)))

    assert result.state is PipelineState.SUCCEEDED
    assert backend.max_running == 3
    assert scheduler.limiter.peak == 3
    assert scheduler.limiter.running == 0
    assert result.dispatch_order == [f"job{i}" for i in range(6)]


def test_concurrency_defaults_to_config(make_job, dummy_ctx):
    _require_imports()
    scheduler = Scheduler(_TimelineBackend(), ctx=dummy_ctx)
    assert scheduler.concurrency_limit == 4
    assert scheduler.grace_period_s == 0.2


def test_output_is_captured(make_job, dummy_ctx):
    _require_imports()
    backend = _TimelineBackend(duration=0.0)
    result = asyncio.run(Scheduler(backend, ctx=dummy_ctx).run(build_graph([make_job("build")])))
    assert result.get("build").output == "build ok"


def test_sync_callable_backend(make_job, dummy_ctx):
    """Funções síncronas rodam em thread e o retorno é normalizado."""
    _require_imports()
    seen = []

    def _run(command):
        seen.append(command.invocation)
        return "done"

    backend = CallableBackend(_run)
    result = asyncio.run(Scheduler(backend, ctx=dummy_ctx).run(build_graph([make_job("a"), make_job("b", ["a"])])))

    assert result.state is PipelineState.SUCCEEDED
    assert seen == ["a", "b"]
    assert result.get("b").output == "done"


def test_plain_sync_backend(make_job, dummy_ctx):
    """Um backend com `execute` síncrono (sem herança) é aceito por duck typing."""
    _require_imports()

    class _Backend:
        def execute(self, command, timeout):
            return CommandResult(exit_status=0, output=str(timeout))

    result = asyncio.run(Scheduler(_Backend(), ctx=dummy_ctx).run(build_graph([make_job("a", timeout=7.0)])))

    assert result.get("a").state is JobState.SUCCEEDED
    assert result.get("a").output == "7.0"


def test_structured_log_events(make_job, dummy_ctx, scripted_backend):
    _require_imports()
    asyncio.run(Scheduler(scripted_backend(), ctx=dummy_ctx).run(build_graph([make_job("build")])))

    names = [e.get("event") for e in dummy_ctx.events]
    assert names[0] == "pipeline_started"
    assert names[-1] == "pipeline_finished"
    assert [e.get("event") for e in dummy_ctx.events_for("build")] == ["job_started", "job_finished"]
    finished = dummy_ctx.events[-1]
    assert finished["counts"] == {"succeeded": 1}
    assert all(e["run_id"] == "run-test-001" for e in dummy_ctx.events)


@pytest.mark.asyncio
async def test_run_inside_running_loop(make_job, dummy_ctx, scripted_backend):
    _require_imports()
    scheduler = Scheduler(scripted_backend(delay=0.01), ctx=dummy_ctx)
    result = await scheduler.run(build_graph([make_job("a"), make_job("b")]))
    assert result.state is PipelineState.SUCCEEDED
    assert scheduler.pipeline_run is result
