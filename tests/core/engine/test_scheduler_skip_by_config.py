# tests/core/engine/test_scheduler_skip_by_config.py
"""
Testes de Jobs desabilitados por configuração (`jobs.<id>.enabled: false`).

Invariantes:
    - Jobs desabilitados terminam SKIPPED sem nunca executar
    - Jobs desabilitados contam como satisfeitos para seus dependentes
    - O pipeline não reprova por um Job desabilitado
"""
import asyncio

import pytest

try:
    from atlas_deployflow.core.config.loader import resolve_config
    from atlas_deployflow.core.engine.planner import build_graph
    from atlas_deployflow.core.engine.scheduler import Scheduler
    from atlas_deployflow.core.pipeline.context import RunContext
    from atlas_deployflow.core.pipeline.types import JobState, PipelineState
except Exception as e:  # noqa: BLE001
    Scheduler = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing scheduler. Import error: {_IMPORT_ERR}")


def _ctx(jobs_cfg):
    return RunContext.create(resolve_config({"jobs": jobs_cfg}))


def test_skip_by_config(make_job, scripted_backend):
    _require_imports()
    ctx = _ctx({"scan": {"enabled": False}})
    jobs = [make_job("build"), make_job("scan", ["build"]), make_job("deploy", ["scan"])]
    backend = scripted_backend()

    result = asyncio.run(Scheduler(backend, ctx=ctx).run(build_graph(jobs)))

    scan = result.get("scan")
    assert scan.state is JobState.SKIPPED
    assert scan.summary == "skipped by config"
    assert scan.attempts == 0
    assert result.get("deploy").state is JobState.SUCCEEDED
    assert backend.calls == ["build", "deploy"]
    assert result.state is PipelineState.SUCCEEDED
    assert result.disabled == frozenset({"scan"})


def test_disabled_job_does_not_wait_for_its_dependencies(make_job, scripted_backend):
    """
    Um dependente de Job desabilitado não espera pelas dependências do
    Job desabilitado: `deploy` pode executar mesmo com `build` falhando,
    desde que não dependa diretamente de `build`. Com limite 1, `deploy`
    ainda está READY quando `build` falha.
    """
    _require_imports()
    ctx = _ctx({"scan": {"enabled": False}})
    jobs = [make_job("build"), make_job("scan", ["build"]), make_job("deploy", ["scan"])]
    backend = scripted_backend({"build": [1]})

    result = asyncio.run(Scheduler(backend, ctx=ctx, concurrency_limit=1).run(build_graph(jobs)))

    assert result.get("build").state is JobState.FAILED
    assert result.get("scan").state is JobState.SKIPPED
    assert result.get("deploy").state is JobState.SUCCEEDED
    assert result.state is PipelineState.FAILED


def test_enabled_true_is_default(make_job, scripted_backend):
    _require_imports()
    ctx = _ctx({"build": {"enabled": True}, "other": {"enabled": False}})
    result = asyncio.run(Scheduler(scripted_backend(), ctx=ctx).run(build_graph([make_job("build")])))
    assert result.get("build").state is JobState.SUCCEEDED
