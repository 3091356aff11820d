# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas DeployFlow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas
- contexto de execução controlado (RunContext)
- fábricas de Jobs e backends em memória

O objetivo destas fixtures é permitir testes do core
(config, pipeline, engine, canary e traceability) sem depender de:
- processos externos
- variáveis de ambiente
- relógio de parede além de intervalos curtos e controlados

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Timeouts e atrasos usados nos testes são curtos (décimos de segundo)
    - Imports do core são realizados de forma lazy para
      melhorar a clareza de erros durante falhas

Invariantes:
    - Nenhuma fixture executa pipeline real
    - Nenhuma fixture realiza I/O
"""

import asyncio
from datetime import datetime, timezone

import pytest


# =====================================================
# Config
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """YAML de defaults do projeto, sobreposto aos defaults embutidos."""
    return """\
engine:
  concurrency: 2
  grace_period_s: 1.0
retry:
  max_attempts: 2
  base_delay_s: 0.5
jobs:
  build:
    enabled: true
  scan:
    enabled: true
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """YAML de overrides locais (apenas o que muda)."""
    return """\
engine:
  concurrency: 8
jobs:
  scan:
    enabled: false
"""


@pytest.fixture
def dummy_config() -> dict:
    """
    Configuração efetiva mínima para testes de execução.

    `grace_period_s` é curto para que testes de cancelamento não esperem
    o default de produção.
    """
    from atlas_deployflow.core.config.loader import resolve_config

    return resolve_config({"engine": {"concurrency": 4, "grace_period_s": 0.2}})


@pytest.fixture
def dummy_ctx(dummy_config):
    """RunContext determinístico (run_id e created_at fixos)."""
    from atlas_deployflow.core.pipeline.context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        config=dummy_config,
        meta={"source": "pytest"},
    )


# =====================================================
# Jobs & backends
# =====================================================

@pytest.fixture
def make_job():
    """
    Fábrica de Jobs com defaults adequados a testes.

    `invocation` padrão é o próprio id do Job, o que permite que backends
    em memória decidam o comportamento pelo nome.
    """
    from atlas_deployflow.core.pipeline.job import CommandContract, Job, RetryPolicy

    def _make(
        job_id,
        depends_on=(),
        *,
        invocation=None,
        timeout=5.0,
        max_attempts=1,
        base_delay_s=0.0,
        classification="blocking",
        kind="generic",
        canary=None,
    ):
        return Job(
            id=job_id,
            command=CommandContract(invocation=invocation or job_id, timeout=timeout),
            depends_on=tuple(depends_on),
            retry=RetryPolicy(max_attempts=max_attempts, base_delay_s=base_delay_s, max_delay_s=max(base_delay_s, 0.0)),
            classification=classification,
            kind=kind,
            canary=canary,
        )

    return _make


@pytest.fixture
def scripted_backend():
    """
    Fábrica de CallableBackend guiado por script.

    `script` mapeia invocation → lista de resultados por tentativa
    (int exit status, ou float = dormir N segundos e sair com 0). O
    último item se repete nas tentativas seguintes. Invocations ausentes
    terminam com sucesso imediatamente.
    """
    from atlas_deployflow.adapters.memory import CallableBackend

    def _make(script=None, delay=0.0):
        script = dict(script or {})
        seen = {}

        async def _run(command):
            key = command.invocation
            n = seen.get(key, 0)
            seen[key] = n + 1
            steps = script.get(key, [0])
            step = steps[min(n, len(steps) - 1)]
            if isinstance(step, float):
                await asyncio.sleep(step)
                return 0
            if delay:
                await asyncio.sleep(delay)
            return step

        return CallableBackend(_run)

    return _make
