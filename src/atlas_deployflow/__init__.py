# src/atlas_deployflow/__init__.py
"""
Atlas DeployFlow — engine de orquestração de pipelines de deploy.

Este pacote raiz define o namespace público do Atlas DeployFlow, um
engine projetado para executar pipelines declarativos de entrega
(build, scan, test, deploy, canary, rollback) de forma determinística,
concorrente e rastreável.

Princípios centrais:
    - O pipeline é um DAG explícito de Jobs
    - O plano de execução é determinístico e reprodutível
    - Falhas esperadas nunca escapam do Scheduler como exceção
    - Rollouts canary são controlados por decisões explícitas do Health Gate

Arquitetura em alto nível:
    - core.config       → carregamento, merge e hashing de configuração
    - core.definition   → leitura e validação da definição do pipeline
    - core.pipeline     → Job, JobRun, PipelineRun, registry e RunContext
    - core.engine       → grafo de dependências, scheduler e Engine
    - core.canary       → Health Gate e Rollout Controller
    - core.traceability → Manifest e Event Log
    - adapters          → backends concretos (shell, memória)
    - report            → relatório Markdown derivado do Manifest

Limites explícitos:
    - Não implementa runtime de containers nem control plane de cluster
    - Não interpreta YAML de fornecedores de CI
"""

__version__ = "0.1.0"

from .core.canary.rollout import CanaryConfig
from .core.engine.engine import Engine
from .core.pipeline.job import CommandContract, Job, RetryPolicy
from .core.pipeline.types import JobClassification, JobKind, JobState, PipelineState

__all__ = [
    "Engine",
    "Job",
    "CommandContract",
    "RetryPolicy",
    "CanaryConfig",
    "JobClassification",
    "JobKind",
    "JobState",
    "PipelineState",
    "__version__",
]
