# src/atlas_deployflow/core/config/__init__.py

"""
Camada de configuração do Atlas DeployFlow.

Este pacote reúne o carregamento, o merge e a identificação por hash da
configuração efetiva de uma execução de pipeline.

A configuração controla apenas políticas do engine:
    - engine.concurrency      → limite de Jobs em Running simultaneamente
    - engine.grace_period_s   → janela de término cooperativo no cancelamento
    - retry.*                 → política de retry padrão para Jobs
    - canary.*                → parâmetros padrão de rollout canary
    - jobs.<id>.enabled       → desabilita Jobs específicos (skip by config)

Princípios fundamentais:
    - Defaults embutidos garantem uma configuração sempre completa
    - Overrides são explícitos e resolvidos por deep-merge determinístico
    - Conflitos estruturais são tratados como erro fatal

Limites explícitos:
    - Não define Jobs (ver `core.definition`)
    - Não executa pipeline
"""
