"""
Engine do Atlas DeployFlow.

Este pacote contém a implementação responsável por **resolver** e
**executar** pipelines de deploy.

Componentes principais:
    - planner   → validação estrutural, `DependencyGraph` e ordem topológica
    - limiter   → `ConcurrencyLimiter`, recurso de contagem do Scheduler
    - scheduler → execução concorrente com retry, timeout, cancelamento e canary
    - engine    → fachada (grafo + Manifest + Scheduler)

Princípios fundamentais:
    - Resolução e execução são responsabilidades separadas
    - A ordem de despacho é determinística para o mesmo grafo
    - Toda falha esperada é registrada, nunca lançada

Invariantes:
    - Jobs só iniciam após suas dependências estarem satisfeitas
    - No máximo N Jobs em Running
    - Todo JobRun termina em estado terminal

Limites explícitos:
    - Não define como comandos são executados
    - Não persiste resultados automaticamente
"""
