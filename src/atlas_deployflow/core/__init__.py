"""
Core do Atlas DeployFlow.

Este pacote contém a implementação canônica e independente de adapters
do Atlas DeployFlow, reunindo as responsabilidades essenciais para
planejamento, execução concorrente, rollout progressivo e rastreabilidade
de pipelines de deploy.

O core é projetado para ser:
    - determinístico no planejamento
    - testável de forma isolada
    - livre de dependências de runtime de containers ou APIs de nuvem

Toda interação com o mundo externo (execução de comandos, métricas,
roteamento de tráfego e notificações) passa pelos contratos definidos
em `core.ports`.
"""
