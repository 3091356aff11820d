"""
Canary — Health Gate e Rollout Controller.

Este pacote reúne a lógica de entrega progressiva do Atlas DeployFlow:

- **health**
  - `HealthGate`: decide PROMOTE / HOLD / ROLLBACK a partir de amostras
  - `MetricThreshold`: limiar unilateral com direção e agregação explícitas
  - `HealthSample`: amostra transitória de métrica

- **rollout**
  - `CanaryConfig`: parâmetros de rollout declarados no Job
  - `CanaryRollout`: pesos stable/canary e máquina de estados
  - `RolloutController`: tarefa autônoma que conduz o rollout

Limites explícitos:
    - Não implementa a camada de roteamento de tráfego (ver `ports.TrafficRouter`)
    - Não implementa o backend de métricas (ver `ports.MetricsSource`)
"""
