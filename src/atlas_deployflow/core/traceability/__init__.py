"""
Rastreabilidade do Atlas DeployFlow.

Este pacote contém o Manifest v1, o registro forense de cada execução de
pipeline: hashes de entrada, estado incremental dos Jobs e Event Log
ordenado (incluindo mudanças de peso de tráfego dos rollouts canary).

O Manifest é alimentado explicitamente pelo Scheduler e consumido pelos
relatórios (`atlas_deployflow.report`).
"""
