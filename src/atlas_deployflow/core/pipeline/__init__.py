"""
# Pipeline Core — Atlas DeployFlow

Este pacote define as **estruturas fundamentais** que compõem um pipeline
de deploy no Atlas DeployFlow.

## Componentes

- **types**
  - `JobState`, `PipelineState`: máquinas de estados fechadas
  - `JobClassification`: blocking vs advisory
  - `JobKind`: classificação semântica informativa
  - `CommandResult`: resultado imutável de um comando externo

- **job**
  - `Job`, `CommandContract`, `RetryPolicy`: definição imutável de um Job

- **registry**
  - `JobRegistry`: unicidade de `job.id` e ordem de registro

- **run**
  - `JobRun`, `PipelineRun`: estado mutável de uma execução

- **context**
  - `RunContext`: identidade da execução, config, log estruturado e warnings

## Princípios Fundamentais

- Jobs **não conhecem** o Scheduler nem o grafo
- Dependências são **explícitas e declarativas**
- Estado de execução **nunca** é armazenado no Job
"""
