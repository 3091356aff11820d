"""
Definição de pipeline do Atlas DeployFlow.

Este pacote lê a definição declarativa do pipeline (YAML/JSON), valida
sua estrutura e materializa os `Job`s imutáveis consumidos pelo Engine.

Componentes:
    - loader  → leitura de arquivo e parsing (PyYAML / json)
    - schema  → validação estrutural e aplicação de defaults da config
    - hashing → hash canônico da definição para o Manifest
    - errors  → hierarquia `PipelineDefinitionError`

Limites explícitos:
    - Não resolve dependências nem detecta ciclos (ver `core.engine.planner`)
    - Não interpreta o conteúdo opaco de `command`
"""
