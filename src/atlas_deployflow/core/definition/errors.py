"""Erros canônicos do domínio de definição de pipeline (Atlas DeployFlow).

A definição do pipeline é a entrada estrutural crítica da execução.
Falhas de carregamento/validação devem produzir erros explícitos e estáveis,
sempre antes de qualquer Job ser despachado.
"""


class PipelineDefinitionError(Exception):
    """Erro base do domínio de definição de pipeline."""


class PipelineFileNotFoundError(PipelineDefinitionError):
    """Arquivo de definição não existe no caminho informado."""


class UnsupportedPipelineFormatError(PipelineDefinitionError):
    """Formato de definição não suportado (YAML/JSON)."""


class PipelineParseError(PipelineDefinitionError):
    """Falha ao parsear YAML/JSON."""


class PipelineValidationError(PipelineDefinitionError):
    """Definição não é estruturalmente válida segundo o schema canônico."""
