# src/atlas_deployflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Atlas DeployFlow.

Este módulo define a hierarquia oficial de exceções utilizadas durante
o carregamento, o merge e a validação de valores da configuração.

As exceções aqui definidas representam **falhas de configuração** e
nunca erros de execução de Jobs: todas são levantadas antes que qualquer
Job seja despachado.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa falha de comando ou de rollout

Limites explícitos:
    - Não executa pipeline
    - Não realiza fallback ou recovery
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do Atlas DeployFlow.

    Permite captura genérica de falhas de configuração e distinção clara
    entre erros estruturais (pré-execução) e falhas de execução de Jobs.
    """


class DefaultsNotFoundError(ConfigError):
    """
    Exceção levantada quando o arquivo de defaults informado explicitamente
    não existe.

    Decisões arquiteturais:
        - Um caminho de defaults informado é um compromisso explícito
        - A ausência desse arquivo invalida a execução

    Limites explícitos:
        - Não se aplica quando nenhum arquivo de defaults é informado
          (nesse caso valem os defaults embutidos)
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando a extensão do arquivo de configuração não é
    suportada.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração não é um
    dicionário (`dict`).
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"engine": {"concurrency": 4}}
        - override: {"engine": "fast"}

    Decisões arquiteturais:
        - O deep-merge é estritamente tipado por chave
        - Nenhum merge parcial é produzido em caso de conflito
    """


class InvalidConfigValueError(ConfigError):
    """
    Exceção levantada quando um valor da configuração efetiva viola o
    domínio esperado pelo engine (ex.: `engine.concurrency` menor que 1).
    """
