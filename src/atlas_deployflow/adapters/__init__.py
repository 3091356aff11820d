"""
Adapters concretos para os ports do Atlas DeployFlow.

- shell  → `ShellBackend` (asyncio subprocess)
- memory → `CallableBackend`, `InMemoryTrafficRouter`,
  `StaticMetricsSource`, `RecordingSink`

Nenhum adapter herda dos Protocols em `core.ports`: a conformidade é
estrutural.
"""
