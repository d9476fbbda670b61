"""Cross-environment serialization codec benchmark pipeline.

The package is split the same way as any layered service:

- :mod:`codecbench.core` holds the domain: adapters, the registry, the
  measurement engine, platform fingerprints, persisted results and the
  result-set aggregator.
- :mod:`codecbench.infra` holds everything that touches the outside
  world: child processes, Docker, asdf and the batch orchestrator.
"""

__version__: str = "0.1.0"
