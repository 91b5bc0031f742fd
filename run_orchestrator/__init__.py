"""Run orchestrator for container-based decentralized computations."""

__version__ = "0.1.0"
