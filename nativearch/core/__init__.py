"""Coordination core: artifact exchange, tooling adapters, fan-out, run gate, orchestrator."""
