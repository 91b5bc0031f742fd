"""HTTP and WebSocket surface of the run orchestrator."""
