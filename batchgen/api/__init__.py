"""HTTP and websocket surface of the orchestrator."""
