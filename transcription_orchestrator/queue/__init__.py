"""Queue-driven triggers for the orchestrator."""
