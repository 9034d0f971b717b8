"""Exchange session adapters."""
