"""IO - Streaming reconstruction and wire formats."""
