"""Infrastructure adapters for dialogue_recall."""
