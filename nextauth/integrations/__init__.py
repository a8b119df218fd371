"""Host framework integrations."""
