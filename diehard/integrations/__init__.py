"""Host platform integrations."""
