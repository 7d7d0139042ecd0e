"""Feature modules for the gateway API."""
