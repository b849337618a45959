"""External collaborators used by the HTTP adapters."""
