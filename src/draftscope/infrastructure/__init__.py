"""Infrastructure adapters: logging and the upstream feed client."""
