"""Schema-driven API gateway."""
