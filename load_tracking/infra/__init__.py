# load_tracking/infra/__init__.py
"""Infrastructure clients: PostgreSQL and Redis."""
