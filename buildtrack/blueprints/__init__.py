"""REST blueprints mounted under /api/v1."""
