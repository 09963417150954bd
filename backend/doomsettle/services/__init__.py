"""Settlement engine services."""
