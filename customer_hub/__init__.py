"""Customer hub card login service."""
