"""Domain layer - entities, value objects, errors and domain services."""
