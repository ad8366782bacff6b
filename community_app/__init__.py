"""Community directory application package."""
