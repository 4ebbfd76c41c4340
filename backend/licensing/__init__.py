"""PMC licensing review service."""
