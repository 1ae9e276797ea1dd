"""Application layer: contracts the infrastructure layer implements."""
