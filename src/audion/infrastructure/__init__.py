"""Infrastructure layer: persistence, external APIs and observability."""
