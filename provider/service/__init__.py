"""Per-service resource and data source implementations."""
