"""Configuration loading (YAML + env) for location_sync."""
