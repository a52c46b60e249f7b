"""Command line interface (entrypoint: location_sync.cli.main:main)."""
