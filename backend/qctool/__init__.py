"""QC Tool AI validation service."""
