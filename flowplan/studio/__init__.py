"""Studio HTTP API for the pipeline canvas."""
