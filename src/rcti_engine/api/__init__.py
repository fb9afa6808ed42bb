"""HTTP API for the RCTI engine."""
