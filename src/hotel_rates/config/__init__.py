"""Runtime settings and run profiles."""
