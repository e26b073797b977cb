"""Command-line entry points for benchmarking kdindex."""
