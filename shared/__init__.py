"""
Shared utilities for tickstack entry points.

This package contains functionality used by the CLI, scripts/ and deployment/:
- logging_config: one-call logging setup per process
- console: coloured section/check output for operator reports
"""
