"""Test suite for AgentWatch.

This package contains unit and integration tests for all AgentWatch components:

- ``test_parser``: ps output parsing and column-schema fallback.
- ``test_matcher`` / ``test_dedup``: agent labelling and process-tree dedup.
- ``test_heuristic``: WORKING / WAITING / STALLED classification.
- ``test_cwd`` / ``test_repos`` / ``test_sandbox``: per-agent enrichment.
- ``test_scanner``: the orchestrated scan loop, end to end.
- ``test_store`` / ``test_config`` / ``test_runner`` / ``test_cli``: supporting layers.
"""
