"""AgentWatch: detection and activity classification for local AI coding agents.

This package enumerates OS processes, recognises the ones that belong to known
agent tools (``claude``, ``codex``, ...), collapses parent/child duplicates of
the same session, and classifies each surviving agent as working, waiting or
stalled. Each scan also resolves the agent's working directory and correlates
it with a known repository.

Example usage::

    # Via CLI
    agentwatch scan
    agentwatch watch --root ~/src

    # Programmatic usage
    from agentwatch.scanner import ProcessScanner
    from agentwatch.store import AgentStore

    store = AgentStore()
    scanner = ProcessScanner(store=store)
    await scanner.start()
"""

__version__ = "0.1.0"
__author__ = "AgentWatch Contributors"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]
