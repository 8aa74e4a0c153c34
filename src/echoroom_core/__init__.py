"""
Core primitives for the EchoRoom meeting simulator.

Modules under ``echoroom_core`` hold the domain types, read-only scenario and
persona lookups, settings, summary persistence, and LLM provider plumbing that
the meeting orchestration layer builds on.
"""

__all__ = ["llm", "settings", "stores", "summary_sink", "types"]
