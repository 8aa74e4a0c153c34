"""
Agent-facing runtime for EchoRoom.

Builds on ``echoroom_core`` to run simulated meetings (turn-taking, voice I/O
sequencing, agent replies).
"""

__all__ = ["meeting"]
