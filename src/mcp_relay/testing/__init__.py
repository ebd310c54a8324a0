"""Testing utilities for MCP Relay.

Provides pytest fixtures (``mcp_relay.testing.fixtures``) and test doubles
(``mcp_relay.testing.mocks``) for code built on the relay.
"""

from mcp_relay.testing.mocks import EventRecorder, ManualClock, RecordingWriter

__all__ = ["EventRecorder", "ManualClock", "RecordingWriter"]
