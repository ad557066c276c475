"""serverpanel -- Remote control panel for a single managed game server.

Starts, stops and streams the output of one long-running external server
process over HTTP. The managed process lives in a single process-wide
slot, so at most one server instance runs at any time.
"""

__version__ = "0.1.0"
