"""
wsbridge - stdio <-> WebSocket bridge for coding-agent control channels.

Packages:
- core: exceptions, logging, configuration
- realtime: connection supervisor, heartbeat, queue, stdio adapter
"""

__version__ = "0.1.0"
