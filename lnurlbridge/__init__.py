"""LNURL flows (channel, withdraw, auth) bridged to a Core Lightning node.

The server side exposes the LNURL endpoints and drives the node, the client
side performs the matching requester steps with its own node.
"""

__version__ = "0.1.0"
