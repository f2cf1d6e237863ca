"""
MCP Firewall

Policy-enforcing stdio proxy that sits between an MCP client and a
filesystem MCP server and rejects tool calls touching protected files.
"""

__version__ = "0.1.0"
