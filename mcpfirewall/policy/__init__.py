"""
MCP Firewall Policy

Rule sets, the tool taxonomy and the engine that decides whether a
tool call may reach the filesystem server.
"""
