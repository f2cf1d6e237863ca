"""
MCP Firewall Stdio Proxy

Frames the client's byte stream into JSON-RPC messages, routes each one
through the policy engine and relays the backend's output verbatim.
"""
