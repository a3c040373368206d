"""
Built-in tools and their backing services (tool layer).

- tools.builtin: register_builtin_tools(registry, maps, mailer, knowledge_base)
- tools.maps / tools.mailer / tools.geolocation: Google Maps, SMTP and IP lookup clients
- tools.mcp_provider: MCP servers as external tool providers
"""

from tools.builtin import register_builtin_tools

__all__ = ["register_builtin_tools"]
