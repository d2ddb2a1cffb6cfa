"""Tool framework: handler protocol, registry and built-in tools."""
