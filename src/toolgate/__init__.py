"""toolgate - tool execution and policy engine for conversational agents."""

__version__ = "0.1.0"
