"""Execution engine: dispatcher, budgets, loop detection, session state, metrics."""

from toolgate.engine.dispatcher import CallRequest, Dispatcher
from toolgate.engine.envelope import Err, ErrorInfo, Ok, ResponseMeta, ToolResponse
from toolgate.engine.metrics import MetricsSnapshot
from toolgate.engine.state import SessionStateView, VoiceState

__all__ = [
    "CallRequest",
    "Dispatcher",
    "Err",
    "ErrorInfo",
    "MetricsSnapshot",
    "Ok",
    "ResponseMeta",
    "SessionStateView",
    "ToolResponse",
    "VoiceState",
]
