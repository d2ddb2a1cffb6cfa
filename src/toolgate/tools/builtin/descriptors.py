"""Descriptors of the built-in tools.

Descriptions are written for the calling model: they say when to use the
tool and what not to do with it.
"""

from __future__ import annotations

from typing import Any

KB_SEARCH: dict[str, Any] = {
    "tool_id": "kb_search",
    "version": "1.0.0",
    "description": (
        "Search the knowledge base for information relevant to the user's question.\n"
        "Use specific keywords from the question. Do not repeat a search that "
        "returned nothing; rephrase it or ask the user for clarification."
    ),
    "summary": "Search the knowledge base with a focused query.",
    "category": "retrieval",
    "modes": ["text", "voice"],
    "parameters": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "minLength": 1, "maxLength": 500},
            "top_k": {"type": "integer", "minimum": 1, "maximum": 10, "default": 5},
            "filters": {
                "type": "object",
                "properties": {"type": {"type": "string"}},
                "additionalProperties": False,
            },
        },
        "required": ["query"],
        "additionalProperties": False,
    },
}

KB_GET: dict[str, Any] = {
    "tool_id": "kb_get",
    "version": "1.0.0",
    "description": (
        "Fetch full knowledge base documents by id, after kb_search has "
        "identified the relevant ones."
    ),
    "summary": "Fetch up to 5 knowledge base documents by id.",
    "category": "retrieval",
    "modes": ["text", "voice"],
    "parameters": {
        "type": "object",
        "properties": {
            "ids": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 1,
                "maxItems": 5,
                "uniqueItems": True,
            },
        },
        "required": ["ids"],
        "additionalProperties": False,
    },
}

START_VOICE_SESSION: dict[str, Any] = {
    "tool_id": "start_voice_session",
    "version": "1.0.0",
    "description": (
        "Switch the conversation to voice when the user asks to talk instead of type.\n"
        "Pass what the user wants to discuss as pending_request so the voice "
        "agent can pick it up."
    ),
    "summary": "Start a voice conversation at the user's request.",
    "category": "session_control",
    "modes": ["text"],
    "parameters": {
        "type": "object",
        "properties": {
            "pending_request": {"type": "string", "maxLength": 500},
        },
        "additionalProperties": False,
    },
}

END_VOICE_SESSION: dict[str, Any] = {
    "tool_id": "end_voice_session",
    "version": "1.0.0",
    "description": (
        "End the current voice session. Only call this when the user says goodbye "
        "or asks to stop talking, or when the conversation is clearly finished."
    ),
    "summary": "End the active voice session.",
    "category": "session_control",
    "modes": ["text", "voice"],
    "requires": ["voice_session_active"],
    "parameters": {
        "type": "object",
        "properties": {
            "reason": {
                "type": "string",
                "enum": ["user_requested", "conversation_complete", "timeout", "other"],
            },
            "final_message": {"type": "string", "maxLength": 300},
        },
        "required": ["reason"],
        "additionalProperties": False,
    },
}

IGNORE_USER: dict[str, Any] = {
    "tool_id": "ignore_user",
    "version": "1.0.0",
    "description": (
        "Stop responding to a user who is persistently abusive, after a warning.\n"
        "Ends the voice session and ignores further messages for duration_seconds."
    ),
    "summary": "Ignore an abusive user for a while and end the voice session.",
    "category": "session_control",
    "modes": ["voice"],
    "requires": ["voice_session_active"],
    "parameters": {
        "type": "object",
        "properties": {
            "user_id": {"type": "string", "minLength": 1},
            "duration_seconds": {"type": "integer", "minimum": 30, "maximum": 86400},
            "farewell_message": {"type": "string", "minLength": 1, "maxLength": 300},
        },
        "required": ["duration_seconds", "farewell_message"],
        "additionalProperties": False,
    },
}

QUERY_TOOL_MEMORY: dict[str, Any] = {
    "tool_id": "query_tool_memory",
    "version": "1.0.0",
    "description": (
        "Look up tool calls already made in this conversation before repeating one.\n"
        "Lists past calls with a short summary of each; pass a call_id as "
        "get_full_response_for to see that call's full response."
    ),
    "summary": "Review earlier tool calls and their results.",
    "category": "utility",
    "modes": ["text"],
    "parameters": {
        "type": "object",
        "properties": {
            "filter_tool": {"type": "string", "minLength": 1},
            "filter_time_range": {
                "type": "string",
                "enum": ["last_turn", "last_3_turns", "all"],
                "default": "all",
            },
            "include_errors": {"type": "boolean", "default": False},
            "get_full_response_for": {"type": "string", "minLength": 1},
        },
        "additionalProperties": False,
    },
}

BUILTIN_DESCRIPTORS: tuple[dict[str, Any], ...] = (
    KB_SEARCH,
    KB_GET,
    START_VOICE_SESSION,
    END_VOICE_SESSION,
    IGNORE_USER,
    QUERY_TOOL_MEMORY,
)
