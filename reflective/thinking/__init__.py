"""Reflective thought sessions driven by an external text generator.

This subpackage exposes a session manager that

* validates and records reasoning steps (thoughts) with revisions and branches,
* asks an OpenAI-compatible model to write a thought when the caller leaves it empty,
* saves and restores whole sessions as JSON files, and
* shrinks large ``File:``-sectioned documents to the sections relevant to a query.
"""

from .clients import GenerationConfig, LLMClient
from .errors import (
    FormatError,
    GeneratorError,
    LoadError,
    PersistenceIOError,
    ThinkingError,
    UnknownCommandError,
    ValidationError,
)
from .manager import ThoughtSessionManager, extract_meta
from .persistence import SessionSnapshot, load_session, save_session
from .relevance import RelevanceFilter, extract_keywords, filter_document, select_sections
from .runtime import ThinkingRuntime, main as runtime_main
from .schemas import AppendResult, Thought
from .storage import ThoughtStore

__all__ = [
    "AppendResult",
    "FormatError",
    "GenerationConfig",
    "GeneratorError",
    "LLMClient",
    "LoadError",
    "PersistenceIOError",
    "RelevanceFilter",
    "SessionSnapshot",
    "ThinkingError",
    "ThinkingRuntime",
    "Thought",
    "ThoughtSessionManager",
    "ThoughtStore",
    "UnknownCommandError",
    "ValidationError",
    "extract_keywords",
    "extract_meta",
    "filter_document",
    "load_session",
    "runtime_main",
    "save_session",
    "select_sections",
]
