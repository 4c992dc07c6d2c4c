"""Test doubles for pattern development."""

from .mock import Invocation, Reply, ScriptedInvoker, Stream

__all__ = ["ScriptedInvoker", "Invocation", "Reply", "Stream"]
