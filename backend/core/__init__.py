"""
Core package: the turn orchestrator.

Structure:
    agent_core.py  AgentCore, owns and wires every collaborator
    chat_pipeline.py  the chat() turn loop
    compaction.py  context compaction

Usage:
    from core import AgentCore
"""

from core.agent_core import AgentCore
from core.chat_pipeline import TurnResult, build_transcript
from core.compaction import CompactionResult, ContextCompactor

__all__ = [
    "AgentCore",
    "CompactionResult",
    "ContextCompactor",
    "TurnResult",
    "build_transcript",
]
