"""
External integrations.

Modules:
- judge_client: HTTP client for the Claude judge proxy
"""
from .judge_client import JudgeClient

__all__ = ["JudgeClient"]
