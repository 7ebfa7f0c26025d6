"""
Mastery: transcript-driven evaluation orchestration for the fraction tutor.

Packages:
- cards: lesson cards and level progression
- orchestration: trigger heuristic, local orchestrator, dual-backend manager
- evaluation: judge prompt and response handling
- integrations: HTTP judge client
- server: remote orchestration backend
- api: FastAPI application (WebSocket + REST + judge proxy)
- cli: typer command line
"""

__version__ = "0.1.0"
