"""
Entry point for the mastery orchestration server.

Run with:
    uvicorn mastery.api.main:app --reload --port 3001
    python main.py
"""
import sys
from pathlib import Path

# Make the repository root importable (config.py lives there)
sys.path.insert(0, str(Path(__file__).parent))

import uvicorn
from config import get_settings
from mastery.logging_setup import configure_logging

settings = get_settings()

if __name__ == "__main__":
    configure_logging(settings.log_level, settings.log_file)
    uvicorn.run(
        "mastery.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
