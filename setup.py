"""
Setup script for mastery-orchestrator.

Orchestration layer for a voice fraction tutor. It serves three roles:

1. Local orchestrator - decides when a live transcript is worth a judge call
2. Orchestration server - the same decision made server side over WebSocket
3. Judge proxy - keeps the Anthropic key off the client

The 'mastery' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="mastery-orchestrator",
    version="0.1.0",
    description="Transcript-driven mastery evaluation orchestration for a voice tutor",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database (session snapshots)
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP / WebSocket
        "httpx>=0.25.0",
        "websockets>=12.0",
        # Server
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        # Judge
        "anthropic>=0.40.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mastery=mastery.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: FastAPI",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="tutoring orchestration evaluation websocket education",
)
