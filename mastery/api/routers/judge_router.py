"""
API router for the Claude judge proxy.

Forwards Anthropic Messages requests with the server-held API key so the
key never reaches the browser.
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from mastery.api.schemas import ClaudeEvaluateRequest

router = APIRouter()


@router.post("/evaluate")
async def claude_evaluate(body: ClaudeEvaluateRequest, request: Request) -> Any:
    settings = request.app.state.settings
    client: httpx.AsyncClient = request.app.state.http_client

    if not settings.anthropic_api_key:
        logger.error("Missing ANTHROPIC_API_KEY for judge proxy")
        return JSONResponse(status_code=500, content={"error": "Server configuration error"})

    logger.info("Evaluating mastery via {}", body.model)
    try:
        response = await client.post(
            settings.anthropic_messages_url,
            headers={
                "x-api-key": settings.anthropic_api_key,
                "anthropic-version": settings.anthropic_version,
                "content-type": "application/json",
            },
            json=body.model_dump(),
        )
    except httpx.HTTPError as e:
        logger.error("Claude API exception: {}", e)
        return JSONResponse(status_code=500, content={"error": "Evaluation failed", "message": str(e)})

    if response.is_error:
        logger.error("Claude API error: {} {}", response.status_code, response.text[:200])
        return JSONResponse(
            status_code=response.status_code,
            content={"error": "Claude API request failed", "details": response.text},
        )

    try:
        data = response.json()
    except ValueError as e:
        logger.error("Claude API returned a non-JSON body: {}", e)
        return JSONResponse(status_code=500, content={"error": "Evaluation failed", "message": str(e)})

    logger.info("Evaluation complete")
    return data
