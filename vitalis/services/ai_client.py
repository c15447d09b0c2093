"""Client for the chat-completion service used by the AI analyzer."""

import logging
import json
from typing import Any, Dict, List, Optional
import httpx
from vitalis.config.settings import Settings, get_settings
from vitalis.utils.exceptions import AIServiceError

logger = logging.getLogger(__name__)


def strip_code_fences(response_text: str) -> str:
    """Remove a markdown code block wrapped around a model response."""
    response_text = response_text.strip()
    if response_text.startswith("```"):
        response_text = response_text.split("```")[1]
        if response_text.startswith("json"):
            response_text = response_text[4:]
        response_text = response_text.strip()
    return response_text


def _error_detail(e: httpx.HTTPStatusError) -> str:
    try:
        error_data = e.response.json()
    except ValueError:
        return str(e)
    if isinstance(error_data, dict) and isinstance(error_data.get("error"), dict):
        return error_data["error"].get("message") or str(e)
    return str(e)


async def request_completion(
    messages: List[Dict[str, Any]],
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Send chat messages to the completion endpoint and return the reply text.

    Args:
        messages: Chat messages in role/content form
        settings: Settings to use; defaults to the process settings
        transport: Optional httpx transport, used in tests

    Returns:
        Content of the first choice

    Raises:
        AIServiceError: On a missing key, transport error, non-2xx status or malformed body
    """
    settings = settings or get_settings()
    if not settings.ai_api_key:
        raise AIServiceError("AI API key is not configured")

    payload = {
        "model": settings.ai_model,
        "messages": messages,
        "temperature": settings.ai_temperature,
        "max_tokens": settings.ai_max_tokens,
    }
    headers = {
        "Authorization": f"Bearer {settings.ai_api_key}",
        "HTTP-Referer": settings.site_url,
        "X-Title": settings.site_name,
        "Content-Type": "application/json",
    }

    logger.info(f"Requesting analysis from {settings.ai_api_url} with model: {settings.ai_model}")
    try:
        async with httpx.AsyncClient(timeout=settings.ai_timeout_seconds, transport=transport) as client:
            response = await client.post(url=settings.ai_api_url, headers=headers, json=payload)
            response.raise_for_status()
            response_data = response.json()
    except httpx.HTTPStatusError as e:
        error_detail = _error_detail(e)
        logger.error(f"AI service HTTP error: {error_detail}")
        raise AIServiceError(f"AI service error: {error_detail}") from e
    except httpx.HTTPError as e:
        logger.error(f"AI service connection error: {str(e)}")
        raise AIServiceError(f"Failed to connect to AI service: {str(e)}") from e
    except ValueError as e:
        logger.error(f"AI service returned a non-JSON body: {str(e)}")
        raise AIServiceError("AI service returned a non-JSON body") from e

    try:
        response_text = response_data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        logger.error(f"Invalid response format from AI service: {response_data}")
        raise AIServiceError("Invalid response format from AI service") from e
    if not isinstance(response_text, str):
        raise AIServiceError("AI service returned empty content")

    logger.info(f"AI response received: {len(response_text)} characters")
    logger.debug(f"Response preview: {response_text[:200]}...")
    return response_text


async def complete_json(
    system_prompt: str,
    user_prompt: str,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Ask the model for a JSON object and parse it."""
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    response_text = strip_code_fences(await request_completion(messages, settings, transport))

    try:
        parsed_json = json.loads(response_text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response as JSON: {str(e)}")
        logger.debug(f"Response text: {response_text}")
        raise AIServiceError(f"AI returned invalid JSON: {str(e)}") from e

    if not isinstance(parsed_json, dict):
        raise AIServiceError("AI response is not a JSON object")

    logger.info("Successfully parsed AI response to JSON")
    return parsed_json
