import json
import httpx
import pytest
from vitalis.config.settings import Settings
from vitalis.services.ai_client import complete_json, request_completion, strip_code_fences
from vitalis.utils.exceptions import AIServiceError


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def transport_returning(status_code, body):
    def handler(request):
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=body)
    return httpx.MockTransport(handler)


@pytest.mark.parametrize("raw, expected", [
    ('{"a": 1}', '{"a": 1}'),
    ('```json\n{"a": 1}\n```', '{"a": 1}'),
    ('```\n{"a": 1}\n```', '{"a": 1}'),
    ('  {"a": 1}  ', '{"a": 1}'),
])
def test_strip_code_fences(raw, expected):
    assert strip_code_fences(raw) == expected


@pytest.mark.asyncio
async def test_request_sends_configured_payload(ai_enabled_settings):
    captured = {}

    def handler(request):
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        captured["url"] = str(request.url)
        return httpx.Response(200, json=completion("ok"))

    text = await request_completion(
        [{"role": "user", "content": "hello"}],
        settings=ai_enabled_settings,
        transport=httpx.MockTransport(handler),
    )

    assert text == "ok"
    assert captured["url"] == ai_enabled_settings.ai_api_url
    assert captured["headers"]["authorization"] == "Bearer test-key"
    assert captured["headers"]["x-title"] == ai_enabled_settings.site_name
    assert captured["body"]["model"] == ai_enabled_settings.ai_model
    assert captured["body"]["temperature"] == 0.1
    assert captured["body"]["max_tokens"] == 4000


@pytest.mark.asyncio
async def test_complete_json_strips_fences(ai_enabled_settings):
    transport = transport_returning(200, completion('```json\n{"overallAssessment": {"healthScore": 70}}\n```'))
    parsed = await complete_json("system", "user", settings=ai_enabled_settings, transport=transport)
    assert parsed == {"overallAssessment": {"healthScore": 70}}


@pytest.mark.asyncio
async def test_missing_api_key():
    with pytest.raises(AIServiceError):
        await request_completion([], settings=Settings(ai_api_key=None))


@pytest.mark.asyncio
async def test_http_error_status(ai_enabled_settings):
    transport = transport_returning(401, {"error": {"message": "Invalid API key"}})
    with pytest.raises(AIServiceError, match="Invalid API key"):
        await request_completion([], settings=ai_enabled_settings, transport=transport)


@pytest.mark.asyncio
async def test_connection_error(ai_enabled_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AIServiceError, match="Failed to connect"):
        await request_completion([], settings=ai_enabled_settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_missing_choices(ai_enabled_settings):
    transport = transport_returning(200, {"id": "abc"})
    with pytest.raises(AIServiceError, match="Invalid response format"):
        await request_completion([], settings=ai_enabled_settings, transport=transport)


@pytest.mark.asyncio
async def test_invalid_json_content(ai_enabled_settings):
    transport = transport_returning(200, completion("I cannot help with that."))
    with pytest.raises(AIServiceError, match="invalid JSON"):
        await complete_json("system", "user", settings=ai_enabled_settings, transport=transport)


@pytest.mark.asyncio
async def test_non_object_json(ai_enabled_settings):
    transport = transport_returning(200, completion("[1, 2, 3]"))
    with pytest.raises(AIServiceError):
        await complete_json("system", "user", settings=ai_enabled_settings, transport=transport)
