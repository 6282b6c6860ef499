"""
Workers AI Provider
Image description and content-safety classification via Cloudflare Workers AI
"""

import base64
import json
import time
from typing import Any, Dict, Optional

import httpx

from ..core.config import get_settings
from ..core.logging import provider_logger
from ..core.result import Result
from ..workflow.types import NsfwVerdict, SafetyVerdict

settings = get_settings()

DESCRIBE_PROMPT = (
    "Describe this image in a few sentences. "
    "Be creative but specific focusing on story, emotion and environment."
)

SAFETY_CATEGORIES = """<BEGIN UNSAFE CONTENT CATEGORIES>
S1: Violent Crimes.
S2: Non-Violent Crimes.
S3: Sex Crimes.
S4: Child Exploitation.
S5: Defamation.
S7: Privacy.
S8: Intellectual Property.
S9: Indiscriminate Weapons.
S10: Hate.
S11: Self-Harm.
S12: Sexual Content.
    Reject all content containing sexual, explicit, suggestive, erotic, romantic, or NSFW themes in any form. Only permit content that is entirely G-rated, suitable for viewing by all ages, including young children. Specifically:
        - No sexual language, innuendo, euphemisms, or slang.
        - No romantic or suggestive scenarios, relationships, or interactions.
        - No references to nudity, partial nudity, clothing that accentuates sexual characteristics, or anatomical descriptions of sexual characteristics.
        - No discussions or depictions of reproduction, pregnancy, childbirth, or related anatomical processes.
        - No adult products, dating, romantic gestures, or flirting.
        - No suggestive descriptions of appearance, clothing, or body movements.
    Allow ONLY neutral, non-romantic, non-sexual, strictly safe-for-children (G-rated) prompts and outputs.
S13: Elections.
<END UNSAFE CONTENT CATEGORIES>"""


def build_safety_prompt(prompt: str, description: str, lyrics: str) -> str:
    return (
        f"{SAFETY_CATEGORIES}\n"
        "<BEGIN CONVERSATION>\n"
        "User:\n"
        f"# Prompt\n{prompt}\n"
        f"# Description\n{description}\n"
        f"# Lyrics\n{lyrics}\n"
        "<END CONVERSATION>"
    )


def parse_safety_verdict(response: Any) -> SafetyVerdict:
    """Structured verdicts become ``NsfwVerdict``; anything else is kept as text"""
    if isinstance(response, dict):
        return NsfwVerdict.model_validate(response)
    if isinstance(response, str):
        try:
            parsed = json.loads(response)
        except ValueError:
            return response
        if isinstance(parsed, dict):
            return NsfwVerdict.model_validate(parsed)
    return str(response)


class WorkersAIProvider:
    """Cloudflare Workers AI REST client"""

    def __init__(
        self,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        describe_model: Optional[str] = None,
        nsfw_model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_id = account_id if account_id is not None else settings.CF_ACCOUNT_ID
        self.api_token = api_token if api_token is not None else settings.CF_AI_API_TOKEN
        self.base_url = base_url or settings.CF_AI_BASE_URL
        self.describe_model = describe_model or settings.IMAGE_DESCRIBE_MODEL
        self.nsfw_model = nsfw_model or settings.NSFW_MODEL
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json"
                }
            )
        return self._client

    async def _run(self, model: str, inputs: Dict[str, Any]) -> Result[Any]:
        start_time = time.time()
        provider_logger.log_request_start("workers-ai", "run", model=model)

        try:
            response = await self._get_client().post(
                f"/accounts/{self.account_id}/ai/run/{model}",
                json=inputs
            )

            if not response.is_success:
                error = f"Workers AI error: {response.status_code} - {response.text}"
                provider_logger.log_request_error("workers-ai", "run", error=error, model=model)
                return Result.err(error)

            body = response.json()
            if body.get("success") is False:
                return Result.err(f"Workers AI error: {body.get('errors')}")

            provider_logger.log_request_complete(
                "workers-ai",
                "run",
                duration_ms=(time.time() - start_time) * 1000,
                model=model
            )
            return Result.ok(body.get("result") or {})

        except (httpx.HTTPError, ValueError) as e:
            provider_logger.log_request_error("workers-ai", "run", error=str(e), model=model)
            return Result.err(f"Workers AI request failed: {e}")

    async def describe_image(self, image_base64: str, prompt: str = DESCRIBE_PROMPT) -> Result[str]:
        """Describe a base64 image in a few sentences"""

        try:
            image = list(base64.b64decode(image_base64))
        except ValueError as e:
            return Result.err(f"Invalid image data: {e}")

        result = await self._run(self.describe_model, {"image": image, "prompt": prompt})
        if result.is_err():
            return result

        description = (result.data.get("description") or "").strip()
        if not description:
            return Result.err("Image description was empty")
        return Result.ok(description)

    async def check_nsfw(self, prompt: str, description: str, lyrics: str) -> Result[SafetyVerdict]:
        """Classify prompt, description and lyrics against the safety categories"""

        result = await self._run(
            self.nsfw_model,
            {
                "response_format": {"type": "json_object"},
                "messages": [
                    {"role": "user", "content": build_safety_prompt(prompt, description, lyrics)}
                ]
            }
        )
        if result.is_err():
            return result

        verdict = result.data.get("response")
        if verdict is None:
            return Result.err("Safety check returned no verdict")
        return Result.ok(parse_safety_verdict(verdict))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "DESCRIBE_PROMPT",
    "WorkersAIProvider",
    "build_safety_prompt",
    "parse_safety_verdict",
]
