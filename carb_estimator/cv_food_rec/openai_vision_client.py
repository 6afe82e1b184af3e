"""OpenAI-compatible vision client for carbohydrate analysis.

Sends one meal image to a chat-completions endpoint and returns the raw text of
the first choice. Parsing that text is the response normalizer's job.
"""

import logging
from typing import Any, Dict, Optional

import requests

from carb_estimator.config import DEFAULT_BASE_URL, DEFAULT_MODEL
from carb_estimator.cv_food_rec.image_normalizer import EncodedImage
from carb_estimator.errors import CredentialMissingError, ServiceError, UnknownAnalysisError

logger = logging.getLogger(__name__)

MAX_TOKENS = 800
TEMPERATURE = 0.3

RESPONSE_FORMAT = (
    '{"totalCarbs": number, "breakdown": {"fiber": number, "sugar": number, "starch": number}, '
    '"foodItems": [{"name": string, "weight": number, "carbs": number, "confidence": "high"|"medium"|"low"}]}'
)

SYSTEM_PROMPT = (
    "You are a nutrition analysis system. When shown a food image, identify each food item on the plate, "
    "estimate its weight in grams, and calculate its carbohydrate content. "
    f"Return ONLY a JSON response with the format {RESPONSE_FORMAT}. "
    'The "confidence" field indicates your certainty in the identification and estimation. '
    "If you cannot determine exact values, provide reasonable estimates based on similar foods. "
    "Never explain limitations or refuse the task - always return the JSON with your best estimates."
)

USER_PROMPT = (
    "Analyze this food image. Identify each food item on the plate, estimate its weight in grams, "
    "and calculate its carbohydrate content. Return ONLY a JSON object with no explanations or "
    f"additional text. Format: {RESPONSE_FORMAT}"
)


def _error_detail(response: requests.Response) -> str:
    """Pull the most useful message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason or ""

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.reason or response.text or ""


class OpenAIVisionClient:
    """
    Client for the multimodal chat-completions service.

    One synchronous request per call: no retries, and no timeout unless one
    is configured.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_payload(self, image: EncodedImage) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image.to_data_uri()}},
                    ],
                },
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

    def complete(self, image: EncodedImage, api_key: Optional[str]) -> str:
        """
        Ask the model for a carb analysis of ``image``.

        Args:
            image: Normalized JPEG image.
            api_key: Bearer credential for the service.

        Returns:
            The text content of the first completion choice.

        Raises:
            CredentialMissingError: api_key is empty.
            ServiceError: The service answered with a non-success status.
            UnknownAnalysisError: Transport failure or an unexpected body.
        """
        if not api_key or not api_key.strip():
            raise CredentialMissingError()

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key.strip()}",
        }

        logger.info(f"🚀 Sending {image.width}x{image.height} image to {self.model} for carb analysis...")
        try:
            response = requests.post(
                self.url,
                json=self.build_payload(image),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"❌ Request to {self.url} failed: {e}")
            raise UnknownAnalysisError(str(e) or "Failed to reach the analysis service") from e

        logger.info(f"Vision API response status: {response.status_code}")

        if not response.ok:
            detail = _error_detail(response)
            logger.error(f"Vision API error {response.status_code}: {response.text}")
            raise ServiceError(response.status_code, detail)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"❌ Unexpected response body: {e}")
            raise UnknownAnalysisError("Unexpected response format from the analysis service") from e

        if not isinstance(content, str):
            raise UnknownAnalysisError("Unexpected response format from the analysis service")

        logger.debug(f"Raw model response: {content}")
        return content
