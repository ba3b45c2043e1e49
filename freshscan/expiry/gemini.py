"""Gemini API vision backend for expiry date extraction."""

from __future__ import annotations

from . import EXPIRY_PROMPT, ExpiryExtractor
from .dates import parse_model_response


class GeminiExpiryExtractor(ExpiryExtractor):
    """Read expiry dates using Google Gemini's vision capability."""

    name = "gemini"

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def _recognize(self, image: bytes) -> str | None:
        if not self._api_key:
            raise ValueError(
                "Gemini APIキーが設定されていません。"
                "設定ファイルまたは GEMINI_API_KEY 環境変数を確認してください。"
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        parts = [{"mime_type": "image/jpeg", "data": image}, EXPIRY_PROMPT]
        response = await model.generate_content_async(parts)
        return parse_model_response(response.text)
