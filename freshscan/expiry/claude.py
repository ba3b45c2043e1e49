"""Claude API vision backend for expiry date extraction."""

from __future__ import annotations

import base64

from . import EXPIRY_PROMPT, ExpiryExtractor
from .dates import parse_model_response


class ClaudeExpiryExtractor(ExpiryExtractor):
    """Read expiry dates using Claude's vision capability."""

    name = "claude"

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def _recognize(self, image: bytes) -> str | None:
        if not self._api_key:
            raise ValueError(
                "Anthropic APIキーが設定されていません。"
                "設定ファイルまたは ANTHROPIC_API_KEY 環境変数を確認してください。"
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/jpeg",
                    "data": base64.standard_b64encode(image).decode(),
                },
            },
            {"type": "text", "text": EXPIRY_PROMPT},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=256,
            messages=[{"role": "user", "content": content}],
        )

        return parse_model_response(response.content[0].text)
