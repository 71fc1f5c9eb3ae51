from typing import Optional

from google import genai

import config

_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY missing")
        _client = genai.Client(api_key=config.GEMINI_API_KEY)
    return _client


def call_llm(prompt: str) -> str:
    response = get_client().models.generate_content(
        model=config.LLM_MODEL_NAME,
        contents=prompt,
    )

    if not response or not response.text:
        raise RuntimeError("Empty Gemini response")

    return response.text.strip()
