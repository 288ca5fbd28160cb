"""
Ollama generator adapter for local LLM inference.

Implements the TextGenerator interface against the Ollama chat REST API.
"""

import base64
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from adaptive_memory.errors import ExternalGenerationError
from adaptive_memory.generation.generator import (
    TextGenerator,
    GeneratedResponse,
    GenerationConfig,
    PromptMessage,
    prompt_length,
)
from adaptive_memory.generation.production_llm import render_part_marker

logger = logging.getLogger(__name__)


class OllamaGenerator(TextGenerator):
    """
    Generator that uses Ollama for local LLM inference.

    Ollama must be running locally (default: http://localhost:11434).
    Image parts are downloaded and sent base64-encoded in the message
    ``images`` list; images that cannot be fetched and other media parts are
    rendered as text markers.
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        timeout: int = 60
    ):
        """
        Initialize Ollama generator.

        Args:
            model: Ollama model name (e.g., "llama3", "mistral", "phi")
            base_url: Ollama API base URL
            timeout: Default request timeout in seconds

        Raises:
            RuntimeError: If Ollama server is not reachable
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        # Check server availability
        if not self._check_availability():
            raise RuntimeError(
                f"Ollama not reachable at {self.base_url}. "
                f"Please start Ollama with 'ollama serve' or check the URL."
            )

    def _check_availability(self) -> bool:
        """Check if Ollama server is running."""
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                timeout=5
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def is_available(self) -> bool:
        """Check if the generator is available and ready to use."""
        return self._check_availability()

    def _fetch_image(self, url: str, timeout: float) -> Optional[str]:
        """Return base64 image data for a URL, or None when it cannot be fetched."""
        if url.startswith("data:"):
            header, _, data = url.partition(",")
            return data if header.endswith(";base64") else None
        try:
            response = requests.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Could not fetch image %s: %s", url, e)
            return None
        if response.status_code != 200:
            logger.warning("Could not fetch image %s: status %s", url, response.status_code)
            return None
        return base64.b64encode(response.content).decode("ascii")

    def _to_ollama(self, messages: List[PromptMessage], timeout: float) -> List[Dict[str, Any]]:
        converted = []
        for msg in messages:
            text = msg.content
            images = []
            for part in msg.parts:
                if part.type == "image_url" and part.url:
                    data = self._fetch_image(part.url, timeout)
                    if data is not None:
                        images.append(data)
                        continue
                text = f"{text}\n{render_part_marker(part)}" if text else render_part_marker(part)
            entry: Dict[str, Any] = {"role": msg.role, "content": text}
            if images:
                entry["images"] = images
            converted.append(entry)
        return converted

    def generate(
        self,
        messages: List[PromptMessage],
        config: Optional[GenerationConfig] = None
    ) -> GeneratedResponse:
        """
        Generate a chat reply using Ollama (non-streaming).

        Args:
            messages: Role-tagged prompt messages
            config: Generation configuration

        Returns:
            GeneratedResponse with metadata

        Raises:
            ExternalGenerationError: If the request fails
        """
        start_time = time.time()

        temperature = config.temperature if config else 0.2
        max_tokens = config.max_new_tokens if config else 1024
        timeout = config.timeout if config and config.timeout else self.timeout

        payload = {
            "model": self.model,
            "messages": self._to_ollama(messages, timeout),
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            }
        }

        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=timeout
            )
        except requests.exceptions.Timeout:
            raise ExternalGenerationError(
                f"Ollama request timed out after {timeout}s"
            )
        except requests.exceptions.RequestException as e:
            raise ExternalGenerationError(
                f"Ollama request failed: {e}. Check if Ollama is running at {self.base_url}."
            ) from e

        if response.status_code != 200:
            raise ExternalGenerationError(
                f"Ollama API returned status {response.status_code}: {response.text}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ExternalGenerationError(f"Ollama returned invalid JSON: {e}") from e

        response_text = (result.get("message") or {}).get("content", "").strip()

        return GeneratedResponse(
            text=response_text,
            model_used=self.model,
            prompt_length=prompt_length(messages),
            response_length=len(response_text),
            processing_time=time.time() - start_time
        )

    def __repr__(self) -> str:
        return f"OllamaGenerator(model='{self.model}', base_url='{self.base_url}')"
