"""
Hosted LLM providers for the memory pipeline.

Wraps the OpenAI, Azure OpenAI and Anthropic SDKs behind the TextGenerator
interface. SDKs are imported lazily so only the configured provider needs to
be installed.
"""

import os
import time
import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass

from adaptive_memory.errors import ExternalGenerationError
from .generator import (
    TextGenerator,
    GeneratedResponse,
    GenerationConfig,
    PromptMessage,
    prompt_length,
)

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str  # "openai", "azure", "anthropic"
    api_key: str
    model_name: str
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    deployment_name: Optional[str] = None  # For Azure
    max_retries: int = 3
    timeout: int = 30
    max_tokens: int = 1024


def render_part_marker(part) -> str:
    """Text marker for a non-text part, e.g. ``[image_url] https://...``."""
    if part.type == "text":
        return part.text or ""
    marker = f"[{part.type}]"
    if part.url:
        marker += f" {part.url}"
    return marker


class ProductionLLMGenerator(TextGenerator):
    """Chat generator with multiple provider support."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.client = self._initialize_client()

    def _initialize_client(self):
        """Initialize the appropriate LLM client based on provider."""
        if self.config.provider == "openai":
            return self._init_openai_client()
        elif self.config.provider == "azure":
            return self._init_azure_client()
        elif self.config.provider == "anthropic":
            return self._init_anthropic_client()
        else:
            raise ValueError(f"Unsupported provider: {self.config.provider}")

    def _init_openai_client(self):
        """Initialize OpenAI client."""
        try:
            import openai
        except ImportError:
            raise ImportError("OpenAI package required: pip install openai")
        return openai.OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries
        )

    def _init_azure_client(self):
        """Initialize Azure OpenAI client."""
        try:
            import openai
        except ImportError:
            raise ImportError("OpenAI package required: pip install openai")
        return openai.AzureOpenAI(
            api_key=self.config.api_key,
            azure_endpoint=self.config.base_url,
            api_version=self.config.api_version or "2024-02-01",
            timeout=self.config.timeout,
            max_retries=self.config.max_retries
        )

    def _init_anthropic_client(self):
        """Initialize Anthropic client."""
        try:
            import anthropic
        except ImportError:
            raise ImportError("Anthropic package required: pip install anthropic")
        return anthropic.Anthropic(
            api_key=self.config.api_key,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries
        )

    def is_available(self) -> bool:
        """Check if the LLM client was initialized."""
        return self.client is not None

    def generate(
        self,
        messages: List[PromptMessage],
        config: Optional[GenerationConfig] = None
    ) -> GeneratedResponse:
        """Generate a reply using the configured provider."""
        gen_config = config or GenerationConfig()
        start = time.time()

        try:
            if self.config.provider in ["openai", "azure"]:
                text = self._generate_openai(messages, gen_config)
            elif self.config.provider == "anthropic":
                text = self._generate_anthropic(messages, gen_config)
            else:
                raise ValueError(f"Unsupported provider: {self.config.provider}")
        except ExternalGenerationError:
            raise
        except Exception as e:
            logger.error("Generation failed (%s): %s", self.config.provider, e)
            raise ExternalGenerationError(f"{self.config.provider} generation failed: {e}") from e

        text = text or ""
        return GeneratedResponse(
            text=text,
            model_used=f"{self.config.provider}_{self.config.deployment_name or self.config.model_name}",
            prompt_length=prompt_length(messages),
            response_length=len(text),
            processing_time=time.time() - start,
        )

    def _openai_messages(self, messages: List[PromptMessage]) -> List[Dict[str, Any]]:
        """Convert prompt messages to the OpenAI chat format."""
        converted = []
        for msg in messages:
            if not msg.parts:
                converted.append({"role": msg.role, "content": msg.content})
                continue

            content: List[Dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for part in msg.parts:
                if part.type == "image_url" and part.url:
                    content.append({"type": "image_url", "image_url": {"url": part.url}})
                else:
                    content.append({"type": "text", "text": render_part_marker(part)})
            converted.append({"role": msg.role, "content": content})
        return converted

    def _generate_openai(self, messages: List[PromptMessage], config: GenerationConfig) -> str:
        """Generate response using OpenAI/Azure OpenAI."""
        # Use deployment name for Azure, model name for OpenAI
        model = self.config.deployment_name or self.config.model_name

        kwargs: Dict[str, Any] = {}
        if config.timeout:
            kwargs["timeout"] = config.timeout

        response = self.client.chat.completions.create(
            model=model,
            messages=self._openai_messages(messages),
            temperature=config.temperature,
            max_tokens=min(config.max_new_tokens, self.config.max_tokens),
            **kwargs
        )
        return response.choices[0].message.content

    def _generate_anthropic(self, messages: List[PromptMessage], config: GenerationConfig) -> str:
        """Generate response using Anthropic Claude."""
        # Anthropic takes system prompts separately
        system = "\n\n".join(m.content for m in messages if m.role == "system")

        chat = []
        for msg in messages:
            if msg.role == "system":
                continue
            if not msg.parts:
                chat.append({"role": msg.role, "content": msg.content})
                continue

            content: List[Dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for part in msg.parts:
                if part.type == "image_url" and part.url:
                    content.append({"type": "image", "source": {"type": "url", "url": part.url}})
                else:
                    content.append({"type": "text", "text": render_part_marker(part)})
            chat.append({"role": msg.role, "content": content})

        kwargs: Dict[str, Any] = {}
        if system:
            kwargs["system"] = system
        if config.timeout:
            kwargs["timeout"] = config.timeout

        response = self.client.messages.create(
            model=self.config.model_name,
            max_tokens=min(config.max_new_tokens, self.config.max_tokens),
            temperature=config.temperature,
            messages=chat,
            **kwargs
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )


class LLMFactory:
    """Factory for creating LLM generators with different configurations."""

    @staticmethod
    def create_openai_generator(
        api_key: Optional[str] = None,
        model_name: str = "gpt-4o-mini",
        **kwargs
    ) -> ProductionLLMGenerator:
        """Create OpenAI generator."""
        config = LLMConfig(
            provider="openai",
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            model_name=model_name,
            **kwargs
        )
        return ProductionLLMGenerator(config)

    @staticmethod
    def create_azure_generator(
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        deployment_name: str = "gpt-4o-mini",
        api_version: str = "2024-02-01",
        **kwargs
    ) -> ProductionLLMGenerator:
        """Create Azure OpenAI generator."""
        config = LLMConfig(
            provider="azure",
            api_key=api_key or os.getenv("AZURE_OPENAI_API_KEY"),
            model_name=deployment_name,
            base_url=base_url or os.getenv("AZURE_OPENAI_ENDPOINT"),
            api_version=api_version,
            deployment_name=deployment_name,
            **kwargs
        )
        return ProductionLLMGenerator(config)

    @staticmethod
    def create_anthropic_generator(
        api_key: Optional[str] = None,
        model_name: str = "claude-3-5-haiku-latest",
        **kwargs
    ) -> ProductionLLMGenerator:
        """Create Anthropic generator."""
        config = LLMConfig(
            provider="anthropic",
            api_key=api_key or os.getenv("ANTHROPIC_API_KEY"),
            model_name=model_name,
            **kwargs
        )
        return ProductionLLMGenerator(config)
