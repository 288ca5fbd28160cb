"""Text generation backends for memory analysis and summarization."""
from .generator import (
    TextGenerator, MockGenerator, GenerationConfig, GeneratedResponse,
    MessagePart, PromptMessage,
)
from .production_llm import LLMConfig, LLMFactory, ProductionLLMGenerator
from .ollama_generator import OllamaGenerator

__all__ = [
    'TextGenerator', 'MockGenerator', 'GenerationConfig', 'GeneratedResponse',
    'MessagePart', 'PromptMessage',
    'LLMConfig', 'LLMFactory', 'ProductionLLMGenerator',
    'OllamaGenerator',
]
