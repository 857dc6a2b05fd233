"""Language-model handler interface."""

from contextfold.llm.handler import LanguageModelHandler, LiteLLMHandler, to_openai_messages

__all__ = ["LanguageModelHandler", "LiteLLMHandler", "to_openai_messages"]
