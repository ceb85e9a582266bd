"""
LLM Factory — the chat model behind the LLM ranking oracle.

LLM_PROVIDER selects the backend (default 'claude'):
  - claude  → langchain-anthropic, CLAUDE_MODEL
  - openai  → langchain-openai, OPENAI_MODEL (OPENAI_BASE_URL for compatible endpoints)
  - ollama  → langchain-ollama, OLLAMA_MODEL (local)

Every provider runs at temperature 0. LLM_MAX_TOKENS and LLM_TIMEOUT_SECONDS
bound a single ranking call; a ranking answer is a short JSON document.
"""

import os

from langchain_anthropic import ChatAnthropic
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

DEFAULT_PROVIDER = "claude"

DEFAULT_MODELS = {
    "claude": "claude-sonnet-4-5",
    "openai": "gpt-4o",
    "ollama": "llama3.1",
}

MODEL_ENV = {
    "claude": "CLAUDE_MODEL",
    "openai": "OPENAI_MODEL",
    "ollama": "OLLAMA_MODEL",
}


def llm_provider() -> str:
    provider = os.getenv("LLM_PROVIDER", DEFAULT_PROVIDER).strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ValueError(f"Unknown LLM_PROVIDER: {provider}")
    return provider


def llm_model(provider: str) -> str:
    return os.getenv(MODEL_ENV[provider], DEFAULT_MODELS[provider])


def describe_llm() -> str:
    """'provider/model' label for logs and the health endpoint."""
    try:
        provider = llm_provider()
    except ValueError as exc:
        return f"invalid ({exc})"
    return f"{provider}/{llm_model(provider)}"


def get_llm():
    """Returns the LangChain chat model for LLM_PROVIDER."""
    provider = llm_provider()
    model = llm_model(provider)
    max_tokens = int(os.getenv("LLM_MAX_TOKENS", "2048"))
    timeout = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

    if provider == "claude":
        return ChatAnthropic(
            model=model,
            api_key=os.getenv("ANTHROPIC_API_KEY"),
            max_tokens=max_tokens,
            timeout=timeout,
            temperature=0,
        )

    if provider == "openai":
        return ChatOpenAI(
            model=model,
            base_url=os.getenv("OPENAI_BASE_URL"),
            api_key=os.getenv("OPENAI_API_KEY"),
            max_tokens=max_tokens,
            timeout=timeout,
            temperature=0,
        )

    return ChatOllama(model=model, num_predict=max_tokens, temperature=0)
