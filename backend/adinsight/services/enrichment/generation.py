"""
LangChain-backed generation capability.

Each call runs ``prompt | model | JsonOutputParser()`` on the generator's own
thread pool so it can be abandoned once the timeout elapses. The pool has
one thread per prompt, so a hung call never delays the next prompt.
Provider errors, timeouts and unparseable output all surface as
``GenerationError``.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser

from adinsight.core.config import Settings
from adinsight.core.exceptions import (
    GenerationError,
    GenerationSetupError,
    GenerationTimeoutError,
)
from adinsight.services.enrichment.prompts import PROMPTS, get_prompt

logger = logging.getLogger(__name__)


class LangChainGenerator:
    """Generation capability over any LangChain chat model."""

    def __init__(self, model: BaseChatModel, timeout_seconds: float = 30.0) -> None:
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.parser = JsonOutputParser()
        self._executor = ThreadPoolExecutor(
            max_workers=len(PROMPTS), thread_name_prefix="llm-call"
        )

    def close(self) -> None:
        """Release the pool without waiting for calls that already timed out."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def generate(self, prompt_name: str, payload: dict[str, Any]) -> Any:
        chain = get_prompt(prompt_name) | self.model | self.parser
        data = json.dumps(payload, default=str)
        future = self._executor.submit(chain.invoke, {"data": data})
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                f"Generation '{prompt_name}' timed out after {self.timeout_seconds}s"
            )
            raise GenerationTimeoutError(
                f"Generation '{prompt_name}' timed out after {self.timeout_seconds}s",
                {"prompt": prompt_name},
            ) from None
        except OutputParserException as e:
            raise GenerationError(
                f"Generation '{prompt_name}' returned malformed JSON", {"prompt": prompt_name}
            ) from e
        except Exception as e:
            raise GenerationError(
                f"Generation '{prompt_name}' failed: {type(e).__name__}: {e}",
                {"prompt": prompt_name},
            ) from e


def build_generator(settings: Settings) -> LangChainGenerator:
    """Create the Gemini-backed generator; raises ``GenerationSetupError``."""
    if not settings.llm_api_key:
        raise GenerationSetupError("LLM_API_KEY (or GOOGLE_API_KEY) is not configured")
    try:
        from langchain_google_genai import ChatGoogleGenerativeAI

        model = ChatGoogleGenerativeAI(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_output_tokens,
            google_api_key=settings.llm_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=1,
        )
    except Exception as e:
        raise GenerationSetupError(f"Failed to initialize chat model: {e}") from e
    logger.info(f"Initialized generation model {settings.llm_model}")
    return LangChainGenerator(model, timeout_seconds=settings.llm_timeout_seconds)
