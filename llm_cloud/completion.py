"""
llm_cloud/completion.py

Circuit-breaker-guarded access to the completion service.

Every stage that needs the external reasoning service (router classifier,
workers, output structuring, language detection, error localization) goes
through ``CompletionService``. It is responsible for:

- resolving the model name and sampling settings from ``CONFIG["llm"]["models"]``
- asking the circuit breaker for permission before each call and reporting the outcome
- free-text replies, including an optional tool-calling loop
- structured replies validated against a pydantic schema

Stages never see raw SDK errors. Failures surface as ``UpstreamServiceError``
(``CircuitOpenError`` when the call was not even attempted) or
``StructuredOutputError`` when the answer does not match the schema.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from config import CONFIG
from core.circuit_breaker import CircuitBreakerRegistry
from llm_cloud.provider import get_client, get_provider_name
from monitoring.metrics import LLM_REQUEST_TIME
from shared.exceptions import CircuitOpenError, StructuredOutputError, UpstreamServiceError
from shared.utils import safe_json_loads, truncate_message_for_logging

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MAX_TOOL_ROUNDS = 3


class CompletionService:
    """
    Thin, mockable facade over the chat completions API.

    The OpenAI client is created lazily on first use so that building the
    service (for example while wiring the application or in tests) does not
    require API keys.
    """

    def __init__(self, circuit_breaker: CircuitBreakerRegistry, client: Any = None,
                 circuit_name: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        self.config = config or CONFIG
        self.circuit_breaker = circuit_breaker
        self._client = client
        self.circuit_name = circuit_name or self.config.get("llm", {}).get(
            "circuit_name", get_provider_name(self.config)
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_client()
        return self._client

    def complete(self, messages: List[Dict[str, Any]], model_key: str,
                 tools: Optional[List[Dict[str, Any]]] = None,
                 tool_executor: Any = None) -> str:
        """
        Ask for a free-text reply.

        When ``tools`` and ``tool_executor`` are given, tool calls requested by the
        model are executed and their results fed back, for at most
        ``MAX_TOOL_ROUNDS`` rounds, before the final text is returned.

        Args:
            messages (List[Dict[str, Any]]): Chat messages (role/content dictionaries).
            model_key (str): Key under ``CONFIG["llm"]["models"]``.
            tools (Optional[List[Dict[str, Any]]]): Tool definitions in the function-calling format.
            tool_executor (Any): Object with ``run_tool(tool_call) -> str``.

        Returns:
            str: The assistant's reply text.

        Raises:
            UpstreamServiceError: On any failure, including an open circuit or an empty reply.
        """
        conversation = list(messages)
        for _ in range(MAX_TOOL_ROUNDS + 1):
            extra = {"tools": tools, "tool_choice": "auto"} if tools and tool_executor else {}
            response = self._create(conversation, model_key, **extra)
            reply = response.choices[0].message

            if extra and getattr(reply, "tool_calls", None):
                logger.info(f"[CompletionService] Model requested {len(reply.tool_calls)} tool call(s)")
                conversation.append({
                    "role": "assistant",
                    "content": reply.content or "",
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function.name, "arguments": call.function.arguments},
                        }
                        for call in reply.tool_calls
                    ],
                })
                for call in reply.tool_calls:
                    conversation.append({
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": tool_executor.run_tool(call),
                    })
                continue

            content = (reply.content or "").strip()
            if not content:
                raise UpstreamServiceError(f"Empty completion for model '{model_key}'")
            return content

        raise UpstreamServiceError(f"Tool loop for model '{model_key}' did not converge")

    def complete_structured(self, messages: List[Dict[str, Any]], schema: Type[T], model_key: str) -> T:
        """
        Ask for a JSON reply and validate it against ``schema``.

        Raises:
            UpstreamServiceError: If the call itself fails.
            StructuredOutputError: If the reply is not valid JSON for ``schema``.
        """
        response = self._create(messages, model_key, response_format={"type": "json_object"})
        raw = (response.choices[0].message.content or "").strip()
        payload = safe_json_loads(raw, fallback=None)
        if not payload:
            raise StructuredOutputError(
                f"Model '{model_key}' returned non-JSON output: {truncate_message_for_logging(raw)}"
            )
        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise StructuredOutputError(f"Model '{model_key}' output failed {schema.__name__} validation: {e}") from e

    def _create(self, messages: List[Dict[str, Any]], model_key: str, **kwargs: Any) -> Any:
        if not self.circuit_breaker.can_execute(self.circuit_name):
            logger.warning(f"[CompletionService] Circuit '{self.circuit_name}' is open; skipping call for '{model_key}'")
            raise CircuitOpenError(self.circuit_name)

        model_config = self.config["llm"]["models"][model_key]
        settings = model_config.get("settings", {})
        if "top_k" in settings and get_provider_name(self.config) != "openai":
            kwargs["extra_body"] = {"top_k": settings["top_k"]}

        start_time = time.time()
        try:
            response = self.client.chat.completions.create(
                model=model_config["name"],
                messages=messages,
                max_tokens=settings.get("max_tokens"),
                temperature=settings.get("temperature"),
                top_p=settings.get("top_p"),
                **kwargs,
            )
        except Exception as e:
            self.circuit_breaker.record_failure(self.circuit_name)
            logger.error(f"[CompletionService] Call to '{model_config['name']}' failed: {e}")
            raise UpstreamServiceError(str(e)) from e
        finally:
            LLM_REQUEST_TIME.labels(model=model_config["name"]).observe(time.time() - start_time)

        self.circuit_breaker.record_success(self.circuit_name)
        return response
