"""
Unit tests for `llm_cloud/completion.py` and the finance tools it can drive.

The OpenAI client is a MagicMock injected through the ``client`` argument, so
no request ever leaves the process. A real `CircuitBreakerRegistry` is used so
the tests also verify that call outcomes are reported to the breaker.
"""

import json
import os
import unittest
from unittest.mock import MagicMock

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from core.circuit_breaker import CircuitBreakerRegistry, CircuitOptions, CircuitState
from llm_cloud.completion import CompletionService
from llm_cloud.tools import build_finance_toolbox
from shared.exceptions import CircuitOpenError, StructuredOutputError, UpstreamServiceError
from shared.models import RoutingDecision, Stage


def _response(content=None, tool_calls=None):
    response = MagicMock()
    message = response.choices[0].message
    message.content = content
    message.tool_calls = tool_calls
    return response


def _tool_call(name, arguments, call_id="call_1"):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


class TestCompletionService(unittest.TestCase):
    """
    Tests for circuit breaking, free-text replies, structured replies and the tool loop.
    """

    def setUp(self):
        self.breaker = CircuitBreakerRegistry()
        self.breaker.register("llm", CircuitOptions(failure_threshold=2, reset_timeout_ms=60000))
        self.client = MagicMock()
        self.service = CompletionService(self.breaker, client=self.client, circuit_name="llm")

    def test_reply_text_is_returned_and_success_recorded(self):
        self.breaker.record_failure("llm")
        self.client.chat.completions.create.return_value = _response("  Hello there!  ")

        self.assertEqual(self.service.complete([{"role": "user", "content": "hi"}], "general_assistant"), "Hello there!")
        self.assertEqual(self.breaker.get_record("llm").failure_count, 0)
        kwargs = self.client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")
        self.assertEqual(kwargs["max_tokens"], 800)

    def test_open_circuit_rejects_without_calling(self):
        """Once the threshold is reached the client is not called at all."""
        self.breaker.record_failure("llm")
        self.breaker.record_failure("llm")

        with self.assertRaises(CircuitOpenError):
            self.service.complete([{"role": "user", "content": "hi"}], "general_assistant")
        self.client.chat.completions.create.assert_not_called()

    def test_client_error_is_wrapped_and_recorded(self):
        self.client.chat.completions.create.side_effect = TimeoutError("read timeout")

        for _ in range(2):
            with self.assertRaises(UpstreamServiceError):
                self.service.complete([{"role": "user", "content": "hi"}], "general_assistant")
        self.assertEqual(self.breaker.get_state("llm"), CircuitState.OPEN)

    def test_empty_reply_is_an_error(self):
        self.client.chat.completions.create.return_value = _response("   ")
        with self.assertRaises(UpstreamServiceError):
            self.service.complete([{"role": "user", "content": "hi"}], "general_assistant")

    def test_structured_reply_is_validated(self):
        """JSON wrapped in a markdown fence is accepted and validated against the schema."""
        payload = {"routeTo": "domain_worker", "reasoning": "finance", "shouldMaintainProcess": False}
        self.client.chat.completions.create.return_value = _response(f"```json\n{json.dumps(payload)}\n```")

        decision = self.service.complete_structured([{"role": "system", "content": "route"}], RoutingDecision, "routing")

        self.assertEqual(decision.routeTo, Stage.DOMAIN_WORKER)
        kwargs = self.client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})

    def test_structured_reply_with_wrong_shape_raises(self):
        self.client.chat.completions.create.return_value = _response('{"routeTo": "nowhere"}')
        with self.assertRaises(StructuredOutputError):
            self.service.complete_structured([], RoutingDecision, "routing")

        self.client.chat.completions.create.return_value = _response("I think general.")
        with self.assertRaises(StructuredOutputError):
            self.service.complete_structured([], RoutingDecision, "routing")

    def test_tool_calls_are_executed_and_fed_back(self):
        """
        The first response asks for the budget tool; its result is appended as a
        ``tool`` message and the second response provides the final text.
        """
        tool_manager, tool_executor = build_finance_toolbox()
        self.client.chat.completions.create.side_effect = [
            _response(None, tool_calls=[_tool_call("calculate_budget_split", '{"monthly_income": 1000}')]),
            _response("Put 500 toward needs."),
        ]

        reply = self.service.complete(
            [{"role": "user", "content": "How should I split 1000?"}],
            "domain_specialist",
            tools=tool_manager.get_definitions(),
            tool_executor=tool_executor,
        )

        self.assertEqual(reply, "Put 500 toward needs.")
        second_call_messages = self.client.chat.completions.create.call_args_list[1].kwargs["messages"]
        tool_message = second_call_messages[-1]
        self.assertEqual(tool_message["role"], "tool")
        self.assertEqual(tool_message["tool_call_id"], "call_1")
        self.assertEqual(json.loads(tool_message["content"]), {"needs": 500.0, "wants": 300.0, "savings": 200.0})


class TestFinanceTools(unittest.TestCase):
    """Tests for the tool executor's error handling and the calculators themselves."""

    def setUp(self):
        self.tool_manager, self.executor = build_finance_toolbox()

    def test_registered_tools(self):
        self.assertEqual(
            sorted(self.tool_manager.get_tool_names()),
            ["calculate_budget_split", "calculate_compound_interest", "calculate_emergency_fund", "get_current_date"],
        )

    def test_compound_interest(self):
        result = json.loads(self.executor.run_tool(_tool_call(
            "calculate_compound_interest", '{"principal": 1000, "annual_rate_percent": 12, "years": 1}'
        )))
        self.assertEqual(result["total_invested"], 1000)
        self.assertAlmostEqual(result["final_balance"], 1126.83, places=2)

    def test_emergency_fund_default_months(self):
        result = json.loads(self.executor.run_tool(_tool_call("calculate_emergency_fund", '{"monthly_expenses": 2000}')))
        self.assertEqual(result, {"target": 12000.0, "months": 6})

    def test_unknown_tool_and_bad_arguments_are_reported_as_text(self):
        self.assertEqual(self.executor.run_tool(_tool_call("launch_rocket", "{}")), "Unknown tool 'launch_rocket'")
        self.assertIn("Malformed arguments", self.executor.run_tool(_tool_call("calculate_budget_split", "{oops")))
        self.assertIn("Error executing tool", self.executor.run_tool(_tool_call("calculate_budget_split", "{}")))


if __name__ == "__main__":
    unittest.main()
