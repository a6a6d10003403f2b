import unittest

from app.ai.config import DEFAULT_MODEL
from app.ai.fallback import generate_with_fallback, models_to_try
from app.ai.types import AIProviderError, ModelOptions, is_model_unavailable_error, is_rate_limit_error
from app.ai.usage import UsageTracker

CHAIN = ("gemini:gemini-2.5-flash-lite", "openai:gpt-4o-mini")


class _ScriptedProvider:
    def __init__(self, outcome):
        self._outcome = outcome

    def generate(self, prompt, options):
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


def _factory(outcomes, calls):
    def factory(model_key, api_keys):
        calls.append(model_key)
        return _ScriptedProvider(outcomes.get(model_key, "ok"))

    return factory


class ModelChainTests(unittest.TestCase):
    def test_preferred_then_default_then_fallbacks_without_duplicates(self):
        order = models_to_try("openai:gpt-4o", fallback_models=("openai:gpt-4o", "x:y"), default_model="a:b")
        self.assertEqual(order, ["openai:gpt-4o", "a:b", "x:y"])

    def test_missing_preference_starts_with_default(self):
        self.assertEqual(models_to_try(None, fallback_models=(), default_model="a:b"), ["a:b"])


class GenerateWithFallbackTests(unittest.TestCase):
    def setUp(self):
        self.calls = []
        self.tracker = UsageTracker()

    def _generate(self, outcomes, preferred=None):
        return generate_with_fallback(
            "Write a summary",
            preferred,
            ModelOptions(max_tokens=100),
            fallback_models=CHAIN,
            provider_factory=_factory(outcomes, self.calls),
            tracker=self.tracker,
        )

    def test_first_model_wins(self):
        result = self._generate({})
        self.assertEqual(result.text, "ok")
        self.assertEqual(result.model_key, DEFAULT_MODEL)
        self.assertEqual(self.calls, [DEFAULT_MODEL])

    def test_rate_limited_model_falls_through(self):
        preferred = "anthropic:claude-3-5-haiku-20241022"
        result = self._generate(
            {preferred: AIProviderError("slow down", status=429), DEFAULT_MODEL: AIProviderError("gone", status=404)},
            preferred=preferred,
        )
        self.assertEqual(result.text, "ok")
        self.assertNotIn(result.model_key, {preferred, DEFAULT_MODEL})
        self.assertEqual(self.calls[:2], [preferred, DEFAULT_MODEL])

    def test_unclassified_error_is_raised_immediately(self):
        with self.assertRaises(ValueError):
            self._generate({DEFAULT_MODEL: ValueError("bad prompt")})
        self.assertEqual(self.calls, [DEFAULT_MODEL])

    def test_exhausted_chain_raises_last_error(self):
        outcomes = {key: AIProviderError(f"{key} quota exceeded", quota_exceeded=True) for key in (DEFAULT_MODEL, *CHAIN)}
        with self.assertRaises(AIProviderError) as ctx:
            self._generate(outcomes)
        self.assertTrue(is_rate_limit_error(ctx.exception))
        self.assertEqual(len(self.calls), len(set(self.calls)))

    def test_each_attempt_is_tracked(self):
        self._generate({DEFAULT_MODEL: AIProviderError("rate limit reached")})
        self.assertEqual(self.tracker.snapshot(DEFAULT_MODEL)["minute"]["requests"], 1)


class ErrorClassificationTests(unittest.TestCase):
    def test_status_codes(self):
        self.assertTrue(is_rate_limit_error(AIProviderError("x", status=402)))
        self.assertTrue(is_model_unavailable_error(AIProviderError("x", status=403)))
        self.assertFalse(is_rate_limit_error(AIProviderError("x", status=500)))
        self.assertFalse(is_model_unavailable_error(AIProviderError("x", status=500)))

    def test_messages(self):
        self.assertTrue(is_model_unavailable_error(RuntimeError("model has been decommissioned")))
        self.assertTrue(is_rate_limit_error(RuntimeError("Rate limit exceeded for org")))


if __name__ == "__main__":
    unittest.main()
