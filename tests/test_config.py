import unittest

from schedulellm.config import DEFAULT_BASE_URL, DEFAULT_MODEL, LLMConfig


class TestLLMConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = LLMConfig.from_env({})
        self.assertEqual(cfg.base_url, DEFAULT_BASE_URL)
        self.assertEqual(cfg.model, DEFAULT_MODEL)
        self.assertEqual(cfg.api_key, "")
        self.assertIsNone(cfg.timeout)
        self.assertFalse(cfg.is_proxy)
        self.assertEqual(cfg.endpoint, DEFAULT_BASE_URL + "/chat/completions")

    def test_env_and_overrides(self) -> None:
        env = {
            "SCHEDULELLM_BASE_URL": "https://api.example.org/v1/",
            "SCHEDULELLM_API_KEY": "sk-env",
            "SCHEDULELLM_MODEL": "qwen-plus",
        }
        cfg = LLMConfig.from_env(env)
        self.assertEqual(cfg.base_url, "https://api.example.org/v1")
        self.assertEqual((cfg.api_key, cfg.model), ("sk-env", "qwen-plus"))

        cfg = LLMConfig.from_env(env, model="qwen-max", api_key=None, base_url="")
        self.assertEqual(cfg.model, "qwen-max")
        self.assertEqual(cfg.api_key, "sk-env")
        self.assertEqual(cfg.base_url, "https://api.example.org/v1")

    def test_proxy_endpoint(self) -> None:
        cfg = LLMConfig(base_url="https://example.org/api/llm")
        self.assertTrue(cfg.is_proxy)
        self.assertEqual(cfg.endpoint, "https://example.org/api/llm")

    def test_redacted_hides_key(self) -> None:
        shown = LLMConfig(api_key="sk-secret").redacted()
        self.assertEqual(shown["api_key"], "***")
        self.assertNotIn("sk-secret", str(shown))


if __name__ == "__main__":
    unittest.main()
