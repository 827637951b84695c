"""
Runtime configuration for the completion service.

Resolution order: explicit arguments (CLI flags) > environment variables >
defaults. The API key is never printed; use `redacted()` for display.

Environment variables:

    SCHEDULELLM_BASE_URL   e.g. https://dashscope.aliyuncs.com/compatible-mode/v1
                           or a forwarding proxy such as https://host/api/llm
    SCHEDULELLM_API_KEY
    SCHEDULELLM_MODEL
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_MODEL = "qwen-flash"

_PROXY_RE = re.compile(r"/api/llm/?$")


@dataclass(frozen=True)
class LLMConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.1
    # no read timeout by default: a slow reply is reported, never aborted
    timeout: Optional[float] = None
    # seconds before the "slow response" indicator fires
    slow_after: float = 3.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", (self.base_url or DEFAULT_BASE_URL).strip().rstrip("/"))

    @property
    def is_proxy(self) -> bool:
        """True when requests go through the authenticating forwarding proxy."""
        return bool(_PROXY_RE.search(self.base_url))

    @property
    def endpoint(self) -> str:
        if self.is_proxy:
            return self.base_url
        return f"{self.base_url}/chat/completions"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "LLMConfig":
        """
        Build a config from the environment; non-empty keyword overrides win.
        """
        source = os.environ if env is None else env
        cfg = cls(
            base_url=source.get("SCHEDULELLM_BASE_URL", DEFAULT_BASE_URL),
            api_key=source.get("SCHEDULELLM_API_KEY", ""),
            model=source.get("SCHEDULELLM_MODEL", DEFAULT_MODEL) or DEFAULT_MODEL,
        )
        given = {k: v for k, v in overrides.items() if v not in (None, "")}
        return replace(cfg, **given) if given else cfg

    def redacted(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "model": self.model,
            "api_key": "***" if self.api_key else "",
            "proxy": self.is_proxy,
        }
