# PRAgent/agents/base_agent.py

import logging
import time
from typing import Any, Optional

from config.settings import settings
from services.inference_client import InferenceClient, get_inference_client
from utils.reference_loader import ReferenceData

logger = logging.getLogger(__name__)


class AgentNick:
    """Shared settings, inference client and reference data for the agents.

    The inference client is resolved lazily so that a missing credential
    surfaces as :class:`config.settings.ConfigurationError` when a run starts
    rather than at import time.  Tests inject a scripted client instead.
    """

    def __init__(
        self,
        settings_obj: Any = None,
        *,
        inference_client: Optional[Any] = None,
        reference: Optional[ReferenceData] = None,
    ) -> None:
        logger.info("AgentNick is waking up...")
        self.settings = settings_obj or settings
        self._inference_client = inference_client
        if reference is None:
            reference = ReferenceData.load(getattr(self.settings, "reference_data_dir", None))
        self.reference = reference
        logger.info("AgentNick is ready.")

    def require_inference_client(self) -> Any:
        """Return the inference client, validating the credential on first use."""

        if self._inference_client is None:
            api_key = self.settings.require_api_key()
            client = get_inference_client()
            if client.api_key != api_key:
                client = InferenceClient(api_key=api_key)
            self._inference_client = client
        return self._inference_client


class BaseAgent:
    def __init__(self, agent_nick: AgentNick):
        self.agent_nick = agent_nick
        self.settings = agent_nick.settings
        logger.info(f"Initialized agent: {self.__class__.__name__}")

    @property
    def reference(self) -> ReferenceData:
        return self.agent_nick.reference

    def run(self, *args, **kwargs):
        raise NotImplementedError("Each agent must implement its own 'run' method.")

    def call_inference(self, system_prompt: str, user_prompt: str, *, max_tokens: int) -> str:
        """Issue one blocking inference request and return the raw text.

        Errors from the client propagate unchanged; each agent decides
        whether they are fatal.
        """

        client = self.agent_nick.require_inference_client()
        started = time.monotonic()
        logger.debug("%s prompt: %s", self.__class__.__name__, user_prompt)
        text = client.complete(system_prompt, user_prompt, max_tokens=max_tokens)
        logger.info(
            "%s inference call completed in %.0f ms (%d chars)",
            self.__class__.__name__,
            (time.monotonic() - started) * 1000,
            len(text or ""),
        )
        return text or ""


__all__ = ["AgentNick", "BaseAgent"]
