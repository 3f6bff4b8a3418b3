"""
Summary prompts from SSM Parameter Store.

The prompt for a tender is the shared system prompt followed by the prompt for
its source type. Both are cached for the lifetime of the container; a cache
miss simply fetches again.
"""

import logging
import threading
from typing import Dict

from botocore.exceptions import ClientError

from exceptions import PromptNotFoundError

logger = logging.getLogger()

DEFAULT_PROMPT_PREFIX = "/TenderSummary/Prompts"
SYSTEM_PROMPT_KEY = "System"


class PromptStore:
    """Fetches and caches prompt text by key."""

    def __init__(self, ssm_client, prefix: str = DEFAULT_PROMPT_PREFIX):
        """
        Initialize prompt store.

        Args:
            ssm_client: boto3 SSM client
            prefix: Parameter path prefix, e.g. "/TenderSummary/Prompts"
        """
        self.ssm_client = ssm_client
        self.prefix = prefix.rstrip("/")
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_prompt(self, source_type: str) -> str:
        """
        Get the combined system and source prompt for a tender source.

        Raises:
            ValueError: If source_type is empty
            PromptNotFoundError: If either parameter is missing or empty
        """
        if not source_type or not source_type.strip():
            raise ValueError("Source type cannot be empty")

        system_prompt = self._get_cached(SYSTEM_PROMPT_KEY)
        source_prompt = self._get_cached(source_type)
        return f"{system_prompt}\n\n{source_prompt}"

    def _get_cached(self, key: str) -> str:
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"[prompts] Cache hit for {key}")
            return cached

        value = self._fetch(key)
        with self._lock:
            self._cache[key] = value
        return value

    def _fetch(self, key: str) -> str:
        param_name = f"{self.prefix}/{key}"
        logger.info(f"[prompts] Fetching prompt from SSM: {param_name}")

        try:
            response = self.ssm_client.get_parameter(Name=param_name, WithDecryption=False)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ParameterNotFound":
                logger.error(f"[prompts] Prompt parameter not found: {param_name}")
                raise PromptNotFoundError(f"Prompt parameter not found: {param_name}") from e
            logger.error(f"[prompts] Failed to fetch prompt {param_name}: {e}")
            raise

        value = response.get("Parameter", {}).get("Value")
        if not value:
            raise PromptNotFoundError(f"Prompt parameter has no value: {param_name}")

        return value
