"""
Configuration for the process-tenders Lambda.

Queue URLs come from environment variables, falling back to SSM Parameter
Store at /{ENV}/{APP_NAME}/sqs/{name}-queue-url. All three queues are
required; a missing one is a fatal startup error.
"""

import logging
import os
from typing import Mapping, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, ValidationError

from bedrock_client import DEFAULT_MODEL_ID
from exceptions import ConfigurationError
from prompt_store import DEFAULT_PROMPT_PREFIX

logger = logging.getLogger()

# Environment variable -> SSM parameter name suffix
QUEUE_SETTINGS = {
    "SOURCE_QUEUE_URL": "source",
    "WRITE_QUEUE_URL": "write",
    "FAILED_QUEUE_URL": "failed",
}


class ProcessorConfig(BaseModel):
    """Validated settings for one container."""

    env: str = "dev"
    app_name: str = "tender-queue-processor"
    source_queue_url: str = Field(..., min_length=1)
    write_queue_url: str = Field(..., min_length=1)
    failed_queue_url: str = Field(..., min_length=1)
    bedrock_model_id: str = DEFAULT_MODEL_ID
    prompt_parameter_prefix: str = DEFAULT_PROMPT_PREFIX
    enrichment_enabled: bool = True
    time_budget_ms: int = Field(default=900_000, gt=0)


def get_queue_url_parameter(ssm_client, env: str, app_name: str, name: str) -> Optional[str]:
    """
    Fetch a queue URL from SSM Parameter Store.

    Returns:
        str: Queue URL, or None if the parameter does not exist
    """
    param_name = f"/{env}/{app_name}/sqs/{name}-queue-url"

    try:
        response = ssm_client.get_parameter(Name=param_name)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "")
        if error_code == "ParameterNotFound":
            logger.warning(f"[config] Queue URL parameter not found: {param_name}")
            return None
        logger.error(f"[config] Failed to retrieve queue URL {param_name}: {e}")
        raise

    queue_url = response.get("Parameter", {}).get("Value")
    if queue_url:
        logger.info(f"[config] Retrieved queue URL from SSM: {param_name}")
    return queue_url or None


def load_config(ssm_client=None, environ: Optional[Mapping[str, str]] = None) -> ProcessorConfig:
    """
    Load and validate configuration.

    Args:
        ssm_client: boto3 SSM client for queue URL fallback (skipped if None)
        environ: Environment mapping, defaults to os.environ

    Raises:
        ConfigurationError: A required queue URL is missing or a value is invalid
    """
    environ = os.environ if environ is None else environ
    env = environ.get("ENV", "dev")
    app_name = environ.get("APP_NAME", "tender-queue-processor")

    values = {"env": env, "app_name": app_name}
    missing = []

    for env_var, name in QUEUE_SETTINGS.items():
        queue_url = environ.get(env_var)
        if not queue_url and ssm_client is not None:
            queue_url = get_queue_url_parameter(ssm_client, env, app_name, name)
        if not queue_url:
            missing.append(env_var)
            continue
        values[env_var.lower()] = queue_url

    if missing:
        raise ConfigurationError(f"Required queue configuration missing: {', '.join(missing)}")

    optional = {
        "BEDROCK_MODEL_ID": "bedrock_model_id",
        "PROMPT_PARAMETER_PREFIX": "prompt_parameter_prefix",
        "ENRICHMENT_ENABLED": "enrichment_enabled",
        "TIME_BUDGET_MS": "time_budget_ms",
    }
    for env_var, key in optional.items():
        if environ.get(env_var):
            values[key] = environ[env_var]

    try:
        return ProcessorConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
