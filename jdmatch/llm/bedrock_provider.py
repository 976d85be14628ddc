"""AWS Bedrock inference client (Anthropic messages API)."""

import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .provider_base import FailureKind, InferenceClient, InferenceError

logger = logging.getLogger(__name__)

THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"}


class BedrockInferenceClient(InferenceClient):
    """Invokes an Anthropic model hosted on Bedrock through ``invoke_model``."""

    def __init__(
        self,
        model: str = "anthropic.claude-3-5-sonnet-20240620-v1:0",
        region_name: Optional[str] = None,
        client=None,
    ):
        self.model = model
        self.client = client or boto3.client("bedrock-runtime", region_name=region_name)

    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = self.client.invoke_model(
                modelId=self.model,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            kind = FailureKind.RATE_LIMITED if code in THROTTLING_CODES or status == 429 else FailureKind.OTHER
            raise InferenceError(str(e), kind=kind, provider="bedrock") from e
        except BotoCoreError as e:
            raise InferenceError(str(e), kind=FailureKind.OTHER, provider="bedrock") from e

        payload = json.loads(response["body"].read())
        parts = payload.get("content") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        logger.debug("Bedrock response received (%d chars)", len(text))
        return text

    def get_model_name(self) -> str:
        return self.model
