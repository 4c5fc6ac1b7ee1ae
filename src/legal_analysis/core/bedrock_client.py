"""
Claude on Amazon Bedrock
Shared invoke_model wrapper used by every stage adapter
"""

import asyncio
import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class BedrockClaudeClient:
    """
    Thin async wrapper around bedrock-runtime invoke_model

    The boto3 call is blocking and runs in a worker thread so the event loop
    keeps serving other analyses.
    """

    def __init__(self,
                 model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0",
                 region: str = "us-east-1",
                 bedrock_client=None,
                 read_timeout: int = 120):
        """Initialize Claude via Bedrock"""

        self.model_id = model_id
        self.region = region

        # Use provided client or create new one
        if bedrock_client:
            self.bedrock = bedrock_client
        else:
            self.bedrock = boto3.client(
                service_name='bedrock-runtime',
                region_name=region,
                config=Config(read_timeout=read_timeout, retries={"max_attempts": 2})
            )
            logger.info(f"Bedrock runtime initialized in {region} for {model_id}")

        # Model parameters
        self.model_params = {
            "anthropic_version": "bedrock-2023-05-31",
            "top_p": 0.95
        }

    async def complete(self,
                       prompt: str,
                       system: Optional[str] = None,
                       max_tokens: int = 4000,
                       temperature: float = 0.2,
                       images: Optional[List[bytes]] = None) -> str:
        """
        Send one user message and return the text of the reply

        Args:
            prompt: User message text
            system: Optional system prompt
            max_tokens: Response token limit
            temperature: Sampling temperature
            images: Optional PNG images attached before the text

        Raises:
            ClientError: Bedrock rejected the call
            ValueError: the reply had no text content
        """

        content: List[Dict[str, Any]] = []
        for image in images or []:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/png",
                    "data": base64.b64encode(image).decode("ascii")
                }
            })
        content.append({"type": "text", "text": prompt})

        request_body = {
            "anthropic_version": self.model_params["anthropic_version"],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": self.model_params["top_p"],
            "messages": [{"role": "user", "content": content}]
        }
        if system:
            request_body["system"] = system

        try:
            response = await asyncio.to_thread(
                self.bedrock.invoke_model,
                modelId=self.model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(request_body)
            )
        except ClientError as e:
            logger.error(f"Bedrock API error: {e}")
            raise

        response_body = json.loads(response['body'].read())

        if response_body.get('content'):
            texts = [block.get('text', '') for block in response_body['content'] if block.get('type') == 'text']
            text = "".join(texts).strip()
            if text:
                return text

        raise ValueError("Empty response from Claude")

    async def complete_json(self, prompt: str, **kwargs) -> Any:
        """complete() and parse the reply as JSON"""
        return parse_json_response(await self.complete(prompt, **kwargs))


def parse_json_response(text: str) -> Any:
    """
    Parse JSON from a model reply

    Handles markdown fences and prose around the JSON body.
    """

    cleaned = text.strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fence:
        cleaned = fence.group(1)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Claude might include explanation, so find JSON boundaries.
    # The bracket that opens first is the outermost value.
    pairs = [("{", "}"), ("[", "]")]
    pairs.sort(key=lambda pair: cleaned.find(pair[0]) if pair[0] in cleaned else len(cleaned))
    for opener, closer in pairs:
        start = cleaned.find(opener)
        end = cleaned.rfind(closer) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(cleaned[start:end])
            except json.JSONDecodeError:
                continue

    raise ValueError("Could not parse JSON from model response")
