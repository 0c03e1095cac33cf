"""
Streaming Normalizer
Turns the gateway's SSE output into uniform OpenAI-style chunks, whatever
provider produced them.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from surge_ai.schemas.ai import StreamingChoice, StreamingChunk, StreamingDelta

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamError(Exception):
    """The gateway reported a failure in the middle of a stream"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def is_ollama_payload(payload: Dict[str, Any]) -> bool:
    """Native Ollama chat lines carry a `message` object and no `choices`"""
    return "choices" not in payload and isinstance(payload.get("message"), dict)


def normalize_chunk(payload: Dict[str, Any], chunk_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Rewrite an Ollama-native chunk into the OpenAI chunk shape.
    Any other payload is returned unchanged.
    """
    if not is_ollama_payload(payload):
        return payload

    message = payload["message"]
    chunk = StreamingChunk(
        id=chunk_id or f"chatcmpl-{uuid.uuid4().hex[:24]}",
        model=payload.get("model") or "",
        choices=[
            StreamingChoice(
                index=0,
                delta=StreamingDelta(
                    role=message.get("role"),
                    content=message.get("content", ""),
                ),
                finish_reason="stop" if payload.get("done") else None,
            )
        ],
    )
    return chunk.to_payload()


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Decode one line of gateway output.

    Returns None for blank lines, comments and the [DONE] sentinel.

    Raises:
        ValueError: If the line carries something that is not a JSON object
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        line = line[len("data:"):].strip()
    if not line or line == DONE_SENTINEL:
        return None

    payload = json.loads(line)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


class SSEStreamParser:
    """
    Incremental parser for one streamed response.

    Text may arrive split at arbitrary points; incomplete trailing lines are
    buffered until the rest shows up.
    """

    def __init__(self):
        self.stream_id = f"chatcmpl-{uuid.uuid4().hex[:24]}"
        self.done = False
        self._buffer = ""

    def feed(self, text: str) -> List[Dict[str, Any]]:
        """Consume a piece of the stream and return the complete chunks in it"""
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        chunks = []
        for line in lines:
            chunk = self._parse(line)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def flush(self) -> List[Dict[str, Any]]:
        """Parse whatever is left once the stream has ended"""
        remainder, self._buffer = self._buffer, ""
        chunk = self._parse(remainder)
        return [chunk] if chunk is not None else []

    def _parse(self, line: str) -> Optional[Dict[str, Any]]:
        if line.strip() in (DONE_SENTINEL, f"data: {DONE_SENTINEL}"):
            self.done = True
            return None

        try:
            payload = parse_sse_line(line)
        except ValueError as e:
            # One bad frame must not end an otherwise healthy stream
            logger.warning(f"Skipping malformed stream line: {e}")
            return None

        if payload is None:
            return None
        if "error" in payload and "choices" not in payload:
            error = payload["error"]
            if isinstance(error, dict):
                error = error.get("message") or "Stream failed"
            raise StreamError(str(error))

        return normalize_chunk(payload, self.stream_id)
