"""Separating reasoning from answer text in streamed model output."""

from typing import Any, List, Tuple

from langchain_core.messages import AIMessageChunk

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

Segment = Tuple[str, str]  # ("text" | "reasoning", content)


class ThinkTagSplitter:
    """Routes ``<think>...</think>`` spans in a token stream to reasoning.

    Tags may be split across tokens, so a possible partial tag at the end of a
    token is held back until the next one arrives.
    """

    def __init__(self):
        self.in_thinking = False
        self._pending = ""

    def feed(self, token: str) -> List[Segment]:
        buffer = self._pending + token
        self._pending = ""
        segments: List[Segment] = []
        while buffer:
            tag = CLOSE_TAG if self.in_thinking else OPEN_TAG
            kind = "reasoning" if self.in_thinking else "text"
            before, found, after = buffer.partition(tag)
            if found:
                if before:
                    segments.append((kind, before))
                self.in_thinking = not self.in_thinking
                buffer = after
                continue
            held = _partial_tag_suffix(buffer, tag)
            if held:
                self._pending = buffer[-held:]
                buffer = buffer[:-held]
            if buffer:
                segments.append((kind, buffer))
            break
        return segments

    def flush(self) -> List[Segment]:
        if not self._pending:
            return []
        kind = "reasoning" if self.in_thinking else "text"
        pending, self._pending = self._pending, ""
        return [(kind, pending)]


def _partial_tag_suffix(buffer: str, tag: str) -> int:
    for size in range(min(len(tag) - 1, len(buffer)), 0, -1):
        if tag.startswith(buffer[-size:]):
            return size
    return 0


def _block_reasoning(block: dict) -> str:
    if block.get("type") == "thinking":
        return block.get("thinking") or ""
    if isinstance(block.get("reasoning"), str):
        return block["reasoning"]
    return "".join(s.get("text", "") for s in block.get("summary") or [] if isinstance(s, dict))


def split_chunk(chunk: AIMessageChunk, splitter: ThinkTagSplitter) -> List[Segment]:
    """Text and reasoning segments carried by one streamed chunk, in order.

    Reasoning arrives as ``reasoning_content`` (Ollama, DeepSeek-style APIs),
    as reasoning/thinking content blocks (OpenAI Responses, Anthropic), or
    inline in the text as think tags.
    """
    segments: List[Segment] = []
    reasoning = chunk.additional_kwargs.get("reasoning_content")
    if reasoning:
        segments.append(("reasoning", reasoning))

    content: Any = chunk.content
    if isinstance(content, str):
        segments.extend(splitter.feed(content))
        return segments

    for block in content or []:
        if isinstance(block, str):
            segments.extend(splitter.feed(block))
        elif block.get("type") == "text":
            segments.extend(splitter.feed(block.get("text") or ""))
        elif block.get("type") in ("reasoning", "thinking"):
            text = _block_reasoning(block)
            if text:
                segments.append(("reasoning", text))
    return segments
