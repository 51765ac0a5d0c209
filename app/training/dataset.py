"""Build and export personalization datasets from a user's transcript."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from app.models import TranscriptEntry

logger = logging.getLogger(__name__)


def build_examples(transcript: list[TranscriptEntry], system_prompt: str) -> list[dict]:
    """One chat example per user message directly answered by the assistant."""
    examples = []
    for current, following in zip(transcript, transcript[1:], strict=False):
        if current.role == "user" and following.role == "assistant":
            examples.append(
                {
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": current.content},
                        {"role": "assistant", "content": following.content},
                    ]
                }
            )
    return examples


def export_to_jsonl(examples: list[dict], output_path: Path) -> int:
    """Write ``examples`` one JSON object per line. Returns the number written."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as fh:
        for example in examples:
            fh.write(json.dumps(example, ensure_ascii=False) + "\n")
    logger.info("Exported %d training examples to %s", len(examples), output_path)
    return len(examples)
