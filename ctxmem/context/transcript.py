from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from ..utils import transcript_dir_name

logger = logging.getLogger(__name__)

SYSTEM_REMINDER_RE = re.compile(r"<system-reminder>.*?</system-reminder>", re.DOTALL)


def transcript_path(claude_config_dir: Path, cwd: str, memory_session_id: str) -> Path:
    return claude_config_dir / "projects" / transcript_dir_name(cwd) / f"{memory_session_id}.jsonl"


def _assistant_text(entry: object) -> str:
    if not isinstance(entry, dict) or entry.get("type") != "assistant":
        return ""
    message = entry.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, list):
        return ""
    text = "".join(
        part.get("text") or ""
        for part in content
        if isinstance(part, dict) and part.get("type") == "text"
    )
    return SYSTEM_REMINDER_RE.sub("", text).strip()


def last_assistant_message(path: Path) -> str:
    """Newest non-empty assistant message in a JSONL transcript, or ``""``."""

    try:
        if not path.is_file():
            return ""
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("failed to read transcript %s", path, exc_info=exc)
        return ""

    for index in range(len(lines) - 1, -1, -1):
        line = lines[index].strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.debug("skipping malformed transcript line %d in %s", index, path, exc_info=exc)
            continue
        text = _assistant_text(entry)
        if text:
            return text
    return ""


class TranscriptReader:
    """Finds the last assistant message of a sibling session's transcript."""

    def __init__(self, claude_config_dir: Path) -> None:
        self.claude_config_dir = claude_config_dir

    def __call__(self, cwd: str, memory_session_id: str) -> str:
        return last_assistant_message(
            transcript_path(self.claude_config_dir, cwd, memory_session_id)
        )
