"""Minimal `.env` support so local runs pick up FOLIO_* settings without a shell wrapper."""

from __future__ import annotations

import os
from pathlib import Path

_QUOTES = ('"', "'")


def default_env_path() -> Path:
  """Return the `.env` path next to the project root."""

  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_text(raw_text: str) -> dict[str, str]:
  """Parse `KEY=value` lines, ignoring comments, blanks and an optional `export` prefix."""
  parsed: dict[str, str] = {}
  for raw_line in raw_text.splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
      continue
    line = line.removeprefix("export ").lstrip()
    key, _, value = line.partition("=")
    key = key.strip()
    if not key:
      continue
    value = value.strip()
    # Strip one matching pair of surrounding quotes.
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
      value = value[1:-1]
    parsed[key] = value

  return parsed


def load_env_file(path: Path, *, override: bool = False) -> int:
  """Apply a `.env` file to `os.environ` and return how many keys were set."""
  if not path.is_file():
    return 0

  applied = 0
  for key, value in parse_env_text(path.read_text(encoding="utf-8")).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied += 1

  return applied
