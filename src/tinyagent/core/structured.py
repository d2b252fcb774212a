"""Structured output extraction from model text."""

import json
import re
from typing import Any, Dict, List, Type, Union

from pydantic import BaseModel

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")

OutputSchema = Union[Type[BaseModel], Dict[str, Any]]


def extract_json_payload(text: str) -> Any:
    """Locate and parse a JSON payload embedded in model text.

    Tries the first fenced code block, then the widest bare ``{...}`` span.

    Raises:
        ValueError: If no candidate parses.
    """
    candidates: List[str] = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    bare = _BARE_OBJECT.search(text)
    if bare:
        candidates.append(bare.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError("No JSON payload found in model output")


def parse_structured(schema: OutputSchema, text: str) -> Any:
    """Parse ``text`` against ``schema``.

    A pydantic model class validates the payload; a plain JSON-schema dict
    only describes it, so the decoded payload is returned as is.
    """
    payload = extract_json_payload(text)
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_validate(payload)
    return payload
