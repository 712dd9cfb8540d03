"""Parsing and strict validation of vision model replies.

The model's reply is untrusted text. `parse_model_reply` turns it into a
JSON object or raises `ModelResponseMalformed`; `validate_model_reply`
checks the object against the exact reply contract and returns a tagged
`Valid` / `Invalid` value instead of raising, so callers decide what an
invalid reply means for them.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from schemas.assessments import ModelAssessmentReply, ModelMultiImageReply
from services.assessment.exceptions import ModelResponseMalformed


ReplyT = TypeVar("ReplyT", ModelAssessmentReply, ModelMultiImageReply)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n(?P<body>.*)\n\s*```$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class Valid(Generic[ReplyT]):
    reply: ReplyT


@dataclass(frozen=True, slots=True)
class Invalid:
    reason: str


ValidationOutcome = Valid[ModelAssessmentReply] | Valid[ModelMultiImageReply] | Invalid


def parse_model_reply(text: str | None) -> dict[str, Any]:
    """Parse reply text as a JSON object.

    A single surrounding markdown code fence is tolerated; anything else
    that is not a JSON object is malformed.

    Raises:
        ModelResponseMalformed: If the text is empty, not JSON, or not an object
    """
    if not text or not text.strip():
        raise ModelResponseMalformed("Empty response from AI assessment")

    body = text.strip()
    fenced = _FENCE_RE.match(body)
    if fenced:
        body = fenced.group("body").strip()

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ModelResponseMalformed() from e

    if not isinstance(payload, dict):
        raise ModelResponseMalformed(
            "Invalid JSON response from AI assessment: expected an object"
        )
    return payload


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"]) or "reply"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def validate_model_reply(
    payload: dict[str, Any], *, image_count: int = 1
) -> ValidationOutcome:
    """Check a parsed reply against the reply contract.

    Grades outside A-D, confidence outside [0, 1], unknown severities or
    categories, and missing or mistyped fields are all rejected. Nothing is
    coerced. When more than one image was sent, the reply must carry exactly
    one breakdown per image, indexed 1..image_count in order.
    """
    multi_image = image_count > 1
    schema = ModelMultiImageReply if multi_image else ModelAssessmentReply
    try:
        reply = schema.model_validate(payload)
    except ValidationError as e:
        return Invalid(reason=_format_errors(e))

    if isinstance(reply, ModelMultiImageReply):
        indices = [analysis.image_index for analysis in reply.image_analyses]
        if indices != list(range(1, image_count + 1)):
            return Invalid(
                reason=(
                    f"imageAnalyses: expected one entry per image indexed "
                    f"1..{image_count}, got indices {indices}"
                )
            )

    return Valid(reply=reply)
