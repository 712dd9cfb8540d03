"""Instruction text sent to the vision model with each assessment request."""

from schemas.assessments import FINDING_CATEGORIES, GRADES, SEVERITIES


GRADING_RUBRIC = """
Grading scale:
- A: Excellent. Like new, no functional damage, at most trace marks.
- B: Good. Minor cosmetic wear such as light scratches or small scuffs.
- C: Fair. Moderate wear, dents or minor functional issues.
- D: Poor. Major damage such as cracks, broken hinges, missing keys or
  anything that likely affects function.
""".strip()

_CATEGORY_LIST = ", ".join(f'"{c}"' for c in FINDING_CATEGORIES)
_SEVERITY_LIST = ", ".join(f'"{s}"' for s in SEVERITIES)
_GRADE_LIST = ", ".join(f'"{g}"' for g in GRADES)

_FINDING_SHAPE = (
    '{"category": one of [' + _CATEGORY_LIST + "], "
    '"severity": one of [' + _SEVERITY_LIST + "], "
    '"description": string}'
)

_REPLY_RULES = f"""
Reply with a single JSON object and nothing else (no prose, no markdown).
Use exactly these keys:
- "grade": one of [{_GRADE_LIST}]
- "confidence": number between 0 and 1
- "overallCondition": short paragraph summarising the device condition
- "damageTypes": array of short damage labels (empty if none)
- "detailedFindings": array of {_FINDING_SHAPE}
""".strip()


SINGLE_IMAGE_INSTRUCTION = f"""
You are inspecting a used laptop for resale grading. Examine the photo
carefully: display lid, screen, keyboard deck, palm rest, trackpad, ports,
hinges and overall structure. Note scratches, dents, cracks, discoloration,
missing parts and signs of liquid or heat damage.

{GRADING_RUBRIC}

Report every area you can see, including areas in good condition.

{_REPLY_RULES}
""".strip()


VIDEO_FRAME_INSTRUCTION = f"""
You are inspecting a used laptop for resale grading. The image is a single
still frame taken from a walk-around video, so only one angle is visible
and motion blur is possible. Grade what you can see, lower your confidence
for areas that are hidden or unclear, and mention in overallCondition that
the assessment is based on a single video frame.

{GRADING_RUBRIC}

{_REPLY_RULES}
""".strip()


def multi_image_instruction(labels: list[str]) -> str:
    """Instruction for several photos of the same laptop graded together.

    Args:
        labels: One display label per attached image, in attachment order
    """
    listing = "\n".join(f"- {label}" for label in labels)
    return f"""
You are inspecting a used laptop for resale grading. The {len(labels)}
attached photos all show the same device from different angles, in this
order:
{listing}

First analyse each photo on its own, then combine what you saw into one
overall grade for the device. A defect visible in any photo counts toward
the overall grade.

{GRADING_RUBRIC}

{_REPLY_RULES}
- "imageAnalyses": array with one entry per photo, in order, each
  {{"imageIndex": 1-based integer, "summary": string,
  "damageTypes": array of strings, "detailedFindings": array of findings
  as above}}
""".strip()
