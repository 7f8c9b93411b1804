"""Prompt decision table for coloring-page styles."""

from __future__ import annotations

from typing import Dict, Literal, Optional, Tuple

PromptType = Literal["straight_copy", "facial_portrait", "cartoon_portrait"]
BackgroundType = Literal["plain", "mindful"]

PROMPT_TYPES: Tuple[str, ...] = ("straight_copy", "facial_portrait", "cartoon_portrait")
BACKGROUND_TYPES: Tuple[str, ...] = ("plain", "mindful")

_PHOTO_LINE_DRAWING = (
    "turn the attached photo into a line drawing suitable for a coloring page, "
    "ensuring accurate facial features are maintained."
)
_FACE_LINE_DRAWING = (
    "turn the face from the attached photo into a line drawing suitable for a coloring page, "
    "ensuring accurate facial features are maintained."
)
_NAME_LETTERING = "write [NAME] in friendly white letters with black outline, suited to a coloring page."
_FRAMED = "place the result, as large as possible whilst still looking elegant, inside a plain white box with a black outline."
_CARTOON_BODY = "place the result onto a cartoon style line drawing body in the same coloring page style"

_BACKGROUND_SURFACE: Dict[str, str] = {
    "plain": "a plain white background",
    "mindful": "top of an abstract pattern suitable for mindful coloring",
}

_STRAIGHT_COPY: Dict[bool, str] = {
    False: (
        f"{_PHOTO_LINE_DRAWING} place the result, as large as possible whilst still looking elegant, "
        "centered vertically and horizontally on a plain white background"
    ),
    True: (
        f"{_PHOTO_LINE_DRAWING} {_NAME_LETTERING} place the writing unobtrusively on top of the line drawing, "
        "ensuring it doesn't obscure the subject's face. finally center the whole thing, as large as possible "
        "whilst still looking elegant, on a plain white background."
    ),
}


def _facial_portrait(background: str, has_name: bool) -> str:
    surface = _BACKGROUND_SURFACE[background]
    if has_name:
        return (
            f"{_FACE_LINE_DRAWING} {_FRAMED} below this box {_NAME_LETTERING} "
            f"center this collection of objects horizontally and vertically on {surface}"
        )
    return f"{_FACE_LINE_DRAWING} {_FRAMED} center this horizontally and vertically on {surface}"


def _cartoon_portrait(background: str, has_name: bool, has_activity: bool) -> str:
    surface = _BACKGROUND_SURFACE[background]
    body = f"{_CARTOON_BODY} engaged in [ACTIVITY]." if has_activity else f"{_CARTOON_BODY}."
    if has_name:
        return (
            f"{_FACE_LINE_DRAWING} {body} below this {_NAME_LETTERING} finally place this collection of objects "
            f"as large as possible whilst still looking elegant, centered horizontally and vertically on {surface}"
        )
    return (
        f"{_FACE_LINE_DRAWING} {body} place this result as large as possible whilst still looking elegant, "
        f"centered horizontally and vertically on {surface}"
    )


def _clean(value: Optional[str]) -> str:
    return str(value or "").strip()


def build_coloring_prompt(
    prompt_type: str,
    background: Optional[str] = "plain",
    name_message: Optional[str] = None,
    activity_interest: Optional[str] = None,
) -> str:
    """Return the image prompt for a style, background, optional name and optional activity.

    Background is ignored for straight copies and activity applies only to
    cartoon portraits.
    """
    if prompt_type not in PROMPT_TYPES:
        raise ValueError(f"Unknown coloring page type: {prompt_type}")
    name = _clean(name_message)
    activity = _clean(activity_interest)
    surface = _clean(background).lower() or "plain"
    if surface not in BACKGROUND_TYPES:
        raise ValueError(f"Unknown background: {background}")

    if prompt_type == "straight_copy":
        template = _STRAIGHT_COPY[bool(name)]
    elif prompt_type == "facial_portrait":
        template = _facial_portrait(surface, bool(name))
    else:
        template = _cartoon_portrait(surface, bool(name), bool(activity))

    if name:
        template = template.replace("[NAME]", name, 1)
    if activity and prompt_type == "cartoon_portrait":
        template = template.replace("[ACTIVITY]", activity, 1)
    return template
