"""Transform parameter resolution for the manipulate-image endpoint.

An upload is processed with one named *operation*.  Each operation gives
meaning to a fixed subset of the transform fields; everything else in the
form is ignored.  This module turns raw form values (or an AI suggestion) into
a validated :class:`TransformParams`.

Resolution Policy
-----------------
Resolution is best effort and never raises for malformed values:

- A field that fails to parse, or falls outside its documented range, is
  treated as absent.  Absent fields are no-ops in the pipeline.
- ``ai-enhance`` with a guidance prompt runs two stages.  First the model is
  asked for a JSON suggestion; the first balanced ``{...}`` in its reply is
  parsed and numeric values are clamped into range.  If that yields nothing
  usable, a keyword scan over the guidance prompt picks the adjustments
  (``"warmer"``, ``"vintage"``, ``"black and white"`` ...).  If no keyword
  matches either, the default enhancement preset is used.
- ``ai-enhance`` without a guidance prompt applies the default preset.

The stage that produced the parameters is reported in
:attr:`ResolvedParameters.kind` so callers can tell a parsed suggestion from a
fallback.  AI suggestions are advisory: they go through the same range checks
as direct input.

Field Ranges
------------
============  =======  ==================================================
Field         Type     Range
============  =======  ==================================================
width/height  int      1 – 8192
fit           choice   cover, contain, fill, inside, outside
left/top      int      0 – 8192
brightness    float    0.0 – 3.0   (multiplier, 1.0 = unchanged)
contrast      float    0.0 – 3.0
saturation    float    0.0 – 3.0
hue           int      -180 – 180  (degrees)
blur          float    0.3 – 100   (gaussian radius)
sharpen       float    0.1 – 10    (unsharp amount)
rotate        int      -360 – 360  (degrees, clockwise)
flip/flop     bool     vertical / horizontal mirror
grayscale     bool
sepia         bool
============  =======  ==================================================
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

from quantum_canvas.core.errors import InvalidOperationError, ProviderError

logger = logging.getLogger(__name__)

OPERATIONS: tuple[str, ...] = ("resize", "crop", "enhance", "filter", "transform", "ai-enhance")
DEFAULT_OPERATION = "resize"
FIT_MODES: tuple[str, ...] = ("cover", "contain", "fill", "inside", "outside")


class ResolutionKind(str, Enum):
    """Which stage produced a parameter set."""

    DIRECT = "direct"
    PARSED = "parsed"
    FALLBACK_APPLIED = "fallback_applied"
    DEFAULT_PRESET = "default_preset"
    NO_OP = "no_op"


@dataclass(frozen=True)
class FieldSpec:
    """Declared type and range of one transform field."""

    kind: str  # "int", "float", "bool" or "choice"
    minimum: float | None = None
    maximum: float | None = None
    choices: tuple[str, ...] = ()


FIELD_SPECS: dict[str, FieldSpec] = {
    "width": FieldSpec("int", 1, 8192),
    "height": FieldSpec("int", 1, 8192),
    "fit": FieldSpec("choice", choices=FIT_MODES),
    "left": FieldSpec("int", 0, 8192),
    "top": FieldSpec("int", 0, 8192),
    "brightness": FieldSpec("float", 0.0, 3.0),
    "contrast": FieldSpec("float", 0.0, 3.0),
    "saturation": FieldSpec("float", 0.0, 3.0),
    "hue": FieldSpec("int", -180, 180),
    "blur": FieldSpec("float", 0.3, 100.0),
    "sharpen": FieldSpec("float", 0.1, 10.0),
    "rotate": FieldSpec("int", -360, 360),
    "flip": FieldSpec("bool"),
    "flop": FieldSpec("bool"),
    "grayscale": FieldSpec("bool"),
    "sepia": FieldSpec("bool"),
}

_COLOUR_FIELDS = ("brightness", "contrast", "saturation", "hue")

OPERATION_FIELDS: dict[str, tuple[str, ...]] = {
    "resize": ("width", "height", "fit"),
    "crop": ("left", "top", "width", "height"),
    "enhance": (*_COLOUR_FIELDS, "sharpen"),
    "filter": ("blur", "sharpen", "grayscale", "sepia"),
    "transform": ("rotate", "flip", "flop"),
    "ai-enhance": (
        *_COLOUR_FIELDS,
        "blur",
        "sharpen",
        "rotate",
        "flip",
        "flop",
        "grayscale",
        "sepia",
    ),
}

# Key spellings models tend to use for the same field.
_SUGGESTION_ALIASES: dict[str, str] = {
    "blur_radius": "blur",
    "blurradius": "blur",
    "sharpness": "sharpen",
    "sharpen_amount": "sharpen",
    "rotation": "rotate",
    "rotation_degrees": "rotate",
    "greyscale": "grayscale",
    "black_and_white": "grayscale",
    "hue_shift": "hue",
    "vertical_flip": "flip",
    "horizontal_flip": "flop",
    "mirror": "flop",
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


@dataclass
class TransformParams:
    """A resolved parameter set.  ``None`` (or ``False`` for flags) is a no-op."""

    width: int | None = None
    height: int | None = None
    fit: str | None = None
    left: int | None = None
    top: int | None = None
    brightness: float | None = None
    contrast: float | None = None
    saturation: float | None = None
    hue: int | None = None
    blur: float | None = None
    sharpen: float | None = None
    rotate: int | None = None
    flip: bool = False
    flop: bool = False
    grayscale: bool = False
    sepia: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return only the fields that will have an effect."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) not in (None, False)
        }

    def is_empty(self) -> bool:
        return not self.to_dict()


# Applied when ai-enhance has no guidance prompt, and when the keyword scan
# finds nothing to act on.
DEFAULT_ENHANCE_PRESET = TransformParams(
    brightness=1.05,
    contrast=1.1,
    saturation=1.15,
    sharpen=1.0,
)

# (keywords, adjustments).  Earlier rules win when two set the same field.
KEYWORD_RULES: tuple[tuple[tuple[str, ...], dict[str, Any]], ...] = (
    (("vintage", "retro"), {"sepia": True, "contrast": 0.9, "saturation": 0.7}),
    (("black and white", "grayscale", "greyscale", "monochrome"), {"grayscale": True}),
    (("bright",), {"brightness": 1.2}),
    (("dark",), {"brightness": 0.8}),
    (("warm",), {"brightness": 1.05, "saturation": 1.2, "hue": 10}),
    (("cool", "cold"), {"hue": -10, "saturation": 0.9}),
    (("vivid", "vibrant", "saturate"), {"saturation": 1.4}),
    (("muted", "desaturate", "faded"), {"saturation": 0.6}),
    (("contrast",), {"contrast": 1.3}),
    (("blur", "soft"), {"blur": 2.0}),
    (("sharp", "crisp"), {"sharpen": 1.5}),
    (("flip", "mirror"), {"flop": True}),
)

# A keyword matches at a word start ("warm" matches "warmer", not "lukewarm").
# It is ignored when a negation sits up to two words before it in the same
# clause ("less contrast", "not so bright", "remove the blur").
_NEGATION = re.compile(
    r"\b(?:no|not|less|without|remove|reduce|don't|dont)\b(?:\s+[\w']+){0,2}\s*$"
)
_CLAUSE_BREAK = re.compile(r"[,.;:!?]|\b(?:and|but)\b")


@dataclass
class ResolvedParameters:
    """Outcome of :func:`resolve_parameters`.

    Attributes:
        params: The validated parameter set.
        kind: Stage that produced *params*.
        suggestion: Raw model reply, when a suggestion was requested.
        reason: Why a fallback was taken, for diagnostics.
    """

    params: TransformParams = field(default_factory=TransformParams)
    kind: ResolutionKind = ResolutionKind.NO_OP
    suggestion: str | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Field parsing.
# ---------------------------------------------------------------------------


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def parse_field(name: str, value: Any, *, clamp: bool = False) -> Any:
    """Parse one field with its declared type and range.

    Args:
        name: Field name (key of :data:`FIELD_SPECS`).
        value: Raw value from a form or a parsed suggestion.
        clamp: Clamp out-of-range numbers into range instead of dropping them.

    Returns:
        The parsed value, or ``None`` if it is malformed, out of range, or
        the field is unknown.
    """
    spec = FIELD_SPECS.get(name)
    if spec is None:
        return None

    if spec.kind == "bool":
        parsed = _to_bool(value)
        return True if parsed else None

    if spec.kind == "choice":
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        return lowered if lowered in spec.choices else None

    number = _to_number(value)
    if number is None:
        return None

    if spec.minimum is not None and number < spec.minimum:
        if not clamp:
            return None
        number = spec.minimum
    if spec.maximum is not None and number > spec.maximum:
        if not clamp:
            return None
        number = spec.maximum

    if spec.kind == "int":
        return int(round(number))
    return float(number)


def parse_fields(
    names: tuple[str, ...], raw: Mapping[str, Any], *, clamp: bool = False
) -> TransformParams:
    """Build a :class:`TransformParams` from the listed keys of *raw*."""
    values = {}
    for name in names:
        if name not in raw:
            continue
        parsed = parse_field(name, raw[name], clamp=clamp)
        if parsed is not None:
            values[name] = parsed
    return TransformParams(**values)


# ---------------------------------------------------------------------------
# AI suggestion parsing.
# ---------------------------------------------------------------------------


def extract_json_object(text: str | None) -> str | None:
    """Return the first balanced ``{...}`` substring of *text*.

    Braces inside JSON string literals are ignored.  If an opening brace never
    balances, the search restarts at the next opening brace.

    Args:
        text: Free-form model output, possibly wrapped in prose or code fences.

    Returns:
        The object substring, or ``None`` if there is none.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def parse_suggestion(text: str | None) -> TransformParams | None:
    """Parse a model reply into an ``ai-enhance`` parameter set.

    Returns:
        The clamped parameter set, or ``None`` if no usable object was found.
    """
    candidate = extract_json_object(text)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    normalised: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).strip().lower().replace("-", "_").replace(" ", "_")
        normalised[_SUGGESTION_ALIASES.get(name, name)] = value

    params = parse_fields(OPERATION_FIELDS["ai-enhance"], normalised, clamp=True)
    return None if params.is_empty() else params


def _mentions(text: str, keyword: str) -> bool:
    pattern = r"\b" + r"\s+".join(re.escape(word) for word in keyword.split())
    for match in re.finditer(pattern, text):
        clause = _CLAUSE_BREAK.split(text[: match.start()])[-1]
        if not _NEGATION.search(clause):
            return True
    return False


def keyword_fallback(prompt: str) -> TransformParams | None:
    """Derive adjustments from keywords in the guidance prompt.

    Keywords match at word starts, and a keyword preceded by a negation in
    the same clause is skipped.

    Returns:
        The matched parameter set, or ``None`` if no keyword matched.
    """
    lowered = prompt.lower()
    values: dict[str, Any] = {}
    for keywords, adjustments in KEYWORD_RULES:
        if any(_mentions(lowered, keyword) for keyword in keywords):
            for name, value in adjustments.items():
                values.setdefault(name, value)
    return TransformParams(**values) if values else None


# ---------------------------------------------------------------------------
# Entry point.
# ---------------------------------------------------------------------------


def resolve_parameters(
    operation: str,
    raw: Mapping[str, Any],
    *,
    prompt: str | None = None,
    suggest: Callable[[str], str] | None = None,
) -> ResolvedParameters:
    """Resolve the parameter set for one manipulation request.

    Args:
        operation: One of :data:`OPERATIONS`.
        raw: Raw form fields.  Only those meaningful for *operation* are read.
        prompt: Guidance prompt for ``ai-enhance``.
        suggest: Callable returning the model's free-form suggestion for a
            guidance prompt.  Provider errors it raises trigger the fallback.

    Returns:
        The resolved parameters, tagged with the stage that produced them.

    Raises:
        InvalidOperationError: If *operation* is not a known operation name.
    """
    if operation not in OPERATION_FIELDS:
        raise InvalidOperationError(
            f"Unknown operation: {operation}",
            details=f"operation must be one of: {', '.join(OPERATIONS)}",
        )

    if operation != "ai-enhance":
        params = parse_fields(OPERATION_FIELDS[operation], raw)
        kind = ResolutionKind.NO_OP if params.is_empty() else ResolutionKind.DIRECT
        return ResolvedParameters(params=params, kind=kind)

    guidance = (prompt or "").strip()
    if not guidance:
        return ResolvedParameters(
            params=replace(DEFAULT_ENHANCE_PRESET),
            kind=ResolutionKind.DEFAULT_PRESET,
        )

    suggestion: str | None = None
    reason: str
    if suggest is None:
        reason = "no suggestion source configured"
    else:
        try:
            suggestion = suggest(guidance)
        except ProviderError as e:
            logger.warning(f"Transform suggestion failed, using keyword fallback: {e}")
            reason = f"suggestion request failed: {e.message}"
        else:
            parsed = parse_suggestion(suggestion)
            if parsed is not None:
                return ResolvedParameters(
                    params=parsed, kind=ResolutionKind.PARSED, suggestion=suggestion
                )
            reason = "suggestion did not contain a usable JSON object"
            logger.info(f"Unparseable transform suggestion, using keyword fallback: {reason}")

    params = keyword_fallback(guidance)
    if params is None:
        params = replace(DEFAULT_ENHANCE_PRESET)
        reason += "; no keywords matched, default preset applied"

    return ResolvedParameters(
        params=params,
        kind=ResolutionKind.FALLBACK_APPLIED,
        suggestion=suggestion,
        reason=reason,
    )
