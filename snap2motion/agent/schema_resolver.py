"""
Schema Resolver - Finds which remote input field plays which role

Queue-based models publish an OpenAPI input schema, but every model names
its inputs differently (``prompt`` vs ``caption``, ``image`` vs
``first_frame_image``, ``duration`` vs ``video_length``...). Instead of
hard-coding a field-name contract this module scans the schema with
keyword heuristics and assigns the prompt / image / duration / seed roles,
plus any required mode switch that has an image-to-video option.

The heuristics run over a typed ``InputSchema`` value, so they can be
exercised without any network access.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_FIELD = "prompt"


def _lc(value: Any) -> str:
    return "" if value is None else str(value).lower()


@dataclass(frozen=True)
class FieldSpec:
    """One named input field with its optional metadata"""
    name: str
    type: Optional[str] = None
    format: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    enum: Sequence[Any] = ()
    default: Any = None
    required: bool = False

    @classmethod
    def from_property(cls, name: str, prop: Any, required: bool = False) -> 'FieldSpec':
        prop = prop if isinstance(prop, dict) else {}
        enum_values = prop.get('enum')
        return cls(
            name=name,
            type=prop.get('type'),
            format=prop.get('format'),
            title=prop.get('title'),
            description=prop.get('description'),
            enum=tuple(enum_values) if isinstance(enum_values, (list, tuple)) else (),
            default=prop.get('default'),
            required=required,
        )


@dataclass(frozen=True)
class InputSchema:
    """Ordered field list of a remote model's input"""
    fields: Sequence[FieldSpec] = ()

    @classmethod
    def from_dict(cls, schema: Any) -> 'InputSchema':
        """Build from a ``{"properties": {...}, "required": [...]}`` mapping"""
        if not isinstance(schema, dict):
            return cls()
        properties = schema.get('properties') or {}
        required = schema.get('required') or []
        if not isinstance(properties, dict):
            properties = {}
        required_set = set(required) if isinstance(required, (list, tuple, set)) else set()
        return cls(fields=tuple(
            FieldSpec.from_property(name, prop, name in required_set)
            for name, prop in properties.items()
        ))

    @classmethod
    def from_openapi(cls, openapi: Any) -> 'InputSchema':
        """Build from a full OpenAPI document (``components.schemas.Input``)"""
        if not isinstance(openapi, dict):
            return cls()
        schemas = (openapi.get('components') or {}).get('schemas') or {}
        return cls.from_dict(schemas.get('Input'))

    def get(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def required_names(self) -> List[str]:
        return [f.name for f in self.fields if f.required]


@dataclass(frozen=True)
class ResolvedFieldMapping:
    """Role -> field-name assignment for one remote schema"""
    prompt_field: str = DEFAULT_PROMPT_FIELD
    image_field: Optional[str] = None
    duration_field: Optional[str] = None
    seed_field: Optional[str] = None
    extra_required_defaults: Dict[str, Any] = field(default_factory=dict)

    def claimed_fields(self) -> List[str]:
        return [
            name for name in (
                self.prompt_field, self.image_field, self.duration_field, self.seed_field,
            ) if name
        ]


def _find_field(schema: InputSchema, predicate: Callable[[FieldSpec], bool]) -> Optional[str]:
    for f in schema.fields:
        if predicate(f):
            return f.name
    return None


def _is_prompt(f: FieldSpec) -> bool:
    return "prompt" in _lc(f.name) or "prompt" in _lc(f.title)


def _is_image(f: FieldSpec) -> bool:
    looks_like_image = (
        "image" in _lc(f.name)
        or "image" in _lc(f.title)
        or "image" in _lc(f.description)
    )
    if not looks_like_image:
        return False
    # File inputs are usually strings with format uri
    return _lc(f.type) == "string" or _lc(f.format) == "uri"


def _is_required_uri(f: FieldSpec) -> bool:
    return f.required and _lc(f.format) == "uri"


def _is_duration(f: FieldSpec) -> bool:
    name = _lc(f.name)
    return "duration" in name or "duration" in _lc(f.title) or "seconds" in name


def _is_length(f: FieldSpec) -> bool:
    name = _lc(f.name)
    return "video_length" in name or "length" in name


def _is_seed(f: FieldSpec) -> bool:
    return _lc(f.name) == "seed" or _lc(f.title) == "seed"


def _image_mode_value(f: FieldSpec) -> Optional[Any]:
    for value in f.enum:
        text = _lc(value)
        if "image" in text or "i2v" in text:
            return value
    return None


def resolve_input_fields(schema: InputSchema) -> ResolvedFieldMapping:
    """
    Assign the prompt / image / duration / seed roles to schema fields.

    Fields are scanned in declaration order and the first match wins.
    Resolution never fails: an empty or unrecognisable schema yields the
    conventional ``prompt`` field and nothing else.

    Args:
        schema: Typed input schema of the remote model

    Returns:
        ResolvedFieldMapping for this schema
    """
    prompt_field = _find_field(schema, _is_prompt) or DEFAULT_PROMPT_FIELD
    image_field = _find_field(schema, _is_image) or _find_field(schema, _is_required_uri)
    duration_field = _find_field(schema, _is_duration) or _find_field(schema, _is_length)
    seed_field = _find_field(schema, _is_seed)

    claimed = {prompt_field, image_field, duration_field, seed_field}

    # Mode switches (e.g. "mode": "t2v" / "i2v"): pick the image option
    extra_defaults: Dict[str, Any] = {}
    for f in schema.fields:
        if not f.required or f.name in claimed:
            continue
        value = _image_mode_value(f)
        if value is not None:
            extra_defaults[f.name] = value

    mapping = ResolvedFieldMapping(
        prompt_field=prompt_field,
        image_field=image_field,
        duration_field=duration_field,
        seed_field=seed_field,
        extra_required_defaults=extra_defaults,
    )
    logger.debug(f"Resolved input fields: {mapping}")
    return mapping
