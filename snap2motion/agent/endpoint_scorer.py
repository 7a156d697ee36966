"""
Endpoint Scorer - Picks the best callable endpoint of an introspected Space

A Gradio Space exposes any number of named (``/predict``, ``/generate``)
and index-addressed endpoints, each with its own parameter list. We rank
them by how well their parameters match what an image-to-video call
needs and invoke the winner.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/predict"

# Scoring weights
IMAGE_SCORE = 5
PROMPT_SCORE = 5
DURATION_SCORE = 2
STEPS_SCORE = 1
NAMED_BONUS = 1

EndpointId = Union[str, int]


@dataclass(frozen=True)
class EndpointParameter:
    """One declared parameter of an endpoint"""
    name: str
    component: str = ""
    label: str = ""
    has_default: bool = False
    default: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> 'EndpointParameter':
        data = data if isinstance(data, dict) else {}
        return cls(
            name=str(data.get('parameter_name') or ""),
            component=str(data.get('component') or ""),
            label=str(data.get('label') or ""),
            has_default=bool(data.get('parameter_has_default', False)),
            default=data.get('parameter_default'),
        )

    @property
    def lname(self) -> str:
        return self.name.lower()


@dataclass
class EndpointCandidate:
    """An endpoint together with its score"""
    identifier: EndpointId
    parameters: List[EndpointParameter] = field(default_factory=list)
    score: int = 0
    named: bool = True


@dataclass
class ApiDescription:
    """Introspected API of a Space, in enumeration order"""
    named_endpoints: Dict[str, List[EndpointParameter]] = field(default_factory=dict)
    unnamed_endpoints: Dict[int, List[EndpointParameter]] = field(default_factory=dict)

    @staticmethod
    def _parameters(info: Any) -> List[EndpointParameter]:
        params = info.get('parameters') if isinstance(info, dict) else None
        if not isinstance(params, (list, tuple)):
            return []
        return [EndpointParameter.from_dict(p) for p in params]

    @classmethod
    def from_view_api(cls, api: Any) -> 'ApiDescription':
        """Build from the dict returned by ``Client.view_api(return_format="dict")``"""
        if not isinstance(api, dict):
            return cls()

        named: Dict[str, List[EndpointParameter]] = {}
        for name, info in (api.get('named_endpoints') or {}).items():
            named[str(name)] = cls._parameters(info)

        unnamed: Dict[int, List[EndpointParameter]] = {}
        for idx, info in (api.get('unnamed_endpoints') or {}).items():
            try:
                unnamed[int(idx)] = cls._parameters(info)
            except (TypeError, ValueError):
                logger.debug(f"Skipping unnamed endpoint with non-numeric index {idx!r}")

        return cls(named_endpoints=named, unnamed_endpoints=unnamed)

    def parameters_for(self, identifier: EndpointId) -> List[EndpointParameter]:
        if isinstance(identifier, str):
            return self.named_endpoints.get(identifier, [])
        return self.unnamed_endpoints.get(identifier, [])


def is_image_parameter(param: EndpointParameter) -> bool:
    return "image" in param.lname or "image" in param.component.lower()


def is_prompt_name(lname: str) -> bool:
    """A positive prompt parameter name (negative prompts excluded)"""
    return lname == "prompt" or ("prompt" in lname and "negative" not in lname)


def score_parameters(parameters: List[EndpointParameter], named: bool) -> int:
    """
    Score one endpoint by its parameters.

    +5 accepts an image, +5 accepts a prompt (or free text), +2 has a
    duration, +1 has a step count, +1 for named endpoints.
    """
    names = [p.lname for p in parameters]
    components = [p.component.lower() for p in parameters]

    has_image = any(is_image_parameter(p) for p in parameters)
    has_prompt = any(is_prompt_name(n) for n in names) or any("textbox" in c for c in components)

    score = 0
    if has_image:
        score += IMAGE_SCORE
    if has_prompt:
        score += PROMPT_SCORE
    if any("duration" in n for n in names):
        score += DURATION_SCORE
    if any("steps" in n for n in names):
        score += STEPS_SCORE
    if named:
        score += NAMED_BONUS
    return score


def rank_endpoints(api: ApiDescription) -> List[EndpointCandidate]:
    """All endpoints, best first; ties keep enumeration order (named first)"""
    candidates: List[EndpointCandidate] = []

    for name, params in api.named_endpoints.items():
        candidates.append(EndpointCandidate(name, params, score_parameters(params, True), True))

    for idx, params in api.unnamed_endpoints.items():
        candidates.append(EndpointCandidate(idx, params, score_parameters(params, False), False))

    # sorted() is stable, so equal scores keep declaration order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def select_endpoint(api: Optional[ApiDescription]) -> EndpointCandidate:
    """
    Pick the endpoint to invoke.

    Returns:
        Highest-scoring candidate, or the conventional ``/predict``
        endpoint when nothing scores above zero
    """
    api = api or ApiDescription()
    ranked = rank_endpoints(api)

    if not ranked or ranked[0].score <= 0:
        logger.info(f"No endpoint matched, falling back to {DEFAULT_ENDPOINT}")
        return EndpointCandidate(DEFAULT_ENDPOINT, api.parameters_for(DEFAULT_ENDPOINT), 0, True)

    best = ranked[0]
    logger.info(f"Selected endpoint {best.identifier!r} (score {best.score})")
    return best
