"""Pydantic schemas for the search-store and graph-store responses we rely on.

Callers validate a raw response right after receiving it with :func:`parse`;
a mismatch is logged together with the raw body and re-raised as
:class:`~src.common.errors.ResponseValidationError`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from src.common.errors import ResponseValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class HitList(_Lenient):
    hits: list[dict[str, Any]]


class ScrollResponse(_Lenient):
    scroll_id: str = Field(..., alias="_scroll_id")
    hits: HitList


class CloseScrollResponse(_Lenient):
    succeeded: bool
    num_freed: int


class MultiMatch(_Lenient):
    query: str


class PercolatorQuery(_Lenient):
    multi_match: MultiMatch


class PercolatedTermSource(_Lenient):
    query: PercolatorQuery
    uri: str
    source_terminology: str = ""
    namedGraphUri: str = ""


class PercolateHit(_Lenient):
    id: Optional[str] = Field(None, alias="_id")
    source: PercolatedTermSource = Field(..., alias="_source")


class PercolateHits(_Lenient):
    hits: list[PercolateHit]


class PercolateResponse(_Lenient):
    hits: PercolateHits


class SuggestOption(_Lenient):
    text: str


class SuggestEntry(_Lenient):
    options: list[SuggestOption]


class SuggestBody(_Lenient):
    term_suggest: list[SuggestEntry] = Field(..., alias="termSuggest")


class SuggestTermsResponse(_Lenient):
    suggest: SuggestBody


class CountResponse(_Lenient):
    count: int


class PutDocumentResponse(_Lenient):
    id: str = Field(..., alias="_id")
    result: str


class BindingValue(_Lenient):
    value: str


class UriValue(_Lenient):
    value: str

    @field_validator("value")
    @classmethod
    def _absolute(cls, value: str) -> str:
        parsed = urlparse(value)
        if not parsed.scheme or not (parsed.netloc or parsed.path):
            raise ValueError(f"not an absolute URI: {value!r}")
        return value


class TermBinding(_Lenient):
    s: UriValue
    slabel: BindingValue


class TermResults(_Lenient):
    bindings: list[TermBinding]


class TermsResponse(_Lenient):
    results: TermResults


class SparqlResults(_Lenient):
    bindings: list[dict[str, BindingValue]]


class SparqlResponse(_Lenient):
    results: SparqlResults


def parse(model: type[M], body: Any, what: str) -> M:
    """Validate *body* against *model*, logging the raw body on failure."""
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        logger.error("Failed to parse %s response: %s; body: %r", what, exc, body)
        raise ResponseValidationError(f"Unexpected {what} response", body=body) from exc


def parse_list(model: type[M], body: Any, what: str) -> list[M]:
    """Validate *body* as a JSON array of *model*."""
    try:
        return TypeAdapter(list[model]).validate_python(body)  # type: ignore[valid-type]
    except ValidationError as exc:
        logger.error("Failed to parse %s response: %s; body: %r", what, exc, body)
        raise ResponseValidationError(f"Unexpected {what} response", body=body) from exc
