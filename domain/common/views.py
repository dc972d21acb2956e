"""
Resource adapters: backend camelCase payloads -> storefront snake_case views.

Each resource declares its fields once in snake_case; the alias generator
accepts either spelling on input, and unknown keys are carried through
unchanged so nothing the backend adds is lost.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Type, TypeVar

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


V = TypeVar("V", bound="ResourceView")


def _either_spelling(name: str) -> AliasChoices:
    return AliasChoices(to_camel(name), name)


class ResourceView(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=AliasGenerator(validation_alias=_either_spelling),
    )

    @classmethod
    def adapt(cls: Type[V], payload: Mapping[str, Any]) -> dict[str, Any]:
        return cls.model_validate(dict(payload)).model_dump(mode="json")

    @classmethod
    def adapt_many(cls: Type[V], payloads: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return [cls.adapt(p) for p in payloads if isinstance(p, Mapping)]
