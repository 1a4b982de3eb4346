from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class AttributeScope(str, Enum):
    INLINE = "inline"
    BLOCK = "block"


# Standard Quill attribute keys. Hosts with custom attributes register them
# through register_attribute(); anything unknown is treated as inline.
_SCOPES: Dict[str, AttributeScope] = {
    "bold": AttributeScope.INLINE,
    "italic": AttributeScope.INLINE,
    "underline": AttributeScope.INLINE,
    "strike": AttributeScope.INLINE,
    "inline-code": AttributeScope.INLINE,
    "code": AttributeScope.INLINE,
    "link": AttributeScope.INLINE,
    "color": AttributeScope.INLINE,
    "background": AttributeScope.INLINE,
    "font": AttributeScope.INLINE,
    "size": AttributeScope.INLINE,
    "script": AttributeScope.INLINE,
    "small": AttributeScope.INLINE,
    "header": AttributeScope.BLOCK,
    "list": AttributeScope.BLOCK,
    "align": AttributeScope.BLOCK,
    "direction": AttributeScope.BLOCK,
    "indent": AttributeScope.BLOCK,
    "blockquote": AttributeScope.BLOCK,
    "code-block": AttributeScope.BLOCK,
    "line-height": AttributeScope.BLOCK,
}


def register_attribute(key: str, scope: AttributeScope) -> None:
    """Registers (or overrides) the scope of an attribute key."""
    if not key or not key.strip():
        raise ValueError("attribute key cannot be empty")
    _SCOPES[key] = AttributeScope(scope)


def scope_of(key: str) -> AttributeScope:
    return _SCOPES.get(key, AttributeScope.INLINE)


class Attribute(BaseModel):
    """
    A single attribute to apply to a run.
    A value of None means "remove this key" when the attribute is applied.
    """

    key: str = Field(..., description="Attribute key, e.g. 'bold' or 'header'.")
    value: Optional[Any] = Field(None, description="Attribute value; None clears the key.")
    scope: AttributeScope = Field(
        AttributeScope.INLINE,
        description="Whether the attribute governs runs or lines; taken from the registry when omitted.",
    )

    @model_validator(mode="before")
    @classmethod
    def _scope_from_registry(cls, data: Any) -> Any:
        if isinstance(data, dict) and "scope" not in data and isinstance(data.get("key"), str):
            return {**data, "scope": scope_of(data["key"])}
        return data

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("attribute key cannot be empty")
        return v

    @classmethod
    def of(cls, key: str, value: Any = None) -> "Attribute":
        """Builds an attribute whose scope comes from the registry."""
        return cls(key=key, value=value, scope=scope_of(key))

    @property
    def is_inline(self) -> bool:
        return self.scope == AttributeScope.INLINE

    @property
    def is_block(self) -> bool:
        return self.scope == AttributeScope.BLOCK
