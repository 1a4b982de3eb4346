import json
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from delta_simplify.attributes import Attribute
from delta_simplify.errors import IllegalOperationPassedError, IllegalParamsValuesError

OBJECT_REPLACEMENT_CHARACTER = "￼"

EmbedBuilder = Callable[[Dict[str, Any]], str]


class Operation(BaseModel):
    """
    A single run of a delta.

    Resolved documents only contain insertions of text or of an embed
    (a non-empty dict). retain/delete exist so that wire deltas can be
    parsed, but every document-level computation rejects them.
    """

    model_config = ConfigDict(frozen=True)

    insert: Optional[Union[str, Dict[str, Any]]] = Field(None, description="Inserted text or embed object.")
    retain: Optional[int] = Field(None, gt=0)
    delete: Optional[int] = Field(None, gt=0)
    attributes: Optional[Dict[str, Any]] = Field(None, description="Attribute map; empty maps become None.")

    @field_validator("attributes")
    @classmethod
    def _drop_empty_attributes(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return v or None

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "Operation":
        kinds = [k for k in ("insert", "retain", "delete") if getattr(self, k) is not None]
        if len(kinds) != 1:
            raise ValueError(f"an operation needs exactly one of insert/retain/delete, got {kinds or 'none'}")
        if isinstance(self.insert, dict) and not self.insert:
            raise ValueError("an embed insertion cannot be an empty object")
        return self

    # -- construction ------------------------------------------------------

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Operation":
        if not isinstance(data, dict):
            raise IllegalParamsValuesError(illegal=data, expected={"insert": "..."})
        return cls.model_validate(data)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    # -- derived properties ------------------------------------------------

    @property
    def is_insert(self) -> bool:
        return self.insert is not None

    @property
    def length(self) -> int:
        """Effective length: characters for text, 1 for an embed."""
        if not self.is_insert:
            raise IllegalOperationPassedError(illegal=self, expected=Operation(insert="", attributes=self.attributes))
        if isinstance(self.insert, str):
            return len(self.insert)
        return 1

    @property
    def is_embed(self) -> bool:
        return isinstance(self.insert, dict)

    @property
    def is_text(self) -> bool:
        return isinstance(self.insert, str)

    @property
    def is_newline(self) -> bool:
        return isinstance(self.insert, str) and self.insert != "" and self.insert.strip("\n") == ""

    @property
    def is_block_level_insertion(self) -> bool:
        """A newline-only run carrying attributes: the anchor of block attributes."""
        return self.is_newline and self.attributes is not None

    @property
    def is_newline_or_block_insertion(self) -> bool:
        return self.is_block_level_insertion or self.is_newline

    def contains_newline(self) -> bool:
        return isinstance(self.insert, str) and "\n" in self.insert

    def to_plain(self, embed_builder: Optional[EmbedBuilder] = None) -> str:
        if self.insert is None:
            return ""
        if isinstance(self.insert, str):
            return self.insert
        if embed_builder is not None:
            return embed_builder(self.insert)
        return OBJECT_REPLACEMENT_CHARACTER

    def contains_attrs(self, keys: Sequence[str], strict: bool = True) -> bool:
        """
        Checks attribute keys.
        strict=True requires every key to be present, otherwise any key is enough.
        """
        if not self.attributes or not keys:
            return False
        if strict:
            return all(k in self.attributes for k in keys)
        return any(k in self.attributes for k in keys)

    def has_same_attributes(self, other: "Operation") -> bool:
        return (self.attributes or {}) == (other.attributes or {})

    # -- derivation --------------------------------------------------------

    def clone(
        self,
        new_data: Optional[Union[str, Dict[str, Any]]] = None,
        attribute: Optional[Attribute] = None,
        replace_current: bool = False,
        without_attrs: bool = False,
    ) -> "Operation":
        """
        Returns a new insertion with the same (or new) data.

        An attribute with value None removes its key; replace_current drops
        every other key before setting the attribute.
        """
        attrs: Dict[str, Any] = dict(self.attributes or {})
        if attribute is not None:
            if attribute.value is None:
                attrs.pop(attribute.key, None)
            else:
                if replace_current:
                    attrs.clear()
                attrs[attribute.key] = attribute.value
        return Operation(
            insert=self.insert if new_data is None else new_data,
            attributes=None if without_attrs else (attrs or None),
        )

    def with_attributes(self, attributes: Optional[Dict[str, Any]]) -> "Operation":
        return Operation(insert=self.insert, attributes=attributes or None)

    def slice(self, start: int, end: Optional[int] = None) -> "Operation":
        """Sub-run of a text insertion; embeds are atomic and returned whole."""
        if self.is_embed:
            return self
        text = self.insert if isinstance(self.insert, str) else ""
        return Operation(insert=text[start:end], attributes=self.attributes)


class Delta(BaseModel):
    """An ordered list of insertions forming a whole document."""

    model_config = ConfigDict(frozen=True)

    operations: List[Operation] = Field(default_factory=list)

    @classmethod
    def from_operations(cls, ops: Sequence[Operation]) -> "Delta":
        return cls(operations=list(ops))

    @classmethod
    def from_json(cls, data: Union[str, List[Any], Dict[str, Any]]) -> "Delta":
        """
        Accepts a JSON string, a list of operation dicts, or the Quill
        {"ops": [...]} envelope.
        """
        if isinstance(data, str):
            data = json.loads(data)
        if isinstance(data, dict):
            if "ops" not in data:
                raise IllegalParamsValuesError(illegal=data, expected={"ops": []})
            data = data["ops"]
        if not isinstance(data, list):
            raise IllegalParamsValuesError(illegal=data, expected=list)
        return cls(operations=[item if isinstance(item, Operation) else Operation.from_json(item) for item in data])

    def to_json(self) -> List[Dict[str, Any]]:
        return [op.to_json() for op in self.operations]

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[Operation]:  # type: ignore[override]
        return iter(self.operations)

    def __getitem__(self, index):
        return self.operations[index]

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def last(self) -> Operation:
        return self.operations[-1]

    @property
    def length(self) -> int:
        return sum(op.length for op in self.operations)

    def to_plain(self, embed_builder: Optional[EmbedBuilder] = None) -> str:
        return "".join(op.to_plain(embed_builder) for op in self.operations)

    def concat(self, other: "Delta") -> "Delta":
        return Delta(operations=[*self.operations, *other.operations])

    def with_insert(self, data: Union[str, Dict[str, Any]], attributes: Optional[Dict[str, Any]] = None) -> "Delta":
        return Delta(operations=[*self.operations, Operation(insert=data, attributes=attributes)])

    def normalize(self) -> "Delta":
        from delta_simplify.utils.delta import normalize

        return normalize(self)

    def denormalize(self) -> "Delta":
        from delta_simplify.utils.delta import denormalize

        return denormalize(self)

    def to_query(self):
        from delta_simplify.query.engine import QueryDelta

        return QueryDelta(delta=self)

    def compare_diff(self, other: "Delta", cleanup_semantic: bool = True):
        """Diff of this delta (new version) against `other` (old version)."""
        from delta_simplify.diff import compare_deltas

        return compare_deltas(other, self, cleanup_semantic=cleanup_semantic)


class DeltaRange(BaseModel):
    """Half-open [start_offset, end_offset) interval; end_offset=None means open-ended."""

    model_config = ConfigDict(frozen=True)

    start_offset: int = Field(..., ge=0)
    end_offset: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "DeltaRange":
        if self.end_offset is not None and self.end_offset < self.start_offset:
            raise ValueError(f"end_offset ({self.end_offset}) cannot be less than start_offset ({self.start_offset})")
        return self

    @classmethod
    def only_start_point(cls, start_offset: int) -> "DeltaRange":
        return cls(start_offset=start_offset)

    @property
    def is_open_ended(self) -> bool:
        return self.end_offset is None

    def resolve_end(self, total_length: int) -> int:
        return total_length if self.end_offset is None else self.end_offset

    def overlaps(self, other: "DeltaRange") -> bool:
        self_end = float("inf") if self.end_offset is None else self.end_offset
        other_end = float("inf") if other.end_offset is None else other.end_offset
        return self.start_offset < other_end and other.start_offset < self_end

    def overlaps_span(self, start: int, end: int) -> bool:
        if end <= start:
            return self.contains_point(start)
        return self.overlaps(DeltaRange(start_offset=start, end_offset=end))

    def contains_point(self, offset: int) -> bool:
        """True when an insertion at `offset` would land strictly inside the range."""
        end = float("inf") if self.end_offset is None else self.end_offset
        return self.start_offset < offset < end


def ignore_overlap(parts: Sequence[DeltaRange], target: Optional[DeltaRange]) -> bool:
    """True when `target` collides with any protected range."""
    if target is None:
        return False
    if target.end_offset is not None and target.end_offset == target.start_offset:
        return any(p.contains_point(target.start_offset) for p in parts)
    return any(p.overlaps(target) for p in parts)


class DeltaRangeResult(BaseModel):
    """An excerpt of a document together with the range it occupies there."""

    model_config = ConfigDict(frozen=True)

    delta: Delta
    range: DeltaRange

    @property
    def start_offset(self) -> int:
        return self.range.start_offset

    @property
    def end_offset(self) -> int:
        return self.range.resolve_end(self.range.start_offset + self.delta.length)

    def to_plain(self) -> str:
        return self.delta.to_plain()
