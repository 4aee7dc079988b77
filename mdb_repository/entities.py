"""
Entity base class and identifier codec.

Repositories store any Identifiable type; Entity is the dataclass base most
records derive from. The ``id`` attribute maps to the document's ``_id``:
24-character hex strings are stored as BSON ObjectIds, anything else is
stored verbatim, and an unset id is left out of the document entirely so the
server assigns one.
"""

import dataclasses
import inspect
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from bson import ObjectId

from .constants import ID_FIELD

E = TypeVar("E", bound="Entity")


class Identifiable(Protocol):
    """
    What a repository needs from a stored type.

    Any class with a string ``id`` and the two document converters can be
    stored; Entity is the ready-made implementation.
    """

    id: str | None

    def to_document(self) -> dict[str, Any]: ...

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> Any: ...


def encode_id(value: Any) -> Any:
    """Convert an entity id to its stored representation."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def decode_id(value: Any) -> str | None:
    """Convert a stored ``_id`` back to the string form entities carry."""
    if value is None:
        return None
    return str(value)


@dataclass(kw_only=True)
class Entity:
    """
    Base class for persisted records.

    Subclass it as a dataclass; the id stays keyword-only so subclasses can
    declare required fields.

    Example:
        @dataclass
        class Product(Entity):
            sku: str
            price: float = 0.0

        product = Product("A-100", price=9.5)
        product.id  # None until the store assigns one
    """

    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        """Convert the entity to a MongoDB document."""
        doc: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "id":
                if value is not None:
                    doc[ID_FIELD] = encode_id(value)
                continue
            doc[f.name] = value
        return doc

    @classmethod
    def from_document(cls: type[E], doc: dict[str, Any] | None) -> E | None:
        """
        Create an entity from a stored document.

        Fields the entity does not declare are ignored.
        """
        if doc is None:
            return None

        data = dict(doc)
        if ID_FIELD in data:
            data["id"] = decode_id(data.pop(ID_FIELD))

        field_names = {f.name for f in dataclasses.fields(cls) if f.init}
        return cls(**{k: v for k, v in data.items() if k in field_names})


def is_entity_type(candidate: Any) -> bool:
    """Return True for classes satisfying Identifiable."""
    if not isinstance(candidate, type):
        return False
    declares_id = any("id" in inspect.get_annotations(klass) for klass in candidate.__mro__)
    return (
        declares_id
        and callable(getattr(candidate, "to_document", None))
        and callable(getattr(candidate, "from_document", None))
    )
