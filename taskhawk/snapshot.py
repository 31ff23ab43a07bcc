"""Point-in-time view of the page's interactive elements."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


@dataclass(frozen=True)
class ElementDescriptor:
    role: str = ""
    name: str = ""
    text: str | None = None
    value: str | None = None
    placeholder: str | None = None
    label: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ElementDescriptor:
        attrs = data.get("attributes")
        return cls(
            role=str(data.get("role") or ""),
            name=str(data.get("name") or ""),
            text=_opt_str(data.get("text")),
            value=_opt_str(data.get("value")),
            placeholder=_opt_str(data.get("placeholder")),
            label=_opt_str(data.get("label")),
            attributes={str(k): str(v) for k, v in attrs.items()} if isinstance(attrs, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "name": self.name}
        for key in ("text", "value", "placeholder", "label"):
            v = getattr(self, key)
            if v is not None:
                out[key] = v
        if self.attributes:
            out["attributes"] = dict(self.attributes)
        return out


@dataclass(frozen=True)
class Snapshot:
    """Elements keyed by opaque reference. Iteration order is document order."""

    url: str = ""
    status: str = "success"
    elements: dict[str, ElementDescriptor] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Snapshot:
        """Build from a transport payload.

        `elements` may be a mapping `{ref: descriptor}` or a list of descriptors
        that each carry a `ref` key.
        """
        raw = payload.get("elements")
        elements: dict[str, ElementDescriptor] = {}
        if isinstance(raw, Mapping):
            for ref, desc in raw.items():
                if isinstance(desc, ElementDescriptor):
                    elements[str(ref)] = desc
                elif isinstance(desc, Mapping):
                    elements[str(ref)] = ElementDescriptor.from_dict(desc)
        elif isinstance(raw, list):
            for item in raw:
                if isinstance(item, Mapping) and item.get("ref"):
                    elements[str(item["ref"])] = ElementDescriptor.from_dict(item)
        return cls(
            url=str(payload.get("url") or ""),
            status=str(payload.get("status") or "success"),
            elements=elements,
        )

    def get(self, ref: str) -> ElementDescriptor | None:
        return self.elements.get(ref)

    def __contains__(self, ref: object) -> bool:
        return ref in self.elements

    def __len__(self) -> int:
        return len(self.elements)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "url": self.url,
            "elements": {ref: el.to_dict() for ref, el in self.elements.items()},
        }


__all__ = ["ElementDescriptor", "Snapshot"]
