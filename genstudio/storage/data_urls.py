"""Helpers for base64 ``data:`` URLs."""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class DataUrl:
    mime_type: str
    data: str

    def decode(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc


def is_data_url(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("data:")


def parse_data_url(value: Optional[str]) -> Optional[DataUrl]:
    """Split ``data:<mime>;base64,<payload>``; None when the format does not match."""
    if not value:
        return None
    match = _DATA_URL_RE.match(value)
    if match is None:
        return None
    return DataUrl(mime_type=match.group(1), data=match.group(2))


def to_data_url(mime_type: str, data: str) -> str:
    return f"data:{mime_type};base64,{data}"
