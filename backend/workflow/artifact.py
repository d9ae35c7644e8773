"""
Artifacts.

An artifact is the value that flows between workflow steps. It is either a
reference to a file (a local path or a download URL handed out by the
processing service) or inline data held in memory (a parsed table or
generated text).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd


TABLE_SUFFIXES = {".csv", ".tsv", ".json", ".xlsx", ".xls"}


@dataclass(eq=False)
class Artifact:
    """A file reference or an inline table/text value."""
    name: str
    path: Path | None = None
    url: str | None = None
    table: pd.DataFrame | None = None
    text: str | None = None
    media_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: Path | str, **metadata: Any) -> "Artifact":
        path = Path(path)
        return cls(name=path.name, path=path, metadata=dict(metadata))

    @classmethod
    def from_url(cls, url: str, name: str, **metadata: Any) -> "Artifact":
        return cls(name=name, url=url, metadata=dict(metadata))

    @classmethod
    def from_table(cls, table: pd.DataFrame, name: str = "table.csv", **metadata: Any) -> "Artifact":
        return cls(name=name, table=table, metadata=dict(metadata))

    @classmethod
    def from_text(
        cls,
        text: str,
        name: str,
        media_type: str = "text/plain",
        **metadata: Any,
    ) -> "Artifact":
        return cls(name=name, text=text, media_type=media_type, metadata=dict(metadata))

    @property
    def is_table(self) -> bool:
        return self.table is not None

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @property
    def is_file(self) -> bool:
        return not self.is_table and not self.is_text and (
            self.path is not None or self.url is not None
        )

    @property
    def kind(self) -> str:
        if self.is_table:
            return "table"
        if self.is_text:
            return "text"
        if self.is_file:
            return "file"
        return "empty"

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower()

    def renamed(self, name: str) -> "Artifact":
        """Return a shallow copy of this artifact under a new name."""
        return Artifact(
            name=name,
            path=self.path,
            url=self.url,
            table=self.table,
            text=self.text,
            media_type=self.media_type,
            metadata=dict(self.metadata),
        )

    def describe(self) -> str:
        """One-line human readable summary."""
        if self.is_table:
            rows, cols = self.table.shape
            return f"{self.name} (table, {rows} rows x {cols} columns)"
        if self.is_text:
            return f"{self.name} (text, {len(self.text)} chars)"
        if self.url:
            return f"{self.name} ({self.url})"
        if self.path:
            return f"{self.name} ({self.path})"
        return f"{self.name} (empty)"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind,
            "path": str(self.path) if self.path else None,
            "url": self.url,
            "media_type": self.media_type,
            "metadata": self.metadata,
        }
        if self.is_table:
            data["columns"] = [str(c) for c in self.table.columns]
            data["rows"] = len(self.table)
        return data
