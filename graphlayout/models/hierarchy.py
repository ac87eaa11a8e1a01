"""Source hierarchy schemas consumed by the graph projector.

The hierarchy is the project's file tree as far as it has been fetched,
plus the semantic (import/call) links and missing dependencies discovered by
analysis. ``children=None`` means a directory's children have not been
fetched yet; ``has_children`` or ``descendant_count`` can still announce them.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from graphlayout.models.graph_snapshot import REFERENCE_LINK_KINDS, LinkKind


class SymbolNode(BaseModel):
    """A symbol parsed out of a file (function, class, ...)."""

    name: str = Field(..., min_length=1)
    type: Literal["function", "class", "variable", "api_endpoint"] = "function"


class SourceNode(BaseModel):
    """A directory or file of the source hierarchy.

    Attributes:
        id: Entity id, defaults to the path
        name: Display name
        type: directory or file
        path: Project-relative path
        children: Materialized children, None if not fetched yet
        has_children: Children exist but may not be materialized
        descendant_count: Precomputed descendant count, avoids a subtree walk
        symbols: Parsed symbols of a file
    """

    id: str = ""
    name: str = ""
    type: Literal["directory", "file"] = "file"
    path: str = Field(..., min_length=1)
    children: Optional[List["SourceNode"]] = None
    has_children: bool = False
    descendant_count: Optional[int] = Field(default=None, ge=0)
    symbols: List[SymbolNode] = Field(default_factory=list)

    @model_validator(mode="after")
    def _default_id_and_name(self) -> "SourceNode":
        if not self.id:
            self.id = self.path
        if not self.name:
            self.name = self.path.rstrip("/").rsplit("/", 1)[-1] or self.path
        return self

    @property
    def is_container(self) -> bool:
        return self.type == "directory"

    @property
    def announces_children(self) -> bool:
        """True if materialized children exist or are known to exist."""
        return bool(self.children) or self.has_children or bool(self.descendant_count)


class SemanticLink(BaseModel):
    """An import or call relation between two entities."""

    source: str
    target: str
    kind: LinkKind = LinkKind.IMPORT

    @field_validator("kind")
    @classmethod
    def _reference_kind_only(cls, v: LinkKind) -> LinkKind:
        if v not in REFERENCE_LINK_KINDS:
            raise ValueError(f"Semantic links must be import or call, got {v.value}")
        return v


class MissingDependency(BaseModel):
    """A dependency the analysed code needs but the project does not contain."""

    id: str = Field(..., min_length=1)
    name: str = ""
    type: Literal["table", "endpoint", "service", "auth"] = "service"
    description: str = ""
    required_by: List[str] = Field(default_factory=list, description="Paths that need it")


class Hierarchy(BaseModel):
    """Everything the projector flattens: tree, semantic links, missing dependencies."""

    root: SourceNode
    semantic_links: List[SemanticLink] = Field(default_factory=list)
    missing_dependencies: List[MissingDependency] = Field(default_factory=list)


__all__ = [
    "SymbolNode",
    "SourceNode",
    "SemanticLink",
    "MissingDependency",
    "Hierarchy",
]
