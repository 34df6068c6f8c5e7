"""
Tool Catalog.

Static, read-only declaration of the tools exposed to the model. Each
tool pairs its wire definition with a pydantic argument model; the
JSON schema sent to the model is generated from that model, so the
outbound request and the dispatcher's validation cannot drift apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.entities import ToolDefinition
from ..domain.errors import ArgumentError, UnknownToolError

logger = logging.getLogger(__name__)

# Wire names used by the CLI whose transcripts we replay
READ_FILE = "ReadFile"
SHELL = "Shell"
WRITE_FILE = "WriteFile"
STR_REPLACE_FILE = "StrReplaceFile"
SEARCH_WEB = "SearchWeb"
FETCH_URL = "FetchURL"


# =============================================================================
# Argument Models
# =============================================================================


class ToolArgs(BaseModel):
    """Base for tool argument models. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class ReadFileArgs(ToolArgs):
    path: str = Field(..., description="Path of the file to read, relative to the working directory")
    line_offset: int = Field(default=1, ge=1, description="1-based line to start reading from")
    n_lines: int = Field(default=1000, ge=1, description="Maximum number of lines to read")


class ShellArgs(ToolArgs):
    command: str = Field(..., description="Shell command to execute")
    timeout: int = Field(default=60, ge=1, description="Timeout in seconds")


class WriteFileArgs(ToolArgs):
    path: str = Field(..., description="Path of the file to write")
    content: str = Field(..., description="Content to write")
    mode: Literal["overwrite", "append"] = Field(
        default="overwrite",
        description="overwrite replaces the file, append adds to its end",
    )


class Edit(ToolArgs):
    old: str = Field(..., description="Exact text to replace")
    new: str = Field(..., description="Replacement text")
    replace_all: bool = Field(default=False, description="Replace every occurrence")


class StrReplaceFileArgs(ToolArgs):
    path: str = Field(..., description="Path of the file to edit")
    edit: Union[Edit, list[Edit]] = Field(
        ..., description="One edit or a list of edits applied in order"
    )

    @field_validator("edit")
    @classmethod
    def _as_list(cls, value: Union[Edit, list[Edit]]) -> list[Edit]:
        edits = value if isinstance(value, list) else [value]
        if not edits:
            raise ValueError("at least one edit is required")
        return edits

    @property
    def edits(self) -> list[Edit]:
        return self.edit if isinstance(self.edit, list) else [self.edit]


class SearchWebArgs(ToolArgs):
    query: str = Field(..., description="Search query")
    limit: int = Field(default=5, ge=1, le=20, description="Number of results")
    include_content: bool = Field(
        default=False, description="Include page content in the results"
    )


class FetchURLArgs(ToolArgs):
    url: str = Field(..., description="URL to fetch")


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class ToolSpec:
    """A catalog entry: wire definition plus argument model."""

    definition: ToolDefinition
    args_model: type[ToolArgs]
    # Label used in "Missing <label>" messages for the main argument
    missing_labels: tuple[tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        return self.definition.name


def _schema_for(model: type[ToolArgs]) -> dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def _spec(
    name: str,
    description: str,
    model: type[ToolArgs],
    requires_approval: bool = False,
    missing_labels: tuple[tuple[str, str], ...] = (),
) -> ToolSpec:
    return ToolSpec(
        definition=ToolDefinition(
            name=name,
            description=description,
            parameters=_schema_for(model),
            requires_approval=requires_approval,
        ),
        args_model=model,
        missing_labels=missing_labels,
    )


DEFAULT_TOOL_SPECS: tuple[ToolSpec, ...] = (
    _spec(
        READ_FILE,
        "Read a text file from the working directory. Returns numbered lines.",
        ReadFileArgs,
    ),
    _spec(
        SHELL,
        "Run a shell command in the working directory and return its output.",
        ShellArgs,
        requires_approval=True,
        missing_labels=(("command", "command"),),
    ),
    _spec(
        WRITE_FILE,
        "Write content to a file, overwriting it or appending to it.",
        WriteFileArgs,
        requires_approval=True,
    ),
    _spec(
        STR_REPLACE_FILE,
        "Edit a file by replacing exact strings.",
        StrReplaceFileArgs,
        requires_approval=True,
        missing_labels=(("edit", "edits"),),
    ),
    _spec(
        SEARCH_WEB,
        "Search the web and return the top results.",
        SearchWebArgs,
    ),
    _spec(
        FETCH_URL,
        "Fetch a web page and return its main text content.",
        FetchURLArgs,
        missing_labels=(("url", "URL"),),
    ),
)


class ToolCatalog:
    """Registry of the tools exposed to the model.

    Usage:
        catalog = ToolCatalog()

        # Outbound request
        tools = catalog.get_all_tools()

        # Dispatcher validation
        args = catalog.validate("ReadFile", {"path": "README.md"})
    """

    def __init__(self, specs: Optional[tuple[ToolSpec, ...]] = None):
        """Initialize the catalog.

        Args:
            specs: Tool specs to expose (defaults to the built-in six)
        """
        specs = DEFAULT_TOOL_SPECS if specs is None else specs
        self._specs: dict[str, ToolSpec] = {spec.name: spec for spec in specs}

    def get_all_tools(self) -> list[ToolDefinition]:
        """Get every tool definition, in declaration order."""
        return [spec.definition for spec in self._specs.values()]

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._specs.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def requires_approval(self, name: str) -> bool:
        """Check whether a tool is gated.

        Unknown tools never reach the dispatcher's collaborators, so they
        need no approval.
        """
        spec = self._specs.get(name)
        return bool(spec and spec.definition.requires_approval)

    def validate(self, name: str, arguments: dict[str, Any]) -> ToolArgs:
        """Validate raw arguments into the tool's argument model.

        Raises:
            UnknownToolError: Tool is not in the catalog
            ArgumentError: Arguments are missing or invalid
        """
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownToolError(name)

        try:
            return spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            raise _argument_error(spec, e) from e


def _argument_error(spec: ToolSpec, error: ValidationError) -> ArgumentError:
    """Turn a pydantic error into a readable ArgumentError."""
    labels = dict(spec.missing_labels)
    first = error.errors()[0]
    loc = first.get("loc") or ()
    field = str(loc[0]) if loc else None

    if first.get("type") == "missing" and field:
        message = f"Missing {labels.get(field, field)}"
    elif field == "edit":
        message = "Missing edits"
    elif field:
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = f"Invalid arguments: {first.get('msg', 'invalid value')}"

    logger.debug(f"Argument validation failed for {spec.name}: {error}")
    return ArgumentError(message, tool_name=spec.name, field=field)
