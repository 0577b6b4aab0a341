# src/llm_wire/tools/tool.py

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel


class Tool:
    """A function the model may call, described by a Pydantic input schema.

    The same definition encodes to OpenAI ``functions`` entries and to
    Anthropic ``tools`` entries.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        input_schema: type[BaseModel],
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema

    def json_schema(self) -> dict[str, Any]:
        return self.input_schema.model_json_schema()

    def parse_arguments(self, arguments: str | Mapping[str, Any]) -> BaseModel:
        """Validate model-produced arguments against the input schema.

        Args:
            arguments: Raw JSON text (OpenAI ``function_call.arguments``) or an
                already decoded mapping (Anthropic ``tool_use.input``).

        Raises:
            pydantic.ValidationError: If the arguments do not fit the schema.
        """
        if isinstance(arguments, str):
            return self.input_schema.model_validate_json(arguments or "{}")
        return self.input_schema.model_validate(dict(arguments))

    def __repr__(self) -> str:
        return f"Tool(name={self.name!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tool):
            return NotImplemented
        return (
            self.name == other.name
            and self.description == other.description
            and self.input_schema is other.input_schema
        )

    def __hash__(self) -> int:
        return hash((self.name, self.description, self.input_schema))


def dump_arguments(arguments: Mapping[str, Any]) -> str:
    """Render tool arguments as the JSON text OpenAI-style messages carry."""
    return json.dumps(dict(arguments), ensure_ascii=False)
