"""
ModelRelay - Tool Declaration Conversion

Every family declares callable functions differently:
- OpenAI: tools=[{"type": "function", "function": {name, description, parameters}}]
  (legacy: functions=[{name, description, parameters}])
- Anthropic: tools=[{name, description, input_schema}]
- Google: tools=[{"functionDeclarations": [...]}] or top-level functionDeclarations

Declarations are read into one canonical list and written back in the
target family's shape.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.formats import APIFormat

# Tool selection fields; they do not survive a family change.
TOOL_CHOICE_KEYS = ("tool_choice", "function_call", "tool_config", "toolConfig")


def _empty_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass(frozen=True)
class FunctionDeclaration:
    """Canonical function declaration."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=_empty_schema)


class ToolNormalizer:
    """Reads and writes function declarations for each format family."""

    # ============================================================
    # Readers
    # ============================================================

    @staticmethod
    def _declaration(name: Any, description: Any, parameters: Any) -> Optional[FunctionDeclaration]:
        if not isinstance(name, str) or not name:
            return None
        return FunctionDeclaration(
            name=name,
            description=description if isinstance(description, str) else "",
            parameters=parameters if isinstance(parameters, dict) else _empty_schema(),
        )

    @classmethod
    def from_openai(cls, tool: Dict[str, Any]) -> Optional[FunctionDeclaration]:
        """Read an OpenAI tool, or a bare legacy function object."""
        function = tool.get("function") if isinstance(tool.get("function"), dict) else tool
        return cls._declaration(
            function.get("name"), function.get("description"), function.get("parameters")
        )

    @classmethod
    def from_anthropic(cls, tool: Dict[str, Any]) -> Optional[FunctionDeclaration]:
        return cls._declaration(tool.get("name"), tool.get("description"), tool.get("input_schema"))

    @classmethod
    def from_google(cls, declaration: Dict[str, Any]) -> Optional[FunctionDeclaration]:
        return cls._declaration(
            declaration.get("name"), declaration.get("description"), declaration.get("parameters")
        )

    @classmethod
    def extract(cls, body: Dict[str, Any]) -> List[FunctionDeclaration]:
        """Collect declarations from tools, functions and functionDeclarations."""
        found: List[Optional[FunctionDeclaration]] = []

        tools = body.get("tools")
        if isinstance(tools, list):
            for tool in tools:
                if not isinstance(tool, dict):
                    continue
                if isinstance(tool.get("functionDeclarations"), list):
                    found.extend(
                        cls.from_google(d) for d in tool["functionDeclarations"] if isinstance(d, dict)
                    )
                elif tool.get("type") == "function" or isinstance(tool.get("function"), dict):
                    found.append(cls.from_openai(tool))
                else:
                    found.append(cls.from_anthropic(tool))

        functions = body.get("functions")
        if isinstance(functions, list):
            found.extend(cls.from_openai(f) for f in functions if isinstance(f, dict))

        declarations = body.get("functionDeclarations")
        if isinstance(declarations, list):
            found.extend(cls.from_google(d) for d in declarations if isinstance(d, dict))

        result: List[FunctionDeclaration] = []
        seen = set()
        for declaration in found:
            if declaration is None or declaration.name in seen:
                continue
            seen.add(declaration.name)
            result.append(declaration)
        return result

    # ============================================================
    # Writers
    # ============================================================

    @staticmethod
    def to_openai(declaration: FunctionDeclaration) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": declaration.name,
                "description": declaration.description,
                "parameters": declaration.parameters,
            },
        }

    @staticmethod
    def to_anthropic(declaration: FunctionDeclaration) -> Dict[str, Any]:
        return {
            "name": declaration.name,
            "description": declaration.description,
            "input_schema": declaration.parameters,
        }

    @staticmethod
    def to_google(declaration: FunctionDeclaration) -> Dict[str, Any]:
        return {
            "name": declaration.name,
            "description": declaration.description,
            "parameters": declaration.parameters,
        }


_normalizer = ToolNormalizer()


def normalize_tools(declarations: List[FunctionDeclaration], api_format: APIFormat) -> List[Dict[str, Any]]:
    """Render canonical declarations in a family's tool shape."""
    if api_format == APIFormat.ANTHROPIC:
        return [_normalizer.to_anthropic(d) for d in declarations]
    if api_format == APIFormat.GOOGLE:
        return [_normalizer.to_google(d) for d in declarations]
    return [_normalizer.to_openai(d) for d in declarations]


def convert_tools(body: Dict[str, Any], source: APIFormat, target: APIFormat) -> Dict[str, Any]:
    """
    Re-emit tool declarations for the target family.

    OpenAI and Anthropic targets receive `tools`; Google targets receive a
    top-level `functionDeclarations`. Tool selection fields are cleared.
    Same family is left as-is.
    """
    if source == target:
        return body

    declarations = _normalizer.extract(body)

    for key in ("tools", "functions", "functionDeclarations") + TOOL_CHOICE_KEYS:
        body.pop(key, None)

    if not declarations:
        return body

    rendered = normalize_tools(declarations, target)
    if target == APIFormat.GOOGLE:
        body["functionDeclarations"] = rendered
    else:
        body["tools"] = rendered
    return body
