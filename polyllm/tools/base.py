from typing import Any, Callable, Dict, Optional, Type, Union
from pydantic import BaseModel

from .. import dialects


class Tool:
    """
    A definition for a tool that can be used by an AI model.
    Wraps a function and its Pydantic schema (or a raw JSON schema).
    """
    def __init__(self, name: str, fn: Callable = None, schema: Type[BaseModel] = None, description: str = "", raw_schema: Dict[str, Any] = None):
        self.name = name
        self.fn = fn
        self.args_schema = schema
        self.description = description or (fn.__doc__ if fn else "") or ""
        self.raw_schema = raw_schema

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON Schema for the tool arguments."""
        if self.raw_schema:
            return self.raw_schema
        if self.args_schema:
            return self.args_schema.model_json_schema()
        return {"type": "object", "properties": {}}

    @property
    def schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def render_for(self, dialect: str) -> Dict[str, Any]:
        d = dialects.resolve_dialect(dialect)
        if d == dialects.ANTHROPIC:
            return {
                "name": self.name,
                "description": self.description,
                "input_schema": self.parameters,
            }
        if d == dialects.GOOGLE:
            return {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    @classmethod
    def from_fn(cls, fn: Callable) -> "Tool":
        import inspect
        from pydantic import create_model

        sig = inspect.signature(fn)
        params = {}
        for name, param in sig.parameters.items():
            if name == "self": continue
            annotation = param.annotation
            if annotation == inspect.Parameter.empty:
                annotation = str

            default = param.default
            if default == inspect.Parameter.empty:
                 params[name] = (annotation, ...)
            else:
                 params[name] = (annotation, default)

        schema = create_model(f"{fn.__name__}Schema", **params)
        return cls(name=fn.__name__, fn=fn, schema=schema)


def render_tool(tool: Union[Tool, Dict[str, Any]], dialect: str) -> Dict[str, Any]:
    """Render a Tool for a dialect; plain dicts are assumed to be vendor-native already."""
    if isinstance(tool, Tool):
        return tool.render_for(dialect)
    return tool


def render_tool_choice(choice: Optional[Union[str, Dict[str, Any]]], dialect: str) -> Optional[Union[str, Dict[str, Any]]]:
    """
    Translate a canonical tool-choice directive ("auto", "none", "required"
    or a tool name) into the dialect's vocabulary. Dicts pass through.
    Returns None when there is nothing to send.
    """
    if choice is None or isinstance(choice, dict):
        return choice

    d = dialects.resolve_dialect(dialect)
    if d == dialects.ANTHROPIC:
        if choice == "auto":
            return {"type": "auto"}
        if choice in ("required", "any"):
            return {"type": "any"}
        if choice == "none":
            return {"type": "none"}
        return {"type": "tool", "name": choice}

    if d == dialects.GOOGLE:
        if choice == "auto":
            return {"functionCallingConfig": {"mode": "AUTO"}}
        if choice in ("required", "any"):
            return {"functionCallingConfig": {"mode": "ANY"}}
        if choice == "none":
            return {"functionCallingConfig": {"mode": "NONE"}}
        return {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": [choice]}}

    if choice in ("auto", "none", "required"):
        return choice
    return {"type": "function", "function": {"name": choice}}
