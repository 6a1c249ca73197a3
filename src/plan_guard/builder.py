# builder.py
# Helpers for declaring tools: a decorator that turns an async function into
# a Tool, and a validator derived from the declared parameter specs.

import inspect
import re
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Mapping

from pydantic import ValidationError

from plan_guard.errors import RegistrationError
from plan_guard.models import ParameterSpec, Tool, ToolMetadata, ToolResult, ValidationOutcome

ToolFn = Callable[[dict[str, Any], str], Awaitable[ToolResult]]
Validator = Callable[[dict[str, Any]], ValidationOutcome]

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


def validate_parameters(parameters: Mapping[str, ParameterSpec], payload: dict[str, Any]) -> ValidationOutcome:
    """Check a payload against declared parameter specs. Unknown keys are ignored."""
    errors: list[str] = []

    for name, spec in parameters.items():
        if name not in payload or payload[name] is None:
            if spec.required:
                errors.append(f"Missing required parameter '{name}'")
            continue

        value = payload[name]
        if not _TYPE_CHECKS[spec.type](value):
            errors.append(f"Parameter '{name}' must be of type {spec.type}")
            continue

        if spec.enum is not None and value not in spec.enum:
            errors.append(f"Parameter '{name}' must be one of: {', '.join(spec.enum)}")

        if spec.type == "number":
            if spec.min is not None and value < spec.min:
                errors.append(f"Parameter '{name}' must be >= {spec.min}")
            if spec.max is not None and value > spec.max:
                errors.append(f"Parameter '{name}' must be <= {spec.max}")

        if spec.pattern is not None and spec.type == "string" and not re.search(spec.pattern, value):
            errors.append(f"Parameter '{name}' does not match pattern {spec.pattern}")

    return ValidationOutcome(valid=not errors, errors=errors)


def define_tool(
    name: str,
    description: str,
    *,
    category: str = "custom",
    version: str = "1.0.0",
    parameters: Mapping[str, ParameterSpec | dict] | None = None,
    examples: Iterable[str] = (),
    validate: Validator | None = None,
) -> Callable[[ToolFn], Tool]:
    """
    Decorator form of a tool declaration.

        @define_tool("echo", "Echo a message back", parameters={
            "message": {"type": "string", "description": "Text", "required": True},
        })
        async def echo(payload, user_id):
            ...

    When parameters are declared and no explicit validator is given, the
    payload is checked against the parameter specs before every execution.
    """
    try:
        specs = {
            key: spec if isinstance(spec, ParameterSpec) else ParameterSpec.model_validate(spec)
            for key, spec in (parameters or {}).items()
        }
        metadata = ToolMetadata(
            name=name,
            description=description,
            category=category,
            version=version,
            parameters=specs,
            examples=list(examples),
        )
    except ValidationError as exc:
        raise RegistrationError(f"Invalid metadata for tool '{name}': {exc}") from exc

    if validate is None and specs:
        validate = partial(validate_parameters, specs)

    def deco(fn: ToolFn) -> Tool:
        if not inspect.iscoroutinefunction(fn):
            raise RegistrationError(f"Tool '{name}' executor must be an async function")
        return Tool(metadata=metadata, execute=fn, validate=validate)

    return deco
