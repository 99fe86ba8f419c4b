# Copyright 2025 Liatrio
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Typed tool definitions and their conversion into MCP tools.

Tool authors write an ordinary function ``handler(ctx, args) -> result``
where ``args`` is a pydantic model (or any type pydantic can validate).
:func:`convert_tool` captures a decoder for the argument type at
registration time and returns a :class:`ToolDescriptor` whose ``invoke``
adapter speaks only untyped payloads::

    class EchoRequest(BaseModel):
        text: str

    async def echo(ctx: RequestContext, req: EchoRequest) -> dict:
        return {"text": req.text}

    descriptor = convert_tool("echo", "Echo the given text", echo)
    result = await descriptor.invoke(ctx, {"text": "hi"})
"""

import inspect
import typing
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Mapping,
    Optional,
    Type,
    TypeVar,
    Union,
)

import pydantic_core
from mcp.types import CallToolResult, TextContent, ToolAnnotations
from pydantic import PydanticUserError, TypeAdapter, ValidationError

from ..context import RequestContext
from ..errors import BindingError, SerializationError, ToolRegistrationError

ArgsT = TypeVar("ArgsT")
ResultT = TypeVar("ResultT")

Handler = Callable[[RequestContext, ArgsT], Union[ResultT, Awaitable[ResultT]]]
InvocationAdapter = Callable[
    [RequestContext, Optional[Mapping[str, Any]]], Awaitable[CallToolResult]
]

# options copied verbatim into the MCP tool annotations
_ANNOTATION_OPTIONS = frozenset(
    {
        "title",
        "read_only_hint",
        "destructive_hint",
        "idempotent_hint",
        "open_world_hint",
    }
)


@dataclass(frozen=True)
class ToolDescriptor:
    """A protocol-visible tool plus the adapter that invokes it."""

    name: str
    description: str
    parameters: Dict[str, Any]
    annotations: ToolAnnotations
    invoke: InvocationAdapter = field(repr=False, compare=False)

    @property
    def read_only(self) -> bool:
        return bool(self.annotations.read_only_hint)


@dataclass(frozen=True)
class Tool(Generic[ArgsT, ResultT]):
    """A typed tool definition, converted on registration."""

    name: str
    description: str
    handler: Handler
    args_type: Optional[Type[ArgsT]] = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def convert(self) -> ToolDescriptor:
        return convert_tool(
            self.name,
            self.description,
            self.handler,
            args_type=self.args_type,
            **self.options,
        )

    def register(self, server) -> ToolDescriptor:
        """Convert the tool and add it to ``server``.

        Conversion failures are programming errors and propagate as
        :class:`ToolRegistrationError`.
        """
        descriptor = self.convert()
        server.add_tool(descriptor)
        return descriptor


def _infer_args_type(name: str, handler: Callable) -> Any:
    try:
        params = list(inspect.signature(handler).parameters.values())
        hints = typing.get_type_hints(handler)
    except (TypeError, ValueError, NameError) as e:
        raise ToolRegistrationError(
            f"cannot inspect handler of tool {name!r}: {e}"
        ) from e

    if len(params) != 2:
        raise ToolRegistrationError(
            f"handler of tool {name!r} must accept (ctx, args), got {len(params)} parameters"
        )
    args_type = hints.get(params[1].name)
    if args_type is None:
        raise ToolRegistrationError(
            f"cannot determine the argument type of tool {name!r}; "
            "annotate the handler or pass args_type"
        )
    return args_type


def _apply_parameter_fragments(
    name: str, schema: Dict[str, Any], parameters: Mapping[str, Any]
) -> None:
    properties = schema.setdefault("properties", {})
    required = list(schema.get("required", []))

    for param, fragment in parameters.items():
        if not isinstance(fragment, Mapping):
            raise ToolRegistrationError(
                f"parameter {param!r} of tool {name!r} must be a mapping"
            )
        fragment = dict(fragment)
        is_required = fragment.pop("required", None)
        properties.setdefault(param, {}).update(fragment)
        if is_required is True and param not in required:
            required.append(param)
        elif is_required is False and param in required:
            required.remove(param)

    if required:
        schema["required"] = required
    else:
        schema.pop("required", None)


def encode_result(value: Any) -> CallToolResult:
    """Encode a handler's return value as an MCP tool result."""
    if isinstance(value, CallToolResult):
        return value
    if value is None:
        return CallToolResult(content=[])

    try:
        text = pydantic_core.to_json(value).decode("utf-8")
    except (pydantic_core.PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError(f"failed to marshal return value: {e}") from e
    return CallToolResult(content=[TextContent(type="text", text=text)])


def convert_tool(
    name: str,
    description: str,
    handler: Handler,
    /,
    args_type: Optional[Type[Any]] = None,
    **options: Any,
) -> ToolDescriptor:
    """Convert a typed handler into a :class:`ToolDescriptor`.

    Base options are applied first (description, ``title=name`` and
    ``idempotent_hint=True``), then ``options`` override or append.

    Args:
        name: External tool name
        description: Human readable description
        handler: ``handler(ctx, args)`` returning a value or awaitable
        args_type: Argument type; inferred from the handler's annotations
            when omitted
        **options: ``title``, ``description``, ``read_only_hint``,
            ``destructive_hint``, ``idempotent_hint``, ``open_world_hint``
            and ``parameters`` (parameter name -> JSON schema fragment,
            where a ``required`` key toggles the required list)

    Raises:
        ToolRegistrationError: the definition or its options are malformed
    """
    if not name:
        raise ToolRegistrationError("tool name must not be empty")
    if not description:
        raise ToolRegistrationError(f"tool {name!r} needs a description")
    if not callable(handler):
        raise ToolRegistrationError(f"handler of tool {name!r} is not callable")

    if args_type is None:
        args_type = _infer_args_type(name, handler)

    annotations: Dict[str, Any] = {"title": name, "idempotent_hint": True}
    parameters: Mapping[str, Any] = {}
    for key, value in options.items():
        if key == "description":
            description = value
        elif key == "parameters":
            parameters = value
        elif key in _ANNOTATION_OPTIONS:
            annotations[key] = value
        else:
            raise ToolRegistrationError(f"unknown option {key!r} for tool {name!r}")

    try:
        tool_annotations = ToolAnnotations(**annotations)
    except ValidationError as e:
        raise ToolRegistrationError(f"invalid annotations for tool {name!r}: {e}") from e

    try:
        decoder = TypeAdapter(args_type)
        schema = decoder.json_schema()
    except PydanticUserError as e:
        raise ToolRegistrationError(
            f"unsupported argument type for tool {name!r}: {e}"
        ) from e

    if schema.get("type") != "object":
        raise ToolRegistrationError(
            f"arguments of tool {name!r} must be an object, got {schema.get('type')!r}"
        )
    if not isinstance(parameters, Mapping):
        raise ToolRegistrationError(f"parameters of tool {name!r} must be a mapping")
    _apply_parameter_fragments(name, schema, parameters)

    async def invoke(
        ctx: RequestContext, arguments: Optional[Mapping[str, Any]]
    ) -> CallToolResult:
        try:
            args = decoder.validate_python(dict(arguments or {}))
        except ValidationError as e:
            raise BindingError(f"failed to bind arguments: {e}") from e

        result = handler(ctx, args)
        if inspect.isawaitable(result):
            result = await result
        return encode_result(result)

    return ToolDescriptor(
        name=name,
        description=description,
        parameters=schema,
        annotations=tool_annotations,
        invoke=invoke,
    )
