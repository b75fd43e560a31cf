"""
This module implements versioned message handlers and the registries that hold them.

A registry is parameterized once by a `MessageKind` (command or event), which
names the message attribute carrying the handler version. Several versions of
the same handler name may coexist, so historical events keep replaying against
the handler version they were written for.
"""
import inspect
import logging
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import BaseModel, ConfigDict

from .errors import ConfigurationError, ValidationError
from .protocols import SchemaValidator
from .schema import JsonSchemaValidator, check_schema


class MessageKind(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_type: str
    version_property: str

    @property
    def label(self) -> str:
        return self.message_type.capitalize()


COMMAND = MessageKind(message_type="command", version_property="command_version")
EVENT = MessageKind(message_type="event", version_property="event_version")

REQUIRED_FIELDS = ("name", "version", "callback")


async def resolve(result: Any) -> Any:
    """Awaits `result` if a callback handed back an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


class Handler:
    """
    A single named, versioned callback plus the JSON Schema its payload must satisfy.
    Build instances with `Handler.create`, which rejects invalid configuration.
    """

    def __init__(self, kind: MessageKind, config: Mapping[str, Any], validator: SchemaValidator | None = None):
        self.kind = kind
        self.config = dict(config)
        self.name: str = self.config.get("name")
        self.version: int = self.config.get("version")
        self.payload_schema: Dict[str, Any] | None = self.config.get("schema")
        self.callback = self.config.get("callback")
        self._on_complete = self.config.get("on_complete")
        self.validator = validator or JsonSchemaValidator()
        self._is_valid: bool | None = None

    @classmethod
    def create(cls, kind: MessageKind, config: Mapping[str, Any], validator: SchemaValidator | None = None) -> "Handler":
        handler = cls(kind, config, validator)
        errors = handler.validate_config(handler.config)
        if errors:
            raise ValidationError(f"Cannot create {kind.message_type} handler", errors)
        if handler.payload_schema is not None:
            check_schema(handler.payload_schema)
        return handler

    def validate_config(self, config: Mapping[str, Any]) -> List[str]:
        """Returns every problem with `config` at once, rather than the first one."""
        errors = []
        missing = [field for field in REQUIRED_FIELDS if config.get(field) is None]
        if missing:
            errors.append(f"Missing required fields for {self.kind.label} handler: [{','.join(missing)}]")

        version = config.get("version")
        if version is not None and (isinstance(version, bool) or not isinstance(version, int) or version < 1):
            errors.append(f"{self.kind.label} handler version must be a positive integer, got {version!r}")

        callback = config.get("callback")
        if callback is not None and not callable(callback):
            errors.append(f"{self.kind.label} handler callback must be callable")

        on_complete = config.get("on_complete")
        if on_complete is not None and not callable(on_complete):
            errors.append(f"{self.kind.label} handler on_complete must be callable")

        self._is_valid = not errors
        return errors

    def is_valid_handler(self) -> bool:
        if self._is_valid is None:
            self.validate_config(self.config)
        return self._is_valid

    async def validate_message(self, message: Any) -> List[str]:
        """
        Checks that `message` targets this handler and carries a payload matching
        the schema. The version is not checked; the registry already chose it.
        """
        errors = []
        label = self.kind.label
        if message.name != self.name:
            errors.append(f"{label} name ('{message.name}') does not match the handler name ('{self.name}')")

        if message.payload is None:
            errors.append(f"'{label}' is missing a payload object")
        elif self.payload_schema is not None:
            result = await resolve(self.validator.validate(message.payload, self.payload_schema))
            errors.extend(f"Missing {field}" for field in result.missing)
            errors.extend(f"{err.message} - Path: '{err.path}'" for err in result.errors)

        return errors

    async def execute(self, *args: Any) -> Any:
        return await resolve(self.callback(*args))

    async def on_complete(self, *args: Any) -> Any:
        if self._on_complete is not None:
            return await resolve(self._on_complete(*args))
        return None

    def __repr__(self) -> str:
        return f"Handler({self.kind.message_type} {self.name!r} v{self.version})"


class HandlerRegistry:
    """Handlers of one message kind, keyed by name and then by version."""

    def __init__(self, kind: MessageKind, validator: SchemaValidator | None = None):
        self.kind = kind
        self.validator = validator
        self._handlers: Dict[str, Dict[int, Handler]] = {}

    def register(self, config: Mapping[str, Any]) -> Handler:
        handler = Handler.create(self.kind, config, self.validator)
        versions = self._handlers.setdefault(handler.name, {})
        if handler.version in versions:
            raise ConfigurationError(
                f"{self.kind.label} handler '{handler.name}' v{handler.version} is already registered"
            )
        versions[handler.version] = handler
        logging.debug(f"Registered {handler!r}")
        return handler

    def load_handlers(self, configs: Iterable[Mapping[str, Any]]) -> List[Handler]:
        return [self.register(config) for config in configs]

    def get(self, name: str, version: int | None = None) -> Handler | None:
        """An explicit version must match exactly; no version means the highest one."""
        versions = self._handlers.get(name)
        if not versions:
            return None
        if version is None:
            return versions[max(versions)]
        return versions.get(version)

    def get_handler(self, message: Any) -> Handler | None:
        return self.get(message.name, getattr(message, self.kind.version_property, None))

    def has_handler(self, name: str) -> bool:
        return name in self._handlers

    def get_version(self, name: str) -> int | None:
        versions = self._handlers.get(name)
        return max(versions) if versions else None

    def get_handlers(self) -> List[Handler]:
        return [
            versions[version]
            for versions in self._handlers.values()
            for version in sorted(versions)
        ]

    def names(self) -> List[str]:
        return list(self._handlers)
