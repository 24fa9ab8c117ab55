"""Rule abstraction: descriptors, lifecycle states, and the native rule base class."""

from __future__ import annotations

import dataclasses
import enum
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, TypeVar, runtime_checkable

from smith_validation.errors import ConfigurationError
from smith_validation.violations import ArchitecturalViolation, Severity, ViolationCollection

if TYPE_CHECKING:
    from smith_validation.context.source_context import SourceContext

# Confidence assigned to findings synthesised from a failing rule.
SYNTHETIC_FAILURE_CONFIDENCE: float = 0.1


class RuleState(enum.Enum):
    """Lifecycle: UNLOADED -> LOADED -> ACTIVE <-> DEACTIVATED, or LOAD_FAILED."""

    UNLOADED = "unloaded"
    LOADED = "loaded"
    ACTIVE = "active"
    DEACTIVATED = "deactivated"
    LOAD_FAILED = "load_failed"


class RuleCategory(str, enum.Enum):
    ARCHITECTURE = "architecture"
    TCA = "tca"
    SWIFTUI = "swiftui"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    SECURITY = "security"
    TESTING = "testing"
    GENERAL = "general"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | RuleCategory) -> RuleCategory:
        if isinstance(value, RuleCategory):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = sorted(c.value for c in cls)
            msg = f"invalid category '{value}', must be one of {names}"
            raise ValueError(msg) from None


@dataclass(frozen=True)
class RuleDescriptor:
    """Catalog entry for one rule."""

    name: str
    category: RuleCategory
    default_severity: Severity
    default_confidence: float
    version: str = "1.0.0"
    origin: str = ""  # "native:<module>.<Class>", a script path, or "<store:name>"
    pack: str = ""
    description: str = ""
    rule: Rule | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            msg = "rule name must be a non-empty string"
            raise ValueError(msg)
        if not (0.0 <= float(self.default_confidence) <= 1.0):
            msg = f"Rule '{self.name}': default confidence must be between 0.0 and 1.0"
            raise ValueError(msg)

    @property
    def is_script(self) -> bool:
        return not self.origin.startswith("native:")

    def with_rule(self, rule: Rule | None, **changes: Any) -> RuleDescriptor:
        return dataclasses.replace(self, rule=rule, **changes)


@runtime_checkable
class Rule(Protocol):
    """Anything with a descriptor and ``validate(context) -> ViolationCollection``."""

    @property
    def descriptor(self) -> RuleDescriptor: ...

    def validate(self, context: SourceContext) -> ViolationCollection: ...


def failure_violation(
    rule_name: str, file: str, exc: BaseException, *, phase: str = "execution"
) -> ArchitecturalViolation:
    """Synthetic low-confidence finding standing in for a rule that raised."""
    return ArchitecturalViolation(
        severity=Severity.LOW,
        rule=rule_name,
        file=file,
        line=0,
        message=f"Rule '{rule_name}' failed during {phase}: {type(exc).__name__}: {exc}",
        recommendation="Fix or deactivate the failing rule; its findings for this file are missing.",
        metadata={"synthetic": "true", "error_type": type(exc).__name__},
        automation_confidence=SYNTHETIC_FAILURE_CONFIDENCE,
    )


# ---------------------------------------------------------------------------
# Native rules
# ---------------------------------------------------------------------------

ConfigT = TypeVar("ConfigT", bound="RuleConfiguration")


@dataclass(frozen=True)
class RuleConfiguration:
    """Base for typed native-rule configuration.

    Subclasses add threshold fields; ``severity`` and ``confidence`` are
    shared by every rule.
    """

    severity: Severity = Severity.MEDIUM
    confidence: float = 0.5

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "severity", Severity.parse(self.severity))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if not (0.0 <= float(self.confidence) <= 1.0):
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ConfigurationError(msg)
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.type in ("int", int):
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    msg = f"'{f.name}' must be a non-negative integer, got {value!r}"
                    raise ConfigurationError(msg)
            elif f.type in ("float", float):
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    msg = f"'{f.name}' must be a non-negative number, got {value!r}"
                    raise ConfigurationError(msg)

    @classmethod
    def from_mapping(cls: type[ConfigT], data: Mapping[str, Any], *, rule_name: str) -> ConfigT:
        """Build a configuration from an option map, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Rule '{rule_name}': unknown option(s) {unknown}, expected some of {sorted(known)}"
            raise ConfigurationError(msg)
        try:
            return cls(**dict(data))
        except ConfigurationError as exc:
            raise ConfigurationError(f"Rule '{rule_name}': {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Rule '{rule_name}': {exc}") from exc


class NativeRule(ABC):
    """Rule implemented in Python against the full :class:`SourceContext`.

    Subclasses set the class attributes and implement :meth:`check`.
    """

    name: ClassVar[str]
    category: ClassVar[RuleCategory]
    description: ClassVar[str] = ""
    version: ClassVar[str] = "1.0.0"
    Configuration: ClassVar[type[RuleConfiguration]] = RuleConfiguration

    def __init__(self, configuration: RuleConfiguration | None = None) -> None:
        self.configuration = configuration if configuration is not None else self.Configuration()
        if not isinstance(self.configuration, self.Configuration):
            msg = (
                f"Rule '{self.name}': expected {self.Configuration.__name__}, "
                f"got {type(self.configuration).__name__}"
            )
            raise ConfigurationError(msg)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> NativeRule:
        return cls(cls.Configuration.from_mapping(options, rule_name=cls.name))

    @property
    def descriptor(self) -> RuleDescriptor:
        return RuleDescriptor(
            name=self.name,
            category=self.category,
            default_severity=self.configuration.severity,
            default_confidence=self.configuration.confidence,
            version=self.version,
            origin=f"native:{type(self).__module__}.{type(self).__qualname__}",
            description=self.description,
            rule=self,
        )

    def violation(
        self,
        context: SourceContext,
        *,
        line: int,
        message: str,
        recommendation: str = "",
        metadata: Mapping[str, str] | None = None,
        severity: Severity | None = None,
    ) -> ArchitecturalViolation:
        return ArchitecturalViolation(
            severity=severity if severity is not None else self.configuration.severity,
            rule=self.name,
            file=context.path,
            line=line,
            message=message,
            recommendation=recommendation,
            metadata=metadata or {},
            automation_confidence=self.configuration.confidence,
        )

    def validate(self, context: SourceContext) -> ViolationCollection:
        return ViolationCollection(self.check(context))

    @abstractmethod
    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        """Return the findings for one file."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.configuration!r})"
