"""Rule domain: rule abstraction, script sandbox, native packs, registry."""

from smith_validation.rules.base import (
    NativeRule,
    Rule,
    RuleCategory,
    RuleConfiguration,
    RuleDescriptor,
    RuleState,
    failure_violation,
)
from smith_validation.rules.registry import RuleRegistry
from smith_validation.rules.script import (
    BRIDGE_VERSION,
    AstBridge,
    ScriptRule,
    ViolationSink,
    compile_script_rule,
    load_script_file,
)

__all__ = [
    "BRIDGE_VERSION",
    "AstBridge",
    "NativeRule",
    "Rule",
    "RuleCategory",
    "RuleConfiguration",
    "RuleDescriptor",
    "RuleRegistry",
    "RuleState",
    "ScriptRule",
    "ViolationSink",
    "compile_script_rule",
    "failure_violation",
    "load_script_file",
]
