import re

RULE_NAME = "Performance-1.1-MemoryManagement"
CATEGORY = "performance"
SEVERITY = "medium"
CONFIDENCE = 0.75
DESCRIPTION = "Closures nested in a block that use self strongly can form retain cycles."

NESTED_CLOSURE = re.compile(r"\{[^{}]*\{[^{}]*self[^{}]*\}[^{}]*\}")
WEAK_CAPTURE = re.compile(r"\[\s*(?:weak|unowned)\s+self\s*\]")


def validate(ast, sink):
    text = ast.raw_source_text()
    for match in NESTED_CLOSURE.finditer(text):
        block = match.group(0)
        if "self." not in block or WEAK_CAPTURE.search(block):
            continue
        sink.add_violation(
            "Closure captures self strongly and may create a retain cycle",
            line=text.count("\n", 0, match.start()) + 1,
            recommendation="Capture [weak self] or [unowned self] in the closure.",
        )
