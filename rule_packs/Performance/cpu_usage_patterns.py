import re

RULE_NAME = "Performance-1.2-CPUUsagePatterns"
CATEGORY = "performance"
SEVERITY = "medium"
CONFIDENCE = 0.65
DESCRIPTION = "Loops, sorts and eager heavy initialisation that tend to burn CPU."

EXPENSIVE = (
    ("Infinite while loop", re.compile(r"\bwhile\s+true\s*\{")),
    ("Nested loops", re.compile(r"\bfor\s+.*\bin\s+.*\{[^}]*\bfor\s+")),
    ("Sorting operations", re.compile(r"\.\s*sorted\s*\(\s*\)")),
    ("Combined filter and sort", re.compile(r"\.\s*filter\s*\{[^}]*\}\s*\.\s*sorted\b")),
)
HEAVY_INIT = ("UIImage(named:", "Data(contentsOf:", "URLSession.shared")
LAZY = re.compile(r"\blazy\s+var\b")


def line_of(text, offset):
    return text.count("\n", 0, offset) + 1


def validate(ast, sink):
    text = ast.raw_source_text()
    for label, pattern in EXPENSIVE:
        matches = list(pattern.finditer(text))
        if not matches:
            continue
        sink.add_violation(
            f"{label}: {len(matches)} occurrence(s)",
            line=line_of(text, matches[0].start()),
            recommendation="Cache results or move the work off the hot path.",
            metadata={"pattern": label, "occurrences": len(matches)},
        )

    if LAZY.search(text):
        return
    offsets = [text.find(marker) for marker in HEAVY_INIT if marker in text]
    if offsets:
        sink.add_violation(
            "Heavy initialization without lazy loading",
            line=line_of(text, min(offsets)),
            recommendation="Defer expensive resources with lazy var or load them on demand.",
            metadata={"pattern": "Heavy initialization"},
        )
