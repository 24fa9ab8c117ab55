import re

RULE_NAME = "Performance-1.4-ConcurrencyIssues"
CATEGORY = "performance"
SEVERITY = "high"
CONFIDENCE = 0.7
DESCRIPTION = "Shared mutable state touched from several threads without synchronisation."

MUTABLE_VAR = re.compile(
    r"^\s*(?:(?:private|fileprivate|internal|public)\s+)?var\s+\w+[^=\n]*=", re.M
)
CLASS = re.compile(r"\bclass\s+[A-Z]\w*")
SYNCHRONISATION = re.compile(r"DispatchQueue|NSLock|NSRecursiveLock|\bactor\b|@MainActor")
RECOMMENDATION = "Protect shared mutable state with an actor, @MainActor, a serial queue or a lock."


def line_of(text, offset):
    return text.count("\n", 0, offset) + 1


def validate(ast, sink):
    text = ast.raw_source_text()

    if "@Published" in text and "DispatchQueue.main.async" in text and "actor" not in text:
        sink.add_violation(
            "Non-atomic @Published property access across threads",
            line=line_of(text, text.find("DispatchQueue.main.async")),
            recommendation=RECOMMENDATION,
        )

    declared = CLASS.search(text)
    if declared is None or SYNCHRONISATION.search(text):
        return
    mutable = MUTABLE_VAR.findall(text)
    if len(mutable) > 2:
        sink.add_violation(
            f"Found {len(mutable)} mutable variables without explicit synchronization",
            line=line_of(text, declared.start()),
            recommendation=RECOMMENDATION,
            metadata={"mutable_count": len(mutable)},
        )
