import re

RULE_NAME = "TCA-2.1-ErrorHandling"
CATEGORY = "tca"
SEVERITY = "medium"
CONFIDENCE = 0.7
DESCRIPTION = "Reducers that run effects should handle the errors those effects can throw."

EFFECT = re.compile(r"(?:\bEffect)?\.run\s*[({]|\.eraseToEffect\(\)")
ERROR_HANDLING = re.compile(r"\b(?:catch|try|Result)\b")


def validate(ast, sink):
    text = ast.raw_source_text()
    if "reduce" not in text and "Reducer" not in text:
        return
    if ERROR_HANDLING.search(text):
        return
    for number, line in enumerate(ast.lines(), start=1):
        if EFFECT.search(line):
            sink.add_violation(
                "Effects run without error handling",
                line=number,
                recommendation=(
                    "Handle failures inside the effect with do/catch, the run(catch:) "
                    "parameter or a Result-carrying action."
                ),
            )
            return
