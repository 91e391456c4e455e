"""Repair engine: closes truncated JSON text into a parseable candidate.

Steps, applied in order to the tail-trimmed text:
  1. Drop trailing '...' truncation markers
  2. Drop trailing incomplete tokens (, : . whitespace)
  3. Odd number of unescaped quotes → cut back to the last unescaped quote
  4. Dangling quoted token after { , [ → drop it (half-written property name)
  5. Append closers for every '{' / '[' still open, innermost first

The result is best-effort: it may still fail to decode, the parser decides
what to do next. repair() never raises.
"""

ELLIPSIS = "..."
_OPENERS = {"{": "}", "[": "]"}


def is_escaped(text: str, index: int) -> bool:
    """True if the character at index is preceded by an odd run of backslashes."""
    backslashes = 0
    i = index - 1
    while i >= 0 and text[i] == "\\":
        backslashes += 1
        i -= 1
    return backslashes % 2 == 1


def count_unescaped_quotes(text: str) -> int:
    count = 0
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            count += 1
    return count


def last_unescaped_quote(text: str, before: int | None = None) -> int:
    """Index of the last unescaped quote strictly before `before`, or -1."""
    i = (len(text) if before is None else before) - 1
    while i >= 0:
        if text[i] == '"' and not is_escaped(text, i):
            return i
        i -= 1
    return -1


def _rstrip_chars(text: str, chars: str) -> str:
    """Strip trailing whitespace and any of `chars`, repeatedly."""
    end = len(text)
    while end > 0 and (text[end - 1] in chars or text[end - 1].isspace()):
        end -= 1
    return text[:end]


def closers_for(text: str) -> str:
    """Closing brackets needed to balance every unmatched opener in text."""
    stack: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in _OPENERS:
            stack.append(ch)
        elif stack and ch == _OPENERS[stack[-1]]:
            stack.pop()

    return "".join(_OPENERS[opener] for opener in reversed(stack))


def repair(text: str | None) -> str | None:
    """Produce a syntactically closed candidate from truncated text.

    Returns None when nothing usable is left.
    """
    if text is None or not text.strip():
        return None

    current = text.rstrip()
    while current.endswith(ELLIPSIS):
        current = current[: -len(ELLIPSIS)]

    current = _rstrip_chars(current, ",:.")

    # An open string was cut mid-value
    if count_unescaped_quotes(current) % 2 == 1:
        last_quote = last_unescaped_quote(current)
        if last_quote > 0:
            current = current[:last_quote]
        current = _rstrip_chars(current, ",:")

    # A property name with no value after it
    if current.endswith('"'):
        open_quote = last_unescaped_quote(current, before=len(current) - 1)
        if open_quote > 0:
            before = current[:open_quote].rstrip()
            if before and before[-1] in "{,[":
                current = _rstrip_chars(current[:open_quote], ",")

    current += closers_for(current)
    return current or None
