"""Named placeholder support on top of PostgreSQL positional parameters."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RewrittenQuery:
    """SQL with ``:name`` placeholders replaced by ``$n`` parameters."""

    sql: str
    names: tuple[str, ...]

    def position(self, name: str) -> int | None:
        """Zero-based parameter index for ``name`` (leading colon optional)."""

        key = name[1:] if name.startswith(":") else name
        try:
            return self.names.index(key)
        except ValueError:
            return None


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def rewrite_named(sql: str) -> RewrittenQuery:
    """Translate ``:name`` placeholders to ``$1``, ``$2`` ...

    String literals, quoted identifiers, dollar-quoted bodies, comments and
    ``::`` casts are copied through untouched. A name used several times maps
    to a single parameter.
    """

    out: list[str] = []
    names: list[str] = []
    index: dict[str, int] = {}
    length = len(sql)
    i = 0
    while i < length:
        char = sql[i]
        if char == "'":
            escaped = i > 0 and sql[i - 1] in "eE" and (i < 2 or not _is_name_char(sql[i - 2]))
            end = _skip_quoted(sql, i, "'", backslash=escaped)
        elif char == '"':
            end = _skip_quoted(sql, i, '"', backslash=False)
        elif char == "-" and sql.startswith("--", i):
            newline = sql.find("\n", i)
            end = length if newline == -1 else newline + 1
        elif char == "/" and sql.startswith("/*", i):
            end = _skip_block_comment(sql, i)
        elif char == "$" and (i == 0 or not _is_name_char(sql[i - 1])):
            end = _skip_dollar_quoted(sql, i)
        elif char == ":" and sql.startswith("::", i):
            end = i + 2
        elif char == ":" and i + 1 < length and _is_name_start(sql[i + 1]):
            j = i + 2
            while j < length and _is_name_char(sql[j]):
                j += 1
            name = sql[i + 1 : j]
            if name not in index:
                names.append(name)
                index[name] = len(names)
            out.append(f"${index[name]}")
            i = j
            continue
        else:
            end = i + 1
        out.append(sql[i:end])
        i = end
    return RewrittenQuery(sql="".join(out), names=tuple(names))


def _skip_quoted(sql: str, start: int, quote: str, *, backslash: bool) -> int:
    i = start + 1
    length = len(sql)
    while i < length:
        char = sql[i]
        if backslash and char == "\\":
            i += 2
            continue
        if char == quote:
            if i + 1 < length and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return length


def _skip_block_comment(sql: str, start: int) -> int:
    depth = 0
    i = start
    length = len(sql)
    while i < length:
        if sql.startswith("/*", i):
            depth += 1
            i += 2
        elif sql.startswith("*/", i):
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return length


def _skip_dollar_quoted(sql: str, start: int) -> int:
    end_tag = sql.find("$", start + 1)
    if end_tag == -1:
        return start + 1
    tag = sql[start : end_tag + 1]
    body = tag[1:-1]
    # "$1" style parameters are not quote tags.
    if body and (not _is_name_start(body[0]) or not all(_is_name_char(c) for c in body)):
        return start + 1
    close = sql.find(tag, end_tag + 1)
    if close == -1:
        return len(sql)
    return close + len(tag)


__all__ = ["RewrittenQuery", "rewrite_named"]
