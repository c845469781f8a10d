"""Positional parameter binding for raw SQL text.

Statements are written with ``?`` placeholders and bound positionally, the
first argument to the first placeholder. SQLAlchemy's ``text()`` construct
binds by name, so each placeholder is rewritten to ``:p1``, ``:p2`` and so on.
Placeholders inside quoted literals and identifiers are left alone.
"""

import re
from collections.abc import Sequence
from typing import Final

from sqlalchemy import TextClause, text

from src.core.exceptions import StatementBindingError
from src.core.types import SqlArgument

# Quoted literals/identifiers are matched first so a '?' inside them is skipped
_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|\?"""
)
BIND_PREFIX: Final[str] = "p"


def bind_positional(
    sql: str, arguments: Sequence[SqlArgument]
) -> tuple[TextClause, dict[str, SqlArgument]]:
    """Rewrite ``?`` placeholders to named binds and pair them with arguments.

    Args:
        sql: SQL text using ``?`` placeholders.
        arguments: Values for the placeholders, in order.

    Returns:
        tuple[TextClause, dict[str, SqlArgument]]: The executable clause and
            its bind parameters keyed ``p1``..``pN``.

    Raises:
        StatementBindingError: If the number of placeholders and arguments differ.

    Example:
        >>> clause, params = bind_positional("SELECT * FROM t WHERE id = ?", ["a"])
        >>> params
        {'p1': 'a'}
    """
    index = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal index
        token = match.group(0)
        if token != "?":
            return token
        index += 1
        return f":{BIND_PREFIX}{index}"

    rewritten = _TOKEN_PATTERN.sub(_replace, sql)

    if index != len(arguments):
        raise StatementBindingError(sql, index, len(arguments))

    params = {
        f"{BIND_PREFIX}{position}": value
        for position, value in enumerate(arguments, start=1)
    }
    return text(rewritten), params
