"""Session settings (GUCs): sanitizing and applying them."""

import re
from enum import Enum
from typing import Iterable, NamedTuple

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_APPLICATION_NAME = "pgsession"

UTF8_ALIASES = {"utf8", "utf-8"}

# plain and extension-qualified names, e.g. work_mem or auto_explain.log_min_duration
GUC_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


class GucEntry(NamedTuple):
    name: str
    value: str

    def is_named(self, name: str) -> bool:
        return self.name.lower() == name.lower()


class GucScope(str, Enum):
    SESSION = "session"
    TRANSACTION = "transaction"


def sanitize(
    entries: Iterable[tuple[str, str]],
    application_name: str = DEFAULT_APPLICATION_NAME,
) -> list[GucEntry]:
    """Normalize user supplied session settings.

    The result always starts with ``client_encoding = utf8`` and carries
    exactly one ``application_name``, the caller's if any.
    """
    result = [GucEntry("client_encoding", "utf8")]
    has_application_name = False

    for name, value in entries:
        entry = GucEntry(str(name), str(value))

        if entry.is_named("client_encoding"):
            if entry.value.lower() not in UTF8_ALIASES:
                logger.warning(
                    "guc_ignored",
                    name=entry.name,
                    value=entry.value,
                    reason="client_encoding is always utf8",
                )
            continue

        if entry.is_named("application_name"):
            if has_application_name:
                logger.debug("guc_duplicate_ignored", name=entry.name, value=entry.value)
                continue
            has_application_name = True

        result.append(entry)

    if not has_application_name:
        result.append(GucEntry("application_name", application_name))

    return result


def quote_guc_value(entry: GucEntry) -> str:
    # search_path is a list of identifiers, quoting would make it one name
    if entry.is_named("search_path"):
        return entry.value
    return "'{}'".format(entry.value.replace("'", "''"))


def set_statement(entry: GucEntry, scope: GucScope = GucScope.SESSION) -> str:
    if not GUC_NAME_PATTERN.fullmatch(entry.name):
        raise ValueError(f"Invalid setting name: {entry.name!r}")
    local = "LOCAL " if scope is GucScope.TRANSACTION else ""
    return f"SET {local}{entry.name} TO {quote_guc_value(entry)}"


def apply(entries: Iterable[GucEntry], session, scope: GucScope = GucScope.SESSION) -> None:
    """Issue one SET statement per entry on ``session``.

    Errors are not caught here.
    """
    with session.cursor() as cursor:
        for entry in entries:
            statement = set_statement(GucEntry(*entry), scope)
            logger.debug("sql", statement=statement)
            cursor.execute(statement)
