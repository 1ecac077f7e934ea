"""Server metadata discovery."""

from typing import Optional

import psycopg2
import structlog

from pgsession.config import ConnectionConfig
from pgsession.db.connection import ConnectionManager
from pgsession.db.descriptor import ConnectionDescriptor
from pgsession.db.errors import is_undefined_feature, server_message

logger = structlog.get_logger(__name__)

RESERVED_KEYWORDS_QUERY = "select word from pg_get_keywords() where catcode in ('R','T')"

# Reserved (R) and type or function name (T) keywords of PostgreSQL, for
# servers that lack pg_get_keywords().
RESERVED_KEYWORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric authorization
    between bigint binary bit boolean both case cast char character check
    coalesce collate collation column concurrently constraint create cross
    current_catalog current_date current_role current_schema current_time
    current_timestamp current_user dec decimal default deferrable desc
    distinct do else end except exists extract false fetch float for
    foreign freeze from full grant greatest group grouping having ilike in
    initially inner inout int integer intersect interval into is isnull
    join json lateral leading least left like limit localtime
    localtimestamp national natural nchar none normalize not notnull null
    nullif numeric offset on only or order out outer overlaps overlay
    placing position precision primary real references returning right
    row select session_user setof similar smallint some substring
    symmetric system_user table tablesample then time timestamp to
    trailing treat trim true union unique user using values varchar
    variadic verbose when where window with xmlattributes xmlconcat
    xmlelement xmlexists xmlforest xmlnamespaces xmlparse xmlpi xmlroot
    xmlserialize xmltable
    """.split()
)


class SchemaIntrospector:
    """Reads metadata from the server of an open session."""

    def __init__(self, session: ConnectionManager):
        self.session = session

    def fetch_reserved_keywords(self) -> frozenset[str]:
        """Return the words the server reserves as identifiers.

        Falls back to RESERVED_KEYWORDS when the server has no
        pg_get_keywords() function.
        """
        logger.debug("sql", statement=RESERVED_KEYWORDS_QUERY)
        try:
            with self.session.cursor() as cursor:
                cursor.execute(RESERVED_KEYWORDS_QUERY)
                rows = cursor.fetchall()
        except psycopg2.Error as exc:
            if not is_undefined_feature(exc):
                raise
            logger.warning(
                "reserved_keywords_fallback",
                error=server_message(exc),
                fallback_size=len(RESERVED_KEYWORDS),
                **self.session.log_context(),
            )
            return RESERVED_KEYWORDS

        keywords = frozenset(row[0].lower() for row in rows)
        logger.debug("reserved_keywords_fetched", count=len(keywords))
        return keywords


def list_reserved_keywords(
    descriptor: ConnectionDescriptor,
    config: Optional[ConnectionConfig] = None,
) -> frozenset[str]:
    """Fetch the reserved keywords over a dedicated connection."""
    with ConnectionManager(descriptor, config=config) as session:
        return SchemaIntrospector(session).fetch_reserved_keywords()
