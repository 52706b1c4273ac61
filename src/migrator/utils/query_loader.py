"""Loading of source SQL queries from files."""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..core.exceptions import ConfigurationError


QUERY_DIR = Path(__file__).resolve().parent.parent / "queries"

_LITERAL_OR_COMMENT = re.compile(r"('(?:[^']|'')*')|--[^\n]*")


def load_query(
    filename: str,
    variables: Optional[Dict[str, str]] = None,
    query_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Read a query file, substitute ``{{VAR}}`` placeholders and collapse whitespace."""
    path = Path(query_dir or QUERY_DIR) / filename
    try:
        query = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to load query from {filename}: {e}") from e

    # Drop line comments before newlines are collapsed; quoted literals are kept whole
    query = _LITERAL_OR_COMMENT.sub(lambda m: m.group(1) or "", query)

    for key, value in (variables or {}).items():
        query = query.replace(f"{{{{{key}}}}}", value)

    return re.sub(r"\s+", " ", query.strip()).rstrip(";")


def load_query_with_env(
    filename: str,
    default_vars: Optional[Dict[str, str]] = None,
    query_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Load a query with the migration date window taken from the environment."""
    variables = {
        "START_DATE": os.getenv("MIGRATION_START_DATE", "01-JANUARY-2025"),
        "END_DATE": os.getenv("MIGRATION_END_DATE", "31-DECEMBER-2025"),
        **(default_vars or {}),
    }
    return load_query(filename, variables, query_dir)


def available_queries(query_dir: Optional[Union[str, Path]] = None) -> List[str]:
    directory = Path(query_dir or QUERY_DIR)
    if not directory.is_dir():
        return []
    return sorted(p.stem for p in directory.glob("*.sql"))
