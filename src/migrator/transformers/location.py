"""Transformers and tasks for the location delimitation hierarchy.

Regions feed districts, districts feed councils, and councils feed wards.
Each level resolves its parent's destination id from the parent's code
through the reference cache, so the levels run as consecutive priority groups.
"""

from datetime import datetime
from typing import Dict, List, Optional

from ..models.migration import (
    MigrationTask,
    PaginationStrategy,
    Resolver,
    ResolverSpec,
    ResolvingTransform,
    ResumeStrategy,
    Row,
    SimpleTransform,
)
from ..utils.data_helpers import safe_boolean, safe_integer, safe_string
from ..utils.query_loader import load_query_with_env


REGION_TABLE = "crvs_global.tbl_delimitation_region"
DISTRICT_TABLE = "crvs_global.tbl_delimitation_district"
COUNCIL_TABLE = "crvs_global.tbl_delimitation_council"
WARD_TABLE = "crvs_global.tbl_delimitation_ward"

RESOLVERS = [
    ResolverSpec(name="region", table=REGION_TABLE),
    ResolverSpec(name="district", table=DISTRICT_TABLE),
    ResolverSpec(name="council", table=COUNCIL_TABLE),
]

# Resolvers each destination table's transform relies on
TABLE_RESOLVERS: Dict[str, List[str]] = {
    DISTRICT_TABLE: ["region"],
    COUNCIL_TABLE: ["district"],
    WARD_TABLE: ["council", "district"],
}


def _resolve(resolvers: Dict[str, Resolver], name: str, code) -> Optional[int]:
    resolver = resolvers.get(name)
    if resolver is None:
        return None
    return resolver(safe_string(code))


def _audit_fields() -> Row:
    now = datetime.now()
    return {"created_at": now, "updated_at": now, "deleted": False}


def region_transformer(row: Row) -> Row:
    return {
        "code": safe_string(row.get("CODE")),
        "name": safe_string(row.get("NAME")),
        "post_code": safe_string(row.get("POST_CODE")),
        "intl_codes": safe_string(row.get("INTL_CODES")),
        "active": safe_boolean(row.get("ACTIVE")),
        "uuid": safe_string(row.get("ID")),
        **_audit_fields(),
    }


def district_transformer(row: Row, resolvers: Dict[str, Resolver]) -> Row:
    return {
        "code": safe_string(row.get("CODE")),
        "name": safe_string(row.get("NAME")),
        "post_code": safe_string(row.get("POST_CODE")),
        "active": safe_boolean(row.get("ACTIVE")),
        "uuid": safe_string(row.get("ID")),
        "region_id": _resolve(resolvers, "region", row.get("REGION_CODE")),
        **_audit_fields(),
    }


def council_transformer(row: Row, resolvers: Dict[str, Resolver]) -> Row:
    return {
        "code": safe_string(row.get("CODE")),
        "name": safe_string(row.get("NAME")),
        "post_code": safe_string(row.get("POST_CODE")),
        "mvc_uuid": safe_string(row.get("MVC_UUID")),
        "active": safe_boolean(row.get("ACTIVE")),
        "uuid": safe_string(row.get("ID")),
        "district_id": _resolve(resolvers, "district", row.get("DISTRICT_CODE")),
        "district": safe_string(row.get("DISTRICT_CODE")),
        **_audit_fields(),
    }


def ward_transformer(row: Row, resolvers: Dict[str, Resolver]) -> Row:
    active = safe_boolean(row.get("ACTIVE"))
    return {
        "ward_id": safe_integer(row.get("ID")),
        "code": safe_string(row.get("CODE")),
        "ward_name": safe_string(row.get("NAME")),
        "post_code": safe_string(row.get("POST_CODE")),
        "is_active": active,
        "active": active,
        "uuid": safe_string(row.get("ID")),
        "council_id": _resolve(resolvers, "council", row.get("COUNCIL_CODE")),
        "district": _resolve(resolvers, "district", row.get("DISTRICT_CODE")),
        "council": safe_string(row.get("COUNCIL_CODE")),
        **_audit_fields(),
    }


def location_tasks(
    resume_strategy: ResumeStrategy = ResumeStrategy.SKIP_EXISTING,
    include_wards: bool = True,
) -> List[MigrationTask]:
    """Tasks for the location hierarchy, one priority level per depth."""
    common = {
        "resume_strategy": resume_strategy,
        "natural_key": ["code"],
        "pagination_strategy": PaginationStrategy.ROWNUM,
        "max_concurrent_batches": 1,
    }

    tasks = [
        MigrationTask(
            source_query=load_query_with_env("regions.sql"),
            target_table=REGION_TABLE,
            transform=SimpleTransform(region_transformer),
            priority=1,
            **common,
        ),
        MigrationTask(
            source_query=load_query_with_env("districts.sql"),
            target_table=DISTRICT_TABLE,
            transform=ResolvingTransform(district_transformer),
            priority=2,
            depends_on=[REGION_TABLE],
            **common,
        ),
        MigrationTask(
            source_query=load_query_with_env("councils.sql"),
            target_table=COUNCIL_TABLE,
            transform=ResolvingTransform(council_transformer),
            priority=3,
            depends_on=[DISTRICT_TABLE],
            **common,
        ),
    ]

    if include_wards:
        tasks.append(
            MigrationTask(
                source_query=load_query_with_env("wards.sql"),
                target_table=WARD_TABLE,
                transform=ResolvingTransform(ward_transformer),
                priority=4,
                depends_on=[COUNCIL_TABLE, DISTRICT_TABLE],
                **common,
            )
        )

    return tasks
