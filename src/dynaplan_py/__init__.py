from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .attributes import (
    Attribute,
    BooleanAttribute,
    CompositeStringAttribute,
    EnumAttribute,
    KeyStringAttribute,
    NumberAttribute,
    StartsWithAttribute,
    StringAttribute,
    StringListAttribute,
    TenantAwareUniqueStringAttribute,
    UniquenessBasedIndexAttribute,
    UniqueStringAttribute,
    attribute_map_from,
)
from .catalog import Index, MainItemMarker, TableCapabilities, TableDefinition
from .errors import (
    AuthenticationFailedError,
    AwsError,
    CapabilityError,
    CommunicationFailedError,
    ConditionFailedError,
    ConflictError,
    ConnectionFailedError,
    DynaplanPyError,
    ExpressionTooComplexError,
    ExpressionTooDeepError,
    FilterTooShortError,
    IdCollisionError,
    InvalidCursorError,
    InvalidValueError,
    QueryRequiresTableScanError,
    SchemaError,
    ThrottlingError,
    TooManyQueriesError,
    TransactionCanceledError,
    TransportError,
    UniquenessConflictError,
    UnknownAttributeError,
    UnknownSortAttributeError,
    UnsupportedFilterTypeError,
    UnsupportedOperatorError,
    UnsupportedSortAttributeError,
    ValidationError,
    VersionConflictError,
)
from .expressions import (
    AttributeExpression,
    AttributeOperator,
    DisjunctiveNormalForm,
    Product,
    and_,
    normalize,
    not_,
    or_,
)
from .filters import FilterCondition, FilterGroup, FilterNot
from .outcome import CapabilityFailure, Conflict, NotFound, Success
from .query import Page, decode_cursor, encode_cursor

if TYPE_CHECKING:
    from .config import DataSourceSettings, create_boto3_config, create_dynamodb_client
    from .executor import DynamoDBExecutor
    from .planner import (
        BetweenRange,
        BinaryRange,
        KeyCondition,
        QueryPlan,
        QueryPlanner,
        UsingQueries,
        UsingScan,
    )
    from .request_builder import DynamoDBQuery, DynamoDBScan, build_query, build_scan
    from .table import Table
    from .uniqueness import UniqueEntitySchema, UniqueItemStore, UniquenessUpdateBuilder


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {"DataSourceSettings", "create_boto3_config", "create_dynamodb_client"}:
        from . import config

        return getattr(config, name)
    if name == "DynamoDBExecutor":
        from .executor import DynamoDBExecutor

        return DynamoDBExecutor
    if name in {
        "BetweenRange",
        "BinaryRange",
        "KeyCondition",
        "QueryPlan",
        "QueryPlanner",
        "UsingQueries",
        "UsingScan",
    }:
        from . import planner

        return getattr(planner, name)
    if name in {"DynamoDBQuery", "DynamoDBScan", "build_query", "build_scan"}:
        from . import request_builder

        return getattr(request_builder, name)
    if name == "Table":
        from .table import Table

        return Table
    if name in {"UniqueEntitySchema", "UniqueItemStore", "UniquenessUpdateBuilder"}:
        from . import uniqueness

        return getattr(uniqueness, name)
    raise AttributeError(name)


__all__ = [
    "Attribute",
    "AttributeExpression",
    "AttributeOperator",
    "AuthenticationFailedError",
    "AwsError",
    "BetweenRange",
    "BinaryRange",
    "BooleanAttribute",
    "CapabilityError",
    "CapabilityFailure",
    "CommunicationFailedError",
    "CompositeStringAttribute",
    "ConditionFailedError",
    "Conflict",
    "ConflictError",
    "ConnectionFailedError",
    "DataSourceSettings",
    "DisjunctiveNormalForm",
    "DynamoDBExecutor",
    "DynamoDBQuery",
    "DynamoDBScan",
    "DynaplanPyError",
    "EnumAttribute",
    "ExpressionTooComplexError",
    "ExpressionTooDeepError",
    "FilterCondition",
    "FilterGroup",
    "FilterNot",
    "FilterTooShortError",
    "IdCollisionError",
    "Index",
    "InvalidCursorError",
    "InvalidValueError",
    "KeyCondition",
    "KeyStringAttribute",
    "MainItemMarker",
    "NotFound",
    "NumberAttribute",
    "Page",
    "Product",
    "QueryPlan",
    "QueryPlanner",
    "QueryRequiresTableScanError",
    "SchemaError",
    "StartsWithAttribute",
    "StringAttribute",
    "StringListAttribute",
    "Success",
    "Table",
    "TableCapabilities",
    "TableDefinition",
    "TenantAwareUniqueStringAttribute",
    "ThrottlingError",
    "TooManyQueriesError",
    "TransactionCanceledError",
    "TransportError",
    "UniqueEntitySchema",
    "UniqueItemStore",
    "UniqueStringAttribute",
    "UniquenessBasedIndexAttribute",
    "UniquenessConflictError",
    "UniquenessUpdateBuilder",
    "UnknownAttributeError",
    "UnknownSortAttributeError",
    "UnsupportedFilterTypeError",
    "UnsupportedOperatorError",
    "UnsupportedSortAttributeError",
    "UsingQueries",
    "UsingScan",
    "ValidationError",
    "VersionConflictError",
    "__repo_version__",
    "__version__",
    "and_",
    "attribute_map_from",
    "build_query",
    "build_scan",
    "create_boto3_config",
    "create_dynamodb_client",
    "decode_cursor",
    "encode_cursor",
    "normalize",
    "not_",
    "or_",
]
