from __future__ import annotations


class DynaplanPyError(Exception):
    pass


class ValidationError(DynaplanPyError):
    pass


class InvalidCursorError(ValidationError):
    pass


class ConditionFailedError(DynaplanPyError):
    pass


class TransactionCanceledError(DynaplanPyError):
    def __init__(self, *, message: str, reason_codes: tuple[str, ...]) -> None:
        super().__init__(message)
        self.reason_codes = reason_codes


class AwsError(DynaplanPyError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class SchemaError(DynaplanPyError):
    """A stored item lacks an attribute the engine relies on."""

    def __init__(self, attribute_name: str, message: str | None = None) -> None:
        super().__init__(message or f"item is missing required attribute '{attribute_name}'")
        self.attribute_name = attribute_name


# Capability errors: the request cannot be served by the catalog or the policy.


class CapabilityError(DynaplanPyError):
    pass


class UnsupportedOperatorError(CapabilityError):
    def __init__(self, operator: str) -> None:
        super().__init__(f"attribute operator '{operator}' is not supported")
        self.operator = operator


class UnsupportedFilterTypeError(CapabilityError):
    def __init__(self, filter_type: str) -> None:
        super().__init__(f"unsupported filter type '{filter_type}'")
        self.filter_type = filter_type


class UnknownAttributeError(CapabilityError):
    def __init__(self, name: str) -> None:
        super().__init__(f"unknown attribute '{name}'")
        self.name = name


class InvalidValueError(CapabilityError):
    def __init__(self, attribute_name: str, value: object) -> None:
        super().__init__(f"invalid value '{value}' for attribute '{attribute_name}'")
        self.attribute_name = attribute_name
        self.value = value


class UnknownSortAttributeError(CapabilityError):
    def __init__(self, name: str) -> None:
        super().__init__(f"unknown attribute '{name}' used for sorting")
        self.name = name


class UnsupportedSortAttributeError(CapabilityError):
    def __init__(self, name: str) -> None:
        super().__init__(f"attribute '{name}' does not support sorting")
        self.name = name


class FilterTooShortError(CapabilityError):
    def __init__(self, length: int, minimum: int) -> None:
        super().__init__(f"filter has {length} characters and the minimum is {minimum}")
        self.length = length
        self.minimum = minimum


class QueryRequiresTableScanError(CapabilityError):
    def __init__(self) -> None:
        super().__init__("query requires a table scan, which is not allowed")


class TooManyQueriesError(CapabilityError):
    def __init__(self, queries: int, max_queries: int) -> None:
        super().__init__(f"query requires {queries} table queries and the allowed maximum is {max_queries}")
        self.queries = queries
        self.max_queries = max_queries


class ExpressionTooComplexError(CapabilityError):
    def __init__(self, products: int, max_products: int) -> None:
        super().__init__(f"filter expands to {products} conjunctions and the allowed maximum is {max_products}")
        self.products = products
        self.max_products = max_products


class ExpressionTooDeepError(ExpressionTooComplexError):
    def __init__(self, max_nesting: int) -> None:
        CapabilityError.__init__(self, f"filter nests deeper than the allowed maximum of {max_nesting} levels")
        self.max_nesting = max_nesting


# Conflict errors: uniqueness violations and lost optimistic-concurrency races.


class ConflictError(DynaplanPyError):
    pass


class UniquenessConflictError(ConflictError):
    def __init__(self, attribute_name: str) -> None:
        super().__init__(f"unique attribute '{attribute_name}' already has this value")
        self.attribute_name = attribute_name


class VersionConflictError(ConflictError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item '{item_id}' was modified concurrently")
        self.item_id = item_id


class IdCollisionError(DynaplanPyError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"an item with id '{item_id}' already exists")
        self.item_id = item_id


# Transport errors are propagated unchanged by the core.


class TransportError(AwsError):
    pass


class ConnectionFailedError(TransportError):
    pass


class AuthenticationFailedError(TransportError):
    pass


class ThrottlingError(TransportError):
    pass


class CommunicationFailedError(TransportError):
    pass
