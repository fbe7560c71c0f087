from __future__ import annotations

from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from .errors import (
    AuthenticationFailedError,
    CommunicationFailedError,
    ConditionFailedError,
    ConnectionFailedError,
    ThrottlingError,
    TransactionCanceledError,
    ValidationError,
)

_AUTHENTICATION_CODES = frozenset(
    {
        "UnrecognizedClientException",
        "InvalidSignatureException",
        "ExpiredTokenException",
        "MissingAuthenticationTokenException",
        "AccessDeniedException",
    }
)

_THROTTLING_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "ThrottlingException",
    }
)


def _code_and_message(err: ClientError) -> tuple[str, str]:
    code = str(err.response.get("Error", {}).get("Code", ""))
    message = str(err.response.get("Error", {}).get("Message", ""))
    return code, message


def map_client_error(err: ClientError) -> Exception:
    code, message = _code_and_message(err)
    status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message)
    if code == "ValidationException":
        return ValidationError(message)
    if code in _AUTHENTICATION_CODES:
        return AuthenticationFailedError(code=code, message=message or str(err))
    if code in _THROTTLING_CODES:
        return ThrottlingError(code=code, message=message or str(err))
    if isinstance(status, int) and status >= 500:
        return ConnectionFailedError(code=code or "ServiceError", message=message or str(err))

    return CommunicationFailedError(code=code or "UnknownError", message=message or str(err))


def map_transaction_error(err: ClientError) -> Exception:
    code, message = _code_and_message(err)

    if code == "TransactionCanceledException":
        reasons_raw = err.response.get("CancellationReasons") or []
        # Positional: one entry per submitted action, "None" where the action was fine.
        reason_codes = tuple(
            str(reason.get("Code") or "None") if isinstance(reason, dict) else "None" for reason in reasons_raw
        )
        return TransactionCanceledError(
            message=message or "transaction canceled",
            reason_codes=reason_codes,
        )

    return map_client_error(err)


def map_botocore_error(err: BotoCoreError) -> Exception:
    if isinstance(err, (BotoConnectionError, HTTPClientError)):
        return ConnectionFailedError(code="ConnectionError", message=str(err))
    return CommunicationFailedError(code=type(err).__name__, message=str(err))


def is_condition_failure(err: TransactionCanceledError) -> bool:
    return any(code == "ConditionalCheckFailed" for code in err.reason_codes)
