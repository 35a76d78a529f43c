import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from smtp_signature import UnsupportedRegionError, derive_smtp_password, ensure_smtp_region

CREATE = "Create"
UPDATE = "Update"
DELETE = "Delete"
REQUEST_TYPES = (CREATE, UPDATE, DELETE)

USERNAME = "username"
PASSWORD = "password"
PARAMETER_TYPES = (USERNAME, PASSWORD)

UNSUPPORTED_REGION = "UNSUPPORTED_REGION"
UNRECOGNIZED_EVENT = "UNRECOGNIZED_EVENT"
INVALID_PROPERTIES = "INVALID_PROPERTIES"
STORE_FAILED = "STORE_FAILED"
IDENTITY_FAILED = "IDENTITY_FAILED"

DEFAULT_SCHEMA_VERSION = "2026-10-18"

_ssm_client = None
_sts_client = None
_creds_handler = None


class HandlerError(Exception):
    def __init__(self, error_code: str, message: str) -> None:
        self.error_code = error_code
        super().__init__(f"{error_code}: {message}")


@dataclass(frozen=True)
class HandlerConfig:
    region: str
    parameter_prefix: str
    key_arn: str | None = None

    @classmethod
    def from_env(cls) -> "HandlerConfig":
        return cls(
            region=(os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or "").strip(),
            parameter_prefix=os.environ.get("SES_PARAMETER_PREFIX", ""),
            # CDK passes an empty string when no key is configured.
            key_arn=(os.environ.get("SES_KEY_ARN") or "").strip() or None,
        )


@dataclass(frozen=True)
class CredentialRequest:
    request_type: str
    parameter_type: str
    key: str = ""
    request_id: str = ""
    # None falls back to the handler's configured prefix.
    parameter_prefix: str | None = None
    physical_resource_id: str = ""

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "CredentialRequest":
        props = event.get("ResourceProperties") or {}
        prefix = props.get("ParameterPrefix")
        return cls(
            request_type=str(event.get("RequestType") or ""),
            parameter_type=str(props.get("ParameterType") or ""),
            key=str(props.get("Key") or ""),
            request_id=str(event.get("RequestId") or ""),
            parameter_prefix=None if prefix is None else str(prefix),
            physical_resource_id=str(event.get("PhysicalResourceId") or ""),
        )


@dataclass(frozen=True)
class HandlerResult:
    physical_resource_id: str = ""
    error_code: str = ""
    message: str = ""
    cause: Exception | None = None
    already_absent: bool = False

    @property
    def ok(self) -> bool:
        return not self.error_code

    @property
    def outcome(self) -> str:
        if not self.ok:
            return self.error_code.lower()
        return "already_absent" if self.already_absent else "success"

    @classmethod
    def success(cls, physical_resource_id: str, *, already_absent: bool = False) -> "HandlerResult":
        return cls(physical_resource_id=physical_resource_id, already_absent=already_absent)

    @classmethod
    def failure(cls, error_code: str, message: str, cause: Exception | None = None) -> "HandlerResult":
        return cls(error_code=error_code, message=message, cause=cause)


def _partition(region: str) -> str:
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    if region.startswith("cn-"):
        return "aws-cn"
    return "aws"


def _is_parameter_not_found(exc: ClientError) -> bool:
    return (exc.response.get("Error") or {}).get("Code") == "ParameterNotFound"


class SesCredsHandler:
    """Converges SSM SecureString parameters holding SES SMTP credentials.

    Create and Update are the same overwrite; Delete tolerates a parameter
    that is already gone. The returned ARN is computed from configuration and
    the caller's account, never read back from SSM.
    """

    def __init__(self, config: HandlerConfig, *, ssm_client: Any, sts_client: Any) -> None:
        ensure_smtp_region(config.region)
        self.config = config
        self._ssm = ssm_client
        self._sts = sts_client

    def parameter_name(self, parameter_type: str, prefix: str | None = None) -> str:
        if prefix is None:
            prefix = self.config.parameter_prefix
        return f"{prefix}/{parameter_type}"

    def parameter_arn(self, name: str) -> str:
        account = self._sts.get_caller_identity()["Account"]
        region = self.config.region
        return "".join(
            [
                f"arn:{_partition(region)}:ssm:{region}:{account}:parameter",
                "" if name.startswith("/") else "/",
                name,
            ]
        )

    def parameter_value(self, request: CredentialRequest) -> str:
        if request.parameter_type == PASSWORD:
            return derive_smtp_password(request.key, self.config.region)
        return request.key

    def _put_parameter(self, name: str, parameter_type: str, value: str) -> None:
        kwargs: dict[str, Any] = {
            "Name": name,
            "Value": value,
            "Type": "SecureString",
            "Description": f"SMTP {parameter_type} for email communications",
            "Overwrite": True,
            "Tier": "Standard",
        }
        if self.config.key_arn:
            kwargs["KeyId"] = self.config.key_arn
        self._ssm.put_parameter(**kwargs)

    def _delete_parameter(self, name: str) -> bool:
        try:
            self._ssm.delete_parameter(Name=name)
        except ClientError as exc:
            if _is_parameter_not_found(exc):
                return True
            raise
        return False

    def handle(self, request: CredentialRequest) -> HandlerResult:
        if request.request_type not in REQUEST_TYPES:
            return HandlerResult.failure(
                UNRECOGNIZED_EVENT, f"unexpected event type {request.request_type!r}"
            )
        if request.parameter_type not in PARAMETER_TYPES:
            if request.request_type == DELETE:
                # Rollback of a Create rejected for the same properties: nothing was stored.
                return HandlerResult.success(request.physical_resource_id, already_absent=True)
            return HandlerResult.failure(
                INVALID_PROPERTIES,
                f"ParameterType must be one of {', '.join(PARAMETER_TYPES)}",
            )
        if request.request_type != DELETE and not request.key:
            return HandlerResult.failure(INVALID_PROPERTIES, "Key is required")

        name = self.parameter_name(request.parameter_type, request.parameter_prefix)
        already_absent = False
        try:
            if request.request_type == DELETE:
                already_absent = self._delete_parameter(name)
            else:
                value = self.parameter_value(request)
                self._put_parameter(name, request.parameter_type, value)
        except (BotoCoreError, ClientError) as exc:
            return HandlerResult.failure(STORE_FAILED, str(exc), cause=exc)

        # Required on Delete too: the orchestrator expects the same physical id back.
        try:
            arn = self.parameter_arn(name)
        except (BotoCoreError, ClientError) as exc:
            return HandlerResult.failure(IDENTITY_FAILED, str(exc), cause=exc)

        return HandlerResult.success(arn, already_absent=already_absent)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _aws_region() -> str | None:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


def _ssm():
    global _ssm_client
    if _ssm_client is None:
        _ssm_client = boto3.client("ssm", region_name=_aws_region())
    return _ssm_client


def _sts():
    global _sts_client
    if _sts_client is None:
        _sts_client = boto3.client("sts", region_name=_aws_region())
    return _sts_client


def _handler() -> SesCredsHandler:
    global _creds_handler
    if _creds_handler is None:
        _creds_handler = SesCredsHandler(
            HandlerConfig.from_env(), ssm_client=_ssm(), sts_client=_sts()
        )
    return _creds_handler


def handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    start = time.time()
    request = CredentialRequest.from_event(event)

    wide_event: dict[str, Any] = {
        "event": "ses_creds_lifecycle",
        "schema_version": os.environ.get("SCHEMA_VERSION", DEFAULT_SCHEMA_VERSION),
        "request_id": request.request_id,
        "request_type": request.request_type,
        "parameter_type": request.parameter_type,
        "ts": _now_iso(),
    }

    try:
        try:
            creds_handler = _handler()
        except UnsupportedRegionError as exc:
            wide_event["outcome"] = UNSUPPORTED_REGION.lower()
            wide_event["error"] = {"type": type(exc).__name__, "message": str(exc)}
            raise

        if request.parameter_type in PARAMETER_TYPES:
            wide_event["parameter_name"] = creds_handler.parameter_name(
                request.parameter_type, request.parameter_prefix
            )

        result = creds_handler.handle(request)
        wide_event["outcome"] = result.outcome
        if not result.ok:
            wide_event["error"] = {
                "type": type(result.cause).__name__ if result.cause else HandlerError.__name__,
                "code": result.error_code,
                "message": result.message,
            }
            if result.cause is not None:
                raise result.cause
            raise HandlerError(result.error_code, result.message)

        wide_event["physical_resource_id"] = result.physical_resource_id
        return {"PhysicalResourceId": result.physical_resource_id}
    finally:
        wide_event["duration_ms"] = int((time.time() - start) * 1000)
        # Never log credential material.
        print(json.dumps(wide_event, separators=(",", ":"), sort_keys=True))
