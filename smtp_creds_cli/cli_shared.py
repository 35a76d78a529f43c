from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console


class SmtpCredsError(Exception):
    pass


class UsageError(SmtpCredsError):
    pass


class OpError(SmtpCredsError):
    pass


SMTP_CREDS_STACK = "SMTP_CREDS_STACK"
DEFAULT_STACK_NAME = "SesCredsStack"

OUTPUT_USERNAME_PARAMETER = "SmtpUsernameParameterName"
OUTPUT_PASSWORD_PARAMETER = "SmtpPasswordParameterName"
OUTPUT_ENDPOINT = "SmtpEndpoint"
OUTPUT_PORT = "SmtpPort"

_ERROR_CONSOLE = Console(stderr=True)


@dataclass(frozen=True)
class GlobalOpts:
    stack: str
    pretty: bool


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _account_session() -> Any:
    region = (os.environ.get("AWS_REGION") or "").strip()
    if not region:
        raise UsageError("missing AWS_REGION (set env)")
    profile = (os.environ.get("AWS_PROFILE") or "").strip()
    return boto3.session.Session(profile_name=profile or None, region_name=region)


def _cf_outputs(session: Any, *, stack: str) -> dict[str, str]:
    cf = session.client("cloudformation")
    try:
        resp = cf.describe_stacks(StackName=stack)
    except (BotoCoreError, ClientError) as e:
        raise OpError(f"cloudformation describe-stacks failed for stack {stack!r}: {e}") from e
    stacks = resp.get("Stacks") or []
    if not stacks:
        raise OpError(f"stack not found: {stack}")
    out: dict[str, str] = {}
    for o in stacks[0].get("Outputs") or []:
        if not isinstance(o, dict):
            continue
        key = str(o.get("OutputKey", "")).strip()
        if key:
            out[key] = str(o.get("OutputValue", "")).strip()
    return out


def _require_output(outputs: dict[str, str], *, stack: str, key: str) -> str:
    v = outputs.get(key)
    if not v:
        raise OpError(f"missing CloudFormation output {key!r} on stack {stack!r}")
    return v


def _get_secure_parameter(session: Any, name: str) -> str:
    ssm = session.client("ssm")
    try:
        resp = ssm.get_parameter(Name=name, WithDecryption=True)
    except (BotoCoreError, ClientError) as e:
        raise OpError(f"ssm get-parameter failed for {name!r}: {e}") from e
    return str((resp.get("Parameter") or {}).get("Value") or "")


def _print_json(obj: Any, *, pretty: bool) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")
