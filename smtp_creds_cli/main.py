from __future__ import annotations

import sys
from typing import Any

import click
import typer

from . import __version__
from .cli_shared import (
    DEFAULT_STACK_NAME,
    OUTPUT_ENDPOINT,
    OUTPUT_PASSWORD_PARAMETER,
    OUTPUT_PORT,
    OUTPUT_USERNAME_PARAMETER,
    SMTP_CREDS_STACK,
    GlobalOpts,
    OpError,
    UsageError,
    _account_session,
    _cf_outputs,
    _env_or_none,
    _get_secure_parameter,
    _print_json,
    _require_output,
    _rich_error,
)


app = typer.Typer(
    name="smtp-creds",
    help="Inspect SES SMTP credentials provisioned by the SesCreds stack.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"smtp-creds {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    return GlobalOpts(stack=_env_or_none(SMTP_CREDS_STACK) or DEFAULT_STACK_NAME, pretty=True)


@app.callback()
def app_callback(
    ctx: typer.Context,
    stack: str | None = typer.Option(
        None,
        "--stack",
        help=f"CloudFormation stack name (env override: {SMTP_CREDS_STACK})",
    ),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    stack_name = (stack or "").strip() or _env_or_none(SMTP_CREDS_STACK) or DEFAULT_STACK_NAME
    ctx.obj = {"g": GlobalOpts(stack=stack_name, pretty=not plain_json)}


def _parameter_names(outputs: dict[str, str], g: GlobalOpts) -> dict[str, Any]:
    return {
        "stack": g.stack,
        "usernameParameter": _require_output(
            outputs, stack=g.stack, key=OUTPUT_USERNAME_PARAMETER
        ),
        "passwordParameter": _require_output(
            outputs, stack=g.stack, key=OUTPUT_PASSWORD_PARAMETER
        ),
    }


def _stack_settings(session: Any, g: GlobalOpts) -> dict[str, Any]:
    outputs = _cf_outputs(session, stack=g.stack)
    raw_port = _require_output(outputs, stack=g.stack, key=OUTPUT_PORT)
    try:
        port = int(raw_port)
    except ValueError as e:
        raise OpError(f"invalid {OUTPUT_PORT} output on stack {g.stack!r}: {raw_port!r}") from e
    return {
        **_parameter_names(outputs, g),
        "host": _require_output(outputs, stack=g.stack, key=OUTPUT_ENDPOINT),
        "port": port,
    }


@app.command("parameters", help="Print the SSM parameter names holding the SMTP credentials.")
def parameters(ctx: typer.Context) -> None:
    g = _ctx_global(ctx)
    outputs = _cf_outputs(_account_session(), stack=g.stack)
    _print_json(
        {"kind": "smtp-creds.parameters.v1", **_parameter_names(outputs, g)}, pretty=g.pretty
    )


@app.command("settings", help="Print SMTP connection settings; --reveal adds decrypted credentials.")
def settings(
    ctx: typer.Context,
    reveal: bool = typer.Option(
        False,
        "--reveal",
        help="Decrypt and print the SMTP username and password",
    ),
) -> None:
    g = _ctx_global(ctx)
    session = _account_session()
    doc: dict[str, Any] = {"kind": "smtp-creds.settings.v1", **_stack_settings(session, g)}
    doc["starttls"] = True
    if reveal:
        doc["username"] = _get_secure_parameter(session, doc["usernameParameter"])
        doc["password"] = _get_secure_parameter(session, doc["passwordParameter"])
    _print_json(doc, pretty=g.pretty)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        result = app(args=argv, prog_name="smtp-creds", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
