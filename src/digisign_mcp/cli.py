from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Optional

import typer

from .auth import AuthError
from .client import ApiError
from .config import Settings
from .models import ApiResult, JsonResult
from .server import run_stdio_server
from .service import create_client, create_http_client

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_settings() -> Settings:
    try:
        settings = Settings()
    except Exception as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)
    # stdout carries the MCP stream; logs go to stderr
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    return settings


async def _call(settings: Settings, op: str, **kwargs) -> ApiResult:
    async with create_http_client(settings) as http:
        client = create_client(settings, http)
        return await getattr(client, op)(**kwargs)


def _run_once(settings: Settings, op: str, **kwargs) -> ApiResult:
    try:
        return asyncio.run(_call(settings, op, **kwargs))
    except (AuthError, ApiError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _echo_result(result: ApiResult) -> None:
    if isinstance(result, JsonResult):
        typer.echo(json.dumps(result.value, indent=2, ensure_ascii=False))
    else:
        typer.echo(json.dumps({"kind": result.kind}))


@app.command()
def serve() -> None:
    """Run the DigiSign MCP server over stdio."""
    settings = _load_settings()
    asyncio.run(run_stdio_server(settings))


@app.command()
def account() -> None:
    """Print account info (credits, plan, usage) to check the credentials."""
    settings = _load_settings()
    _echo_result(_run_once(settings, "get_account"))


@app.command()
def envelopes(
        status: Optional[str] = typer.Option(None, help="Envelope status filter (e.g., draft, sent, completed)"),
        page: Optional[int] = typer.Option(None, min=1, help="Page number"),
        items_per_page: Optional[int] = typer.Option(None, min=1, help="Items per page"),
) -> None:
    """List envelopes."""
    settings = _load_settings()
    result = _run_once(settings, "list_envelopes", status=status, page=page, items_per_page=items_per_page)
    _echo_result(result)


def main() -> None:
    app()


if __name__ == "__main__":
    sys.exit(main())
