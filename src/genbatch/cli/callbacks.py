import json
from pathlib import Path

import typer

from genbatch.cli.enums import OrderByFields, StatusFilter
from genbatch.exceptions import ConfigurationError
from genbatch.providers import BaseProvider, load_provider


def order_by_callback(ctx: typer.Context, value: str):
    if ctx.resilient_parsing:
        return
    if value not in OrderByFields.__members__.values():
        raise typer.BadParameter(
            message=f"'{value}' is not a valid order by field, supported fields are: {', '.join(OrderByFields.__members__.values())}",
            param_hint="--order-by, -o",
        )
    return value


def status_callback(ctx: typer.Context, value: str | None):
    if ctx.resilient_parsing or value is None:
        return value
    if value not in StatusFilter.__members__.values():
        raise typer.BadParameter(
            message=f"'{value}' is not a valid job status, supported statuses are: {', '.join(StatusFilter.__members__.values())}",
            param_hint="--status, -s",
        )
    return value


def provider_callback(ctx: typer.Context, value: str) -> BaseProvider | str:
    if ctx.resilient_parsing:
        return value
    try:
        return load_provider(value)
    except ConfigurationError as error:
        raise typer.BadParameter(message=str(error), param_hint="--provider, -p") from error


def load_file_callback(ctx: typer.Context, value: Path | None):
    if ctx.resilient_parsing or value is None:
        return value
    if not value.exists():
        raise typer.BadParameter(
            message=f"file at path: '{value.as_posix()}' does not exist",
        )
    return value


def preset_callback(ctx: typer.Context, value: Path | None) -> dict | None:
    if ctx.resilient_parsing or value is None:
        return None
    load_file_callback(ctx=ctx, value=value)
    try:
        preset = json.loads(value.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise typer.BadParameter(
            message=f"preset file '{value.as_posix()}' is not valid JSON: {error}",
            param_hint="--preset",
        ) from error
    if not isinstance(preset, dict):
        raise typer.BadParameter(
            message="preset file must contain a JSON object", param_hint="--preset"
        )
    return preset
