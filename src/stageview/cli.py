# cli.py
from __future__ import annotations

import json
import sys

import click

from stageview.client.api_client import APIClient, APIError
from stageview.client.models import StagesInfo
from stageview.ui.console import Console, get_console, set_console


def parse_parameters(pairs: tuple[str, ...], raw_json: str | None) -> dict:
    """
    Merge NAME=VALUE pairs over an optional JSON object.

    Raises:
        click.BadParameter: on malformed input
    """
    params: dict = {}
    if raw_json:
        try:
            loaded = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--json")
        if not isinstance(loaded, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--json")
        params.update(loaded)

    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="--param")
        params[name.strip()] = value
    return params


def print_view(info: StagesInfo) -> None:
    console = get_console()
    console.print_build(info.job_full_name, info.build_number, info.build_status, info.running)
    console.print_header("STAGES")
    if not info.stages:
        console.print_info("  (none)")
    for stage in info.stages:
        console.print_stage(
            stage.name,
            stage.status,
            duration_millis=stage.duration_millis,
            approval_id=stage.input.id if stage.input else None,
        )
    for stage in info.stages:
        if stage.input:
            console.print_input(
                stage.input.id,
                stage.input.message,
                stage.input.proceed_text,
                stage.input.parameter_names,
            )


def fail(ctx, title: str, exc: Exception, suggestion: str | None = None) -> None:
    console = get_console()
    console.print_error(title, str(exc), suggestion=suggestion)
    if ctx.obj.get("debug", False):
        console.print_exception(exc)
    sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--api", default="http://localhost:8000", show_default=True, envvar="STAGEVIEW_API", help="API base URL")
@click.pass_context
def cli(ctx, debug, api):
    """stageview: stage status and input approvals for running builds."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["client"] = APIClient(api)


@cli.command()
@click.argument("build_id")
@click.pass_context
def stages(ctx, build_id):
    """Show stages waiting for input."""
    try:
        info = ctx.obj["client"].stages(build_id)
    except APIError as e:
        fail(ctx, "Could not load stages", e, suggestion="Check the build id and that the API is running.")
        return
    print_view(info)


@cli.command()
@click.argument("build_id")
@click.option("--logs/--no-logs", default=False, show_default=True, help="Print each stage log")
@click.pass_context
def allstages(ctx, build_id, logs):
    """Show every stage of a build."""
    console = get_console()
    try:
        info = ctx.obj["client"].all_stages(build_id)
    except APIError as e:
        fail(ctx, "Could not load stages", e, suggestion="Check the build id and that the API is running.")
        return
    print_view(info)
    if logs:
        for stage in info.stages:
            console.print_log(stage.name, stage.logs)


@cli.command()
@click.argument("build_id")
@click.argument("stage_id")
@click.pass_context
def stagelog(ctx, build_id, stage_id):
    """Print the log of one stage (use ALL for the whole build)."""
    try:
        data = ctx.obj["client"].stage_log(build_id, stage_id)
    except APIError as e:
        fail(ctx, "Could not load stage log", e)
        return
    get_console().print_log(data.get("name", stage_id), data.get("logs", ""))


@cli.command()
@click.argument("build_id")
@click.argument("input_id")
@click.option("--param", "-p", "pairs", multiple=True, help="Parameter as NAME=VALUE (repeatable)")
@click.option("--json", "raw_json", default=None, help="Parameters as a JSON object")
@click.pass_context
def submit(ctx, build_id, input_id, pairs, raw_json):
    """Approve a pending input."""
    params = parse_parameters(pairs, raw_json)
    try:
        ok = ctx.obj["client"].submit(build_id, input_id, params)
    except APIError as e:
        fail(ctx, "Submit failed", e)
        return
    get_console().print_outcome("submit", input_id, ok)
    if not ok:
        sys.exit(1)


@cli.command()
@click.argument("build_id")
@click.argument("input_id")
@click.pass_context
def abort(ctx, build_id, input_id):
    """Abort a pending input."""
    try:
        ok = ctx.obj["client"].abort(build_id, input_id)
    except APIError as e:
        fail(ctx, "Abort failed", e)
        return
    get_console().print_outcome("abort", input_id, ok)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    cli()
