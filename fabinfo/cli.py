"""Typer CLI entrypoint."""

from __future__ import annotations

import click
import typer
from typer.core import TyperCommand

from fabinfo import __version__
from fabinfo.core.errors import DiscoveryError, FabinfoError
from fabinfo.core.query import build_query
from fabinfo.core.service import FabricService

app = typer.Typer(add_completion=False)

_HELP_COLUMN = 32


def render_usage(ctx: click.Context) -> str:
    """Usage banner plus one line per option, built from the command's own declarations."""
    lines = [f"Usage: {ctx.find_root().info_name}"]
    for param in ctx.command.params:
        if param.param_type_name != "option":
            continue
        names = ", ".join(sorted(param.opts, key=len))
        if not param.is_flag:
            names = f"{names}={param.metavar or param.name.upper()}"
        lines.append(f"  {names}".ljust(_HELP_COLUMN) + (param.help or ""))
    return "\n".join(lines)


class FabinfoCommand(TyperCommand):
    """Command that answers every usage error with the option table and exit code 1."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError:
            typer.echo(render_usage(ctx))
            raise typer.Exit(code=1) from None


def _build_service() -> FabricService:
    return FabricService()


def _exit_code(ret: int) -> int:
    code = -ret
    return code if 0 < code < 256 else 1


def _help_callback(ctx: typer.Context, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    typer.echo(render_usage(ctx))
    raise typer.Exit(code=1)


def _version_callback(ctx: typer.Context, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    typer.echo(f"{ctx.find_root().info_name}: {__version__}")
    try:
        version = _build_service().version()
    except FabinfoError as exc:
        typer.echo(f"Warning: {exc}", err=True)
        library, api = "unknown", "unknown"
    else:
        library, api = version.library, version.api
    typer.echo(f"libfabric: {library}")
    typer.echo(f"libfabric api: {api}")
    raise typer.Exit()


@app.command(cls=FabinfoCommand, context_settings={"help_option_names": []})
def main(
    node: str | None = typer.Option(None, "--node", "-n", metavar="NAME", help="node name or address"),
    port: str | None = typer.Option(None, "--port", "-p", metavar="PNUM", help="port number"),
    caps: str | None = typer.Option(
        None,
        "--caps",
        "-c",
        metavar="CAP1|CAP2..",
        help="one or more capabilities: FI_MSG|FI_RMA...",
    ),
    mode: str | None = typer.Option(
        None,
        "--mode",
        "-m",
        metavar="MOD1|MOD2..",
        help="one or more modes, default all modes",
    ),
    ep_type: str | None = typer.Option(
        None,
        "--ep_type",
        "-e",
        metavar="EPTYPE",
        help="specify single endpoint type: FI_EP_MSG, FI_EP_DGRAM...",
    ),
    addr_format: str | None = typer.Option(
        None,
        "--addr_format",
        "-a",
        metavar="FMT",
        help="specify accepted address format: FI_FORMAT_UNSPEC, FI_SOCKADDR...",
    ),
    provider: str | None = typer.Option(
        None,
        "--provider",
        "-f",
        metavar="PROV",
        help="specify provider explicitly",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        expose_value=False,
        help="print version info and exit",
    ),
    show_help: bool = typer.Option(
        False,
        "-h",
        callback=_help_callback,
        is_eager=True,
        expose_value=False,
        help="print this help and exit",
    ),
) -> None:
    """Print the libfabric providers and endpoint configurations that match the given filters."""
    try:
        query = build_query(
            node=node,
            port=port,
            caps=caps,
            mode=mode,
            ep_type=ep_type,
            addr_format=addr_format,
            provider=provider,
        )
        records = _build_service().discover(query)
    except DiscoveryError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=_exit_code(exc.code)) from None
    except FabinfoError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    for record in records:
        typer.echo("---")
        typer.echo(record.text, nl=not record.text.endswith("\n"))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
