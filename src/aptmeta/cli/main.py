"""
Main CLI entry point for aptmeta.

This module provides the Click-based command-line interface for inspecting
APT repository metadata.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click
from pydantic import ValidationError

from aptmeta import __version__
from aptmeta.apt.client import AptRepositoryClient
from aptmeta.apt.models import ReleaseDocument
from aptmeta.core.config import GlobalConfig, RepositoryConfig, create_example_config, load_config
from aptmeta.core.output import OutputLevel, Outputter
from aptmeta.errors import AptMetaError

# Click context settings to enable -h as alias for --help
CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

EXIT_ERROR = 1
EXIT_NON_COMPLIANT = 2


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: /etc/aptmeta/config.yaml, or $APTMETA_CONFIG)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (debug logging)")
@click.option("--quiet", "-q", is_flag=True, help="Only print requested data and errors")
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], verbose: bool, quiet: bool) -> None:
    """aptmeta - Verified APT repository metadata.

    Fetches InRelease files, verifies their signatures and inspects the
    package indices of Debian-style repositories.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if quiet:
        level = OutputLevel.QUIET
    elif verbose:
        level = OutputLevel.VERBOSE
    else:
        level = OutputLevel.NORMAL
    ctx.obj["output"] = Outputter(level)

    # Load configuration
    try:
        ctx.obj["config"] = load_config(config)
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_ERROR)
    except ValueError as e:
        # YAML syntax error or validation error
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_ERROR)


def repository_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options selecting a configured repository or an ad-hoc one."""
    options = [
        click.argument("repo_id", required=False),
        click.option("--url", help="Repository root URL (ad-hoc repository)"),
        click.option("--dist", "distribution", help="Distribution name (default layout)"),
        click.option("--flat", "flat_path", help="Path of a flat repository (e.g. './')"),
        click.option("--key", help="Signing key (URL or local path)"),
        click.option(
            "--no-verify", is_flag=True, help="Do not verify the InRelease signature"
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve_repository(
    config: GlobalConfig,
    repo_id: Optional[str],
    url: Optional[str],
    distribution: Optional[str],
    flat_path: Optional[str],
    key: Optional[str],
    no_verify: bool,
) -> RepositoryConfig:
    if repo_id:
        if url or distribution or flat_path:
            raise click.UsageError("Use either a repository id or --url/--dist/--flat")
        repo_config = config.get_repository(repo_id)
        if repo_config is None:
            raise click.UsageError(f"Repository '{repo_id}' not found in configuration")
        if no_verify:
            repo_config = repo_config.model_copy(update={"key": None, "no_signature_check": True})
        return repo_config

    if not url:
        raise click.UsageError("Either a repository id or --url is required")
    try:
        return RepositoryConfig(
            id="adhoc",
            url=url,
            distribution=distribution,
            flat_path=flat_path,
            key=key,
            no_signature_check=no_verify,
        )
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise click.UsageError(messages) from e


def _open_client(ctx: click.Context, **repo_args: Any) -> AptRepositoryClient:
    config: GlobalConfig = ctx.obj["config"]
    repo_config = _resolve_repository(config, **repo_args)
    return AptRepositoryClient.from_config(repo_config, config)


def _fail(ctx: click.Context, error: Exception) -> None:
    output: Outputter = ctx.obj["output"]
    output.error(f"{type(error).__name__}: {error}")
    ctx.exit(EXIT_ERROR)


def _release_rows(release: ReleaseDocument) -> list[list[Any]]:
    signature = release.signature
    if signature.verified:
        signed = f"{signature.username or signature.key_id} ({signature.fingerprint})"
    else:
        signed = "NOT VERIFIED"
    return [
        ["Origin", release.origin],
        ["Label", release.label],
        ["Suite", release.suite],
        ["Codename", release.codename],
        ["Version", release.version],
        ["Date", release.date.isoformat() if release.date else None],
        ["Valid-Until", release.valid_until.isoformat() if release.valid_until else None],
        ["Components", " ".join(release.components)],
        ["Architectures", " ".join(release.architectures)],
        ["Acquire-By-Hash", "yes" if release.acquire_by_hash else "no"],
        ["Files", len(release.files)],
        ["Signature", signed],
    ]


@cli.command()
@repository_options
@click.option("--strict", is_flag=True, help="Exit with status 2 on compliance violations")
@click.option(
    "--require-signature", is_flag=True, help="Fail if the signature was not verified"
)
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
@click.pass_context
def release(
    ctx: click.Context,
    strict: bool,
    require_signature: bool,
    output_format: str,
    **repo_args: Any,
) -> None:
    """Fetch, verify and show the InRelease file of a repository."""
    output: Outputter = ctx.obj["output"]

    try:
        with _open_client(ctx, **repo_args) as client:
            release_doc = client.fetch_release()
        if require_signature:
            release_doc.require_verified()
    except (AptMetaError, ValueError) as e:
        _fail(ctx, e)
        return

    violations = release_doc.check_compliance()

    if output_format == "json":
        data = release_doc.model_dump(mode="json", exclude={"files", "repository"})
        data["url"] = release_doc.repository.in_release_url()
        data["violations"] = [v.model_dump(mode="json") for v in violations]
        click.echo(json.dumps(data, indent=2))
    else:
        output.header(f"Release {release_doc.name}", url=release_doc.repository.in_release_url())
        output.table(None, ["Field", "Value"], _release_rows(release_doc))
        for violation in violations:
            output.warning(str(violation))
        if not violations:
            output.success("Release is compliant")

    if strict and violations:
        ctx.exit(EXIT_NON_COMPLIANT)


@cli.command()
@repository_options
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
@click.pass_context
def indices(ctx: click.Context, output_format: str, **repo_args: Any) -> None:
    """List the package indices that exist on the server."""
    output: Outputter = ctx.obj["output"]

    try:
        with _open_client(ctx, **repo_args) as client:
            release_doc = client.fetch_release()
            links = client.get_package_links(release_doc)
    except (AptMetaError, ValueError) as e:
        _fail(ctx, e)
        return

    if output_format == "json":
        click.echo(json.dumps([link.model_dump(mode="json") for link in links], indent=2))
        return

    rows = [
        [
            link.component or "-",
            link.architecture or "-",
            link.compression.value,
            link.file_ref.size,
            link.probe.status.value if link.probe else "-",
            link.url,
        ]
        for link in links
    ]
    output.table(
        f"Package indices of {release_doc.name}",
        ["Component", "Architecture", "Compression", "Size", "Probe", "URL"],
        rows,
    )
    output.summary(indices=len(links))


@cli.command()
@repository_options
@click.option("--component", "-c", "components", multiple=True, help="Restrict to component")
@click.option("--arch", "-a", "architectures", multiple=True, help="Restrict to architecture")
@click.option("--name", help="Only show packages with this name")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
@click.pass_context
def packages(
    ctx: click.Context,
    components: tuple[str, ...],
    architectures: tuple[str, ...],
    name: Optional[str],
    output_format: str,
    **repo_args: Any,
) -> None:
    """List packages from the verified package indices."""
    output: Outputter = ctx.obj["output"]

    try:
        with _open_client(ctx, **repo_args) as client:
            release_doc = client.fetch_release()
            parsed = client.fetch_package_indices(
                release_doc, list(components) or None, list(architectures) or None
            )
    except (AptMetaError, ValueError) as e:
        _fail(ctx, e)
        return

    records = [record for index in parsed for record in (index.find(name) if name else index)]
    skipped = sum(index.skipped for index in parsed)

    if output_format == "json":
        data = [{**record.fields, "_component": record.component} for record in records]
        click.echo(json.dumps(data, indent=2))
        return

    rows = [
        [record.name, record.version, record.get("Architecture"), record.component or "-",
         record.get("Size"), record.filename]
        for record in records
    ]
    output.table(
        f"Packages of {release_doc.name}",
        ["Package", "Version", "Architecture", "Component", "Size", "Filename"],
        rows,
    )
    for index in parsed:
        for issue in index.issues:
            output.verbose(f"{index.component or '-'}/{index.architecture or '-'}: {issue.message}")
    output.summary(indices=len(parsed), packages=len(records), skipped_stanzas=skipped)


@cli.command()
@repository_options
@click.option("--name", required=True, help="Package name")
@click.option("--version", "constraint", help="Version constraint, e.g. '>= 1.2' or '= 1.2-1'")
@click.option("--component", "-c", "components", multiple=True, help="Restrict to component")
@click.option("--arch", "-a", "architectures", multiple=True, help="Restrict to architecture")
@click.option(
    "--output",
    "-o",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to write the .deb to",
)
@click.pass_context
def download(
    ctx: click.Context,
    name: str,
    constraint: Optional[str],
    components: tuple[str, ...],
    architectures: tuple[str, ...],
    output_dir: Path,
    **repo_args: Any,
) -> None:
    """Download the newest matching .deb and verify its checksum."""
    output: Outputter = ctx.obj["output"]

    try:
        with _open_client(ctx, **repo_args) as client:
            release_doc = client.fetch_release()
            parsed = client.fetch_package_indices(
                release_doc, list(components) or None, list(architectures) or None
            )
            record = client.find_package(parsed, name, constraint)
            data = client.fetch_package(record)
    except (AptMetaError, ValueError) as e:
        _fail(ctx, e)
        return

    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / Path(record.filename).name
    target.write_bytes(data)
    output.success(f"Downloaded {record} to {target} ({len(data)} bytes)")


@cli.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path), default="config.yaml")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init_config(ctx: click.Context, path: Path, force: bool) -> None:
    """Write an example configuration file."""
    output: Outputter = ctx.obj["output"]
    if path.exists() and not force:
        output.error(f"{path} already exists (use --force to overwrite)")
        ctx.exit(EXIT_ERROR)
    create_example_config(path)
    output.success(f"Example configuration written to {path}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
