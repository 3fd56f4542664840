"""CLI interface for s3lambo."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .api import S3Client
from .config import config
from .exceptions import S3LamboError
from .output import OutputFormatter
from .sync import SyncEngine, SyncOperations, SyncRequest
from .utils import format_size

logger = logging.getLogger(__name__)


def _get_client(ctx: Any) -> S3Client:
    """Build the S3 client once per invocation from the global options.

    A client built here is closed when the command finishes; an injected
    client is left to its owner.
    """
    if ctx.obj.get("client") is None:
        ctx.obj["client"] = S3Client(
            region=ctx.obj["region"],
            endpoint_url=ctx.obj["endpoint_url"],
            profile=ctx.obj["profile"],
        )
        ctx.call_on_close(ctx.obj["client"].close)
    return ctx.obj["client"]


def _require_bucket(ctx: Any, bucket: Optional[str]) -> str:
    out: OutputFormatter = ctx.obj["out"]
    bucket = bucket or config.get_default_bucket()
    if not bucket:
        out.error("No bucket specified. Use --bucket or run 's3lambo config -b NAME'.")
        ctx.exit(1)
    return bucket


def _extra_args(acl: Optional[str], cache_control: Optional[str]) -> dict[str, Any]:
    extra_args: dict[str, Any] = {}
    if acl:
        extra_args["ACL"] = acl
    if cache_control:
        extra_args["CacheControl"] = cache_control
    return extra_args


bucket_option = click.option(
    "--bucket",
    "-b",
    envvar="S3LAMBO_BUCKET",
    help="Bucket name (defaults to the configured bucket)",
)
acl_option = click.option("--acl", help="Canned ACL applied to uploaded objects")
cache_control_option = click.option(
    "--cache-control", help="Cache-Control header applied to uploaded objects"
)


@click.group()
@click.option("--endpoint-url", help="S3-compatible endpoint URL")
@click.option("--region", help="AWS region")
@click.option("--profile", help="AWS profile name")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="s3lambo")
@click.pass_context
def main(
    ctx: Any,
    endpoint_url: Optional[str],
    region: Optional[str],
    profile: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """s3lambo - Get, hash, list and upload objects, sync directories to S3."""
    ctx.ensure_object(dict)
    ctx.obj["endpoint_url"] = endpoint_url
    ctx.obj["region"] = region
    ctx.obj["profile"] = profile
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj.setdefault("client", None)

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("s3lambo").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("key")
@bucket_option
@click.pass_context
def get(ctx: Any, key: str, bucket: Optional[str]) -> None:
    """Print the content of an object.

    KEY: Object key
    """
    out: OutputFormatter = ctx.obj["out"]
    bucket = _require_bucket(ctx, bucket)

    try:
        content = _get_client(ctx).get_object_content(bucket, key)
    except S3LamboError as e:
        out.error(str(e))
        ctx.exit(1)

    if isinstance(content, bytes):
        if out.json_output:
            out.output_json({"key": key, "size": len(content)})
        else:
            click.echo(content, nl=False)
    elif isinstance(content, str) and not out.json_output:
        click.echo(content)
    else:
        out.output_json(content)


@main.command(name="hash")
@click.argument("key")
@bucket_option
@click.pass_context
def hash_(ctx: Any, key: str, bucket: Optional[str]) -> None:
    """Print the MD5 hash of an object's content.

    KEY: Object key
    """
    out: OutputFormatter = ctx.obj["out"]
    bucket = _require_bucket(ctx, bucket)

    try:
        digest = _get_client(ctx).get_object_hash(bucket, key)
    except S3LamboError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json({"key": key, "md5": digest})
    else:
        click.echo(digest)


@main.command()
@bucket_option
@click.option("--prefix", "-p", help="Only list keys starting with this prefix")
@click.option(
    "--ignore-key", "-i", "ignore_keys", multiple=True, help="Key to leave out"
)
@click.option("--ignore-regex", "-r", help="Leave out keys matching this regex")
@click.option("--start-slash", is_flag=True, help="Prefix each key with '/'")
@click.pass_context
def ls(
    ctx: Any,
    bucket: Optional[str],
    prefix: Optional[str],
    ignore_keys: tuple[str, ...],
    ignore_regex: Optional[str],
    start_slash: bool,
) -> None:
    """List the keys of a bucket."""
    out: OutputFormatter = ctx.obj["out"]
    bucket = _require_bucket(ctx, bucket)

    try:
        keys = _get_client(ctx).list_keys(
            bucket,
            prefix=prefix,
            ignore_keys=list(ignore_keys),
            ignore_pattern=ignore_regex,
            start_slash=start_slash,
        )
    except S3LamboError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(keys)
        return
    for key in keys:
        click.echo(key)
    if not keys:
        out.info("No keys found.")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("key", required=False)
@bucket_option
@click.option("--content-type", help="Content type (detected from the file name)")
@acl_option
@cache_control_option
@click.pass_context
def put(
    ctx: Any,
    path: str,
    key: Optional[str],
    bucket: Optional[str],
    content_type: Optional[str],
    acl: Optional[str],
    cache_control: Optional[str],
) -> None:
    """Upload a single file.

    PATH: Local file to upload

    KEY: Destination key (defaults to the file name)
    """
    out: OutputFormatter = ctx.obj["out"]
    bucket = _require_bucket(ctx, bucket)
    local_path = Path(path)
    key = key or local_path.name

    try:
        SyncOperations(_get_client(ctx)).upload_file(
            local_path,
            bucket,
            key,
            content_type=content_type,
            extra_args=_extra_args(acl, cache_control),
        )
    except S3LamboError as e:
        out.error(str(e))
        ctx.exit(1)

    out.print_summary(
        "Upload Complete",
        [
            ("File", str(local_path)),
            ("Size", format_size(local_path.stat().st_size)),
            ("Destination", f"s3://{bucket}/{key}"),
        ],
    )


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@bucket_option
@click.option("--root-key", "-k", default="", help="Key prefix of the uploaded tree")
@click.option(
    "--ignore",
    "-i",
    multiple=True,
    help="Skip keys containing this substring (repeatable, e.g. 'drafts/')",
)
@click.option(
    "--workers",
    "-j",
    type=int,
    default=None,
    help="Maximum parallel uploads per directory (default: one per entry)",
)
@acl_option
@cache_control_option
@click.pass_context
def sync(
    ctx: Any,
    path: str,
    bucket: Optional[str],
    root_key: str,
    ignore: tuple[str, ...],
    workers: Optional[int],
    acl: Optional[str],
    cache_control: Optional[str],
) -> None:
    """Upload a directory and its subdirectories recursively.

    PATH: Local directory to upload
    """
    out: OutputFormatter = ctx.obj["out"]
    bucket = _require_bucket(ctx, bucket)

    if workers is not None and workers < 1:
        out.error("Workers must be at least 1")
        ctx.exit(1)

    request = SyncRequest(
        path=Path(path),
        bucket=bucket,
        extra_args=_extra_args(acl, cache_control),
        root_key=root_key,
        ignore=frozenset(ignore),
    )
    engine = SyncEngine(_get_client(ctx), max_workers=workers or config.max_workers)
    destination = f"s3://{bucket}/{root_key}".rstrip("/")

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            transient=True,
            disable=out.quiet or out.json_output,
        ) as progress:
            progress.add_task(f"Uploading {path} to {destination}...", total=None)
            engine.sync_directory(request)
    except S3LamboError as e:
        out.error(str(e))
        ctx.exit(1)

    out.print_summary(
        "Sync Complete",
        [
            ("Directory", str(request.path.resolve())),
            ("Destination", destination),
        ],
    )


@main.command(name="config")
@click.option("--bucket", "-b", help="Save this bucket as the default bucket")
@click.option("--unset-bucket", is_flag=True, help="Remove the default bucket")
@click.pass_context
def config_cmd(ctx: Any, bucket: Optional[str], unset_bucket: bool) -> None:
    """Show or update the s3lambo configuration."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        if unset_bucket:
            config.save_default_bucket(None)
        elif bucket:
            config.save_default_bucket(bucket)
    except OSError as e:
        out.error(f"Could not save configuration: {e}")
        ctx.exit(1)

    out.print_summary(
        "Configuration",
        [
            ("Config file", str(config.get_config_path())),
            ("Default bucket", config.get_default_bucket() or "-"),
            ("Region", config.region or "-"),
            ("Endpoint", config.endpoint_url or "-"),
        ],
    )


if __name__ == "__main__":
    main()
