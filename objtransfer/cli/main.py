# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Object Transfer CLI."""

# pylint: disable=too-many-arguments

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer

from objtransfer.downloader import DownloadStreamer
from objtransfer.errors import InvalidConfigError
from objtransfer.formatter import PanelFormatter, TableFormatter
from objtransfer.ledger import list_committed_parts
from objtransfer.progress import tqdm_progress
from objtransfer.schema.config import StoreConfig, load_store_config
from objtransfer.schema.transfer import TransferSession, TransferSummary
from objtransfer.store.base import ObjectStoreClient
from objtransfer.store.s3 import build_store_client
from objtransfer.uploader import UploadCoordinator
from objtransfer.utils.compat import model_dump
from objtransfer.utils.decorator import check_transfer
from objtransfer.utils.format import secho_error_and_exit
from objtransfer.utils.humanize import format_elapsed, format_ibytes, parse_bytes

app = typer.Typer(
    help="Resumable chunked transfers between local disk and object stores.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=True,
    pretty_exceptions_enable=False,
)

upload_formatter = PanelFormatter(
    name="Upload",
    fields=[
        "bucket",
        "key",
        "total_bytes",
        "uploaded_parts",
        "skipped_parts",
        "elapsed",
        "etag",
    ],
    headers=[
        "Bucket",
        "Key",
        "Size",
        "Uploaded Parts",
        "Skipped Parts",
        "Elapsed",
        "ETag",
    ],
)
upload_formatter.add_converter("total_bytes", lambda v: format_ibytes(int(v)))
upload_formatter.add_converter("elapsed", lambda v: format_elapsed(float(v)))

download_formatter = PanelFormatter(
    name="Download",
    fields=["bucket", "key", "total_bytes", "elapsed", "etag"],
    headers=["Bucket", "Key", "Size", "Elapsed", "ETag"],
)
download_formatter.add_converter("total_bytes", lambda v: format_ibytes(int(v)))
download_formatter.add_converter("elapsed", lambda v: format_elapsed(float(v)))

parts_formatter = TableFormatter(
    name="Committed Parts",
    fields=["part_number", "size", "etag"],
    headers=["Part", "Size", "ETag"],
)
parts_formatter.apply_styling("Part", justify="right")
parts_formatter.apply_styling("Size", justify="right")
parts_formatter.add_converter("size", lambda v: format_ibytes(int(v)))

config_option = typer.Option(
    None, "--config", "-c", help="Path to a YAML store profile."
)
endpoint_option = typer.Option(
    None, "--endpoint-url", help="Object store endpoint, e.g. a MinIO server."
)
region_option = typer.Option(None, "--region", help="Object store region.")


def _load_config(
    config_file: Optional[Path], endpoint_url: Optional[str], region: Optional[str]
) -> StoreConfig:
    config = load_store_config(config_file)
    if endpoint_url is not None:
        config.endpoint_url = endpoint_url
    if region is not None:
        config.region = region
    return config


def _summary_view(summary: TransferSummary) -> Dict[str, Any]:
    view = model_dump(summary)
    view["uploaded_parts"] = len(summary.uploaded_parts)
    view["skipped_parts"] = len(summary.skipped_parts)
    return view


def _open_session(client: ObjectStoreClient, bucket: str, key: str) -> TransferSession:
    upload_id = client.find_open_session(bucket, key)
    if upload_id is None:
        secho_error_and_exit(f"No unfinished upload session for {bucket}/{key}.")
    return TransferSession(bucket=bucket, key=key, upload_id=upload_id, resumed=True)


@app.command()
@check_transfer
def upload(
    bucket: str = typer.Argument(..., help="Destination bucket."),
    key: str = typer.Argument(..., help="Destination object key."),
    path: Path = typer.Argument(..., help="Local file to upload."),
    part_size: Optional[str] = typer.Option(
        None,
        "--part-size",
        "-s",
        help="Part size such as '40MiB'. Keep it unchanged when resuming.",
    ),
    restart_on_mismatch: bool = typer.Option(
        False,
        "--restart-on-mismatch",
        help="Abort an unfinished session with a different part layout and start over.",
    ),
    resume: bool = typer.Option(
        True,
        "--resume/--no-resume",
        help=(
            "Upload in parts that a later run can resume. With --no-resume the file "
            "is sent in a single request."
        ),
    ),
    config_file: Optional[Path] = config_option,
    endpoint_url: Optional[str] = endpoint_option,
    region: Optional[str] = region_option,
):
    """Upload a file, resuming the unfinished upload of the same key if any."""
    config = _load_config(config_file, endpoint_url, region)
    try:
        if part_size is not None:
            part_size_bytes = parse_bytes(part_size)
        else:
            part_size_bytes = config.part_size_bytes()
    except ValueError as exc:
        raise InvalidConfigError(str(exc)) from exc

    coordinator = UploadCoordinator(build_store_client(config))
    try:
        with tqdm_progress(path.name) as callback:
            summary = coordinator.upload(
                bucket,
                key,
                path,
                part_size_bytes,
                progress_callback=callback,
                restart_on_mismatch=restart_on_mismatch,
                resumable=resume,
            )
    except KeyboardInterrupt:
        if not resume:
            secho_error_and_exit("Upload interrupted.", color=typer.colors.YELLOW)
        secho_error_and_exit(
            "Upload interrupted. Run the same command again to resume.",
            color=typer.colors.YELLOW,
        )

    upload_formatter.render(_summary_view(summary))


@app.command()
@check_transfer
def download(
    bucket: str = typer.Argument(..., help="Source bucket."),
    key: str = typer.Argument(..., help="Source object key."),
    path: Path = typer.Argument(..., help="Local destination file."),
    config_file: Optional[Path] = config_option,
    endpoint_url: Optional[str] = endpoint_option,
    region: Optional[str] = region_option,
):
    """Download an object to a local file."""
    config = _load_config(config_file, endpoint_url, region)
    streamer = DownloadStreamer(build_store_client(config))
    with tqdm_progress(path.name) as callback:
        summary = streamer.download(bucket, key, path, progress_callback=callback)

    download_formatter.render(model_dump(summary))


@app.command()
@check_transfer
def status(
    bucket: str = typer.Argument(..., help="Bucket of the upload."),
    key: str = typer.Argument(..., help="Object key of the upload."),
    config_file: Optional[Path] = config_option,
    endpoint_url: Optional[str] = endpoint_option,
    region: Optional[str] = region_option,
):
    """Show the parts committed to the unfinished upload of a key."""
    config = _load_config(config_file, endpoint_url, region)
    client = build_store_client(config)
    session = _open_session(client, bucket, key)
    parts = list_committed_parts(client, session)

    parts_formatter.caption = (
        f"Session {session.upload_id}: {len(parts)} part(s), "
        f"{format_ibytes(sum(part.size for part in parts))} committed"
    )
    parts_formatter.render([model_dump(part) for part in parts])


@app.command()
@check_transfer
def abort(
    bucket: str = typer.Argument(..., help="Bucket of the upload."),
    key: str = typer.Argument(..., help="Object key of the upload."),
    config_file: Optional[Path] = config_option,
    endpoint_url: Optional[str] = endpoint_option,
    region: Optional[str] = region_option,
):
    """Abort the unfinished upload of a key and discard its parts."""
    config = _load_config(config_file, endpoint_url, region)
    client = build_store_client(config)
    session = _open_session(client, bucket, key)
    client.abort_session(session)
    typer.secho(
        f"Aborted upload session {session.upload_id} of {bucket}/{key}.",
        fg=typer.colors.GREEN,
    )
