"""CLI entry point for s3-exchange.

Handles argument parsing and dispatches one S3 operation per invocation.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable

import httpx

from s3_exchange.client import S3Client
from s3_exchange.config_loader import ConfigError, load_client_config
from s3_exchange.errors import S3ExchangeError
from s3_exchange.logging_config import configure_logging

DEFAULT_CONFIG = Path("s3-exchange.yaml")


def positive_int(value: str) -> int:
    """Parse and validate a positive integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="s3-exchange",
        description="Issue S3 requests against an S3-compatible (ECS) endpoint.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Client config YAML (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Log output format (default: text)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Operation")

    subparsers.add_parser("list-buckets", help="List buckets in the namespace")

    exists_parser = subparsers.add_parser("bucket-exists", help="Check whether a bucket exists")
    exists_parser.add_argument("bucket")

    list_parser = subparsers.add_parser("list-objects", help="List objects in a bucket")
    list_parser.add_argument("bucket")
    list_parser.add_argument("--prefix", default=None)
    list_parser.add_argument("--delimiter", default=None)
    list_parser.add_argument("--marker", default=None)
    list_parser.add_argument("--max-keys", type=positive_int, default=None)

    get_parser = subparsers.add_parser("get", help="Download an object")
    get_parser.add_argument("bucket")
    get_parser.add_argument("key")
    get_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the object here instead of stdout",
    )
    get_parser.add_argument("--version-id", default=None)

    put_parser = subparsers.add_parser("put", help="Upload a file as an object")
    put_parser.add_argument("bucket")
    put_parser.add_argument("key")
    put_parser.add_argument("file", type=Path, help="File to upload")
    put_parser.add_argument("--content-type", default=None)

    head_parser = subparsers.add_parser("head", help="Print object metadata as JSON")
    head_parser.add_argument("bucket")
    head_parser.add_argument("key")

    delete_parser = subparsers.add_parser("delete", help="Delete an object")
    delete_parser.add_argument("bucket")
    delete_parser.add_argument("key")
    delete_parser.add_argument("--version-id", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        config = load_client_config(args.config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    command = COMMANDS[args.command]
    try:
        with S3Client(config) as client:
            return command(client, args)
    except S3ExchangeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except httpx.TransportError as e:
        print(f"Error: cannot reach {config.endpoint}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_list_buckets(client: S3Client, args: argparse.Namespace) -> int:
    result = client.list_buckets()
    for bucket in result.buckets:
        created = bucket.creation_date.isoformat() if bucket.creation_date else "-"
        print(f"{created}  {bucket.name}")
    return 0


def run_bucket_exists(client: S3Client, args: argparse.Namespace) -> int:
    exists = client.bucket_exists(args.bucket)
    print("true" if exists else "false")
    return 0


def run_list_objects(client: S3Client, args: argparse.Namespace) -> int:
    result = client.list_objects(
        args.bucket,
        prefix=args.prefix,
        marker=args.marker,
        max_keys=args.max_keys,
        delimiter=args.delimiter,
    )
    for prefix in result.common_prefixes:
        print(f"{'PRE':>12}  {prefix.prefix}")
    for obj in result.objects:
        print(f"{obj.size:>12}  {obj.key}")
    if result.truncated:
        # Without a delimiter S3 omits NextMarker; the last key is the marker.
        marker = result.next_marker or (result.objects[-1].key if result.objects else "")
        print(f"(truncated; next marker: {marker})")
    return 0


def run_get(client: S3Client, args: argparse.Namespace) -> int:
    data = client.read_object(args.bucket, args.key, version_id=args.version_id)
    if args.out is None:
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
    else:
        args.out.write_bytes(data)
    return 0


def run_put(client: S3Client, args: argparse.Namespace) -> int:
    if not args.file.is_file():
        print(f"Error: not a file: {args.file}", file=sys.stderr)
        return 1
    with open(args.file, "rb") as f:
        result = client.put_object(args.bucket, args.key, f, content_type=args.content_type)
    print(result.etag or "")
    return 0


def run_head(client: S3Client, args: argparse.Namespace) -> int:
    metadata = client.get_object_metadata(args.bucket, args.key)
    print(json.dumps(metadata.model_dump(exclude={"headers"}), indent=2))
    return 0


def run_delete(client: S3Client, args: argparse.Namespace) -> int:
    if args.version_id is not None:
        client.delete_version(args.bucket, args.key, args.version_id)
    else:
        client.delete_object(args.bucket, args.key)
    return 0


COMMANDS: dict[str, Callable[[S3Client, argparse.Namespace], int]] = {
    "list-buckets": run_list_buckets,
    "bucket-exists": run_bucket_exists,
    "list-objects": run_list_objects,
    "get": run_get,
    "put": run_put,
    "head": run_head,
    "delete": run_delete,
}


if __name__ == "__main__":
    sys.exit(main())
