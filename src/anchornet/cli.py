# anchornet/cli.py

"""
AnchorNet CLI Tool
------------------

Provides:
  - Running the anchoring pipeline against a node (or the in-memory ledger)
  - Computing content hashes
  - Showing the SS58 address of a signing identity
"""

from __future__ import annotations
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from pydantic import ValidationError

from anchornet.core.orchestrator import AnchorPipeline, PipelineResult
from anchornet.core.registry import MetadataRegistry
from anchornet.core.settings import AnchorNetSettings, get_settings
from anchornet.core.tracker import SubmissionTracker
from anchornet.crypto.hasher import content_hash
from anchornet.crypto.keys import Keypair
from anchornet.ledger.base import Ledger, short_hash
from anchornet.ledger.memory import InMemoryLedger
from anchornet.ledger.websocket import WebSocketLedger
from anchornet.protocol.enums import HashAlgorithm, KeyType, NonceMode
from anchornet.protocol.errors import AnchorNetError
from anchornet.utils.logging import configure_logging, get_logger
from anchornet.utils.timestamps import from_millis_iso

logger = get_logger(__name__)


def _apply_overrides(settings: AnchorNetSettings, args: argparse.Namespace) -> None:
    if args.url is not None:
        settings.ledger.url = args.url
    if args.types is not None:
        settings.ledger.types_file = args.types
    if args.memory:
        settings.ledger.backend = "memory"
    if args.uri is not None:
        settings.account.uri = args.uri
    if args.key_type is not None:
        settings.account.key_type = KeyType(args.key_type)
    if args.count is not None:
        settings.pipeline.count = args.count
    if args.grace is not None:
        settings.pipeline.grace_period = args.grace
    if args.timeout is not None:
        settings.pipeline.submission_timeout = args.timeout
    if args.max_batch_size is not None:
        settings.pipeline.max_batch_size = args.max_batch_size
    if args.nonce_mode is not None:
        settings.pipeline.nonce_mode = NonceMode(args.nonce_mode)


def _build_ledger(settings: AnchorNetSettings, registry: MetadataRegistry, account: Keypair) -> Ledger:
    if settings.ledger.backend == "memory":
        ledger = InMemoryLedger()
        ledger.endow(account.address)
        return ledger
    return WebSocketLedger(
        settings.ledger.url,
        registry,
        request_timeout=settings.ledger.request_timeout,
    )


def _print_result(result: PipelineResult) -> None:
    print("\n=== Anchor Run ===")
    if result.timestamp is not None:
        print(f"Timestamp:   {result.timestamp} ({from_millis_iso(result.timestamp)})")
    if result.root_hash is not None:
        print(f"Root hash:   {result.root_hash}")
    if result.root is not None:
        print(f"Root:        {result.root.state.value} in {short_hash(result.root.block_hash)}")
    for batch in result.batches:
        print(f"{batch.label}:    {batch.size} anchors, {batch.state.value} in {short_hash(batch.block_hash)}")
    if result.ok:
        print(f"DONE: {result.linked_count} linked anchors")
    else:
        print(f"FAILED at {result.failed_step}: {result.error}")


async def _run(settings: AnchorNetSettings, registry: MetadataRegistry, account: Keypair) -> PipelineResult:
    ledger = _build_ledger(settings, registry, account)
    async with ledger:
        tracker = SubmissionTracker(ledger, registry)
        pipeline = AnchorPipeline(ledger, tracker, settings.pipeline.to_config())
        result = await pipeline.run(account)

        grace = settings.pipeline.grace_period
        if grace > 0:
            logger.info("Waiting %.1fs before closing the connection", grace)
            await asyncio.sleep(grace)
        return result


def cmd_run(args: argparse.Namespace) -> int:
    """
    Runs the anchoring pipeline end-to-end.
    """
    try:
        settings = get_settings().model_copy(deep=True)
        _apply_overrides(settings, args)
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1
    configure_logging(settings.runtime.log_level)

    try:
        if settings.ledger.types_file:
            registry = MetadataRegistry.from_file(settings.ledger.types_file)
        else:
            registry = MetadataRegistry.default()
        account = Keypair.from_uri(settings.account.uri, settings.account.ss58_format, settings.account.key_type)
        logger.info("Signing as %s", account.address)
        result = asyncio.run(_run(settings, registry, account))
    except (AnchorNetError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)
    return result.exit_code


def cmd_hash(args: argparse.Namespace) -> int:
    """
    Prints the content hash of TEXT.
    """
    try:
        digest = content_hash(args.text, args.width, HashAlgorithm(args.algorithm))
    except AnchorNetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(digest.hex)
    return 0


def cmd_address(args: argparse.Namespace) -> int:
    """
    Prints the SS58 address of a secret URI.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1
    uri = args.uri if args.uri is not None else settings.account.uri
    ss58_format = args.ss58_format if args.ss58_format is not None else settings.account.ss58_format
    key_type = KeyType(args.key_type) if args.key_type is not None else settings.account.key_type
    try:
        pair = Keypair.from_uri(uri, ss58_format, key_type)
    except AnchorNetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(pair.address)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anchornet",
        description="AnchorNet Command Line Tool"
    )
    sub = parser.add_subparsers(dest="command")

    # run
    p_run = sub.add_parser("run", help="Anchor a root hash and a batch of linked anchors")
    p_run.add_argument("--url", help="Node WebSocket endpoint")
    p_run.add_argument("--uri", help="Secret URI of the signing account")
    p_run.add_argument("--key-type", choices=[k.value for k in KeyType], help="Signature scheme of the account")
    p_run.add_argument("--count", type=int, help="Number of linked anchors")
    p_run.add_argument("--types", help="Path to the JSON type/metadata registry")
    p_run.add_argument("--memory", action="store_true", help="Run against the in-memory ledger")
    p_run.add_argument("--grace", type=float, help="Seconds to wait before exiting")
    p_run.add_argument("--timeout", type=float, help="Per-submission timeout in seconds")
    p_run.add_argument("--max-batch-size", type=int, help="Split linked anchors into batches of this size")
    p_run.add_argument("--nonce-mode", choices=[m.value for m in NonceMode], help="Nonce assignment mode")
    p_run.add_argument("--json", action="store_true", help="Print the result as JSON")
    p_run.set_defaults(func=cmd_run)

    # hash
    p_hash = sub.add_parser("hash", help="Print the content hash of a text")
    p_hash.add_argument("text", help="Text to hash")
    p_hash.add_argument("--width", type=int, default=256, help="Hash width in bits")
    p_hash.add_argument(
        "--algorithm",
        choices=[a.value for a in HashAlgorithm],
        default=HashAlgorithm.TWOX.value,
        help="Hash family",
    )
    p_hash.set_defaults(func=cmd_hash)

    # address
    p_addr = sub.add_parser("address", help="Print the SS58 address of a secret URI")
    p_addr.add_argument("--uri", help="Secret URI (defaults to the configured account)")
    p_addr.add_argument("--ss58-format", type=int, help="SS58 network prefix")
    p_addr.add_argument("--key-type", choices=[k.value for k in KeyType], help="Signature scheme (default sr25519)")
    p_addr.set_defaults(func=cmd_address)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()

    # Parse + dispatch
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
