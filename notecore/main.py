"""
Main entry point for the Note Core daemon.

This module provides the main() function and daemon initialization.
"""

import argparse
import asyncio
import sys

from .config import LOG_LEVELS, Settings
from .domain import Domain
from .index import InMemoryIndexStore
from .logging import configure_logging, get_logger
from .manager import VaultIndexManager
from .parser import RegexNoteParser
from .server import RpcGateway, run_stdio, run_tcp
from .utils import VaultNotFoundError
from .vault import FileSystemVault

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> Settings:
    """Build settings from NOTE_* environment variables overridden by CLI flags."""
    parser = argparse.ArgumentParser(prog="note-core", description="JSON-RPC daemon over a Markdown notes vault")
    parser.add_argument("--vault", "-v", dest="vault_path", help="Vault root directory (NOTE_VAULT_PATH)")
    parser.add_argument("--log-level", "-l", dest="log_level", choices=sorted(LOG_LEVELS), help="Log verbosity")
    parser.add_argument("--transport", choices=["stdio", "tcp"], help="Wire transport (default: stdio)")
    parser.add_argument("--host", help="Listen host for the tcp transport")
    parser.add_argument("--port", type=int, help="Listen port for the tcp transport")
    args = parser.parse_args(argv)

    overrides = {key: value for key, value in vars(args).items() if value is not None}
    return Settings(**overrides)


def build_gateway(config: Settings) -> RpcGateway:
    """Wire vault, parser, index, manager and domain together.

    Raises:
        VaultNotFoundError: If the vault root is missing
    """
    vault = FileSystemVault(config.vault_path, config.note_extension)
    manager = VaultIndexManager(
        vault,
        RegexNoteParser(config.excerpt_length),
        InMemoryIndexStore(),
        strict=config.strict_reindex,
    )
    domain = Domain(
        manager,
        daily_folder=config.daily_folder,
        max_content_size=config.max_content_size,
        summary_top_tags=config.summary_top_tags,
    )
    return RpcGateway(domain)


async def run(gateway: RpcGateway, config: Settings) -> None:
    # A failed initial scan leaves the index partial; clients can retry with core.reindex
    try:
        await gateway.domain.reindex_all()
    except Exception as e:
        logger.error("initial_reindex_failed", error=str(e))

    if config.transport == "tcp":
        await run_tcp(gateway, config.host, config.port)
    else:
        await run_stdio(gateway)


def main(argv: list[str] | None = None):
    """Main entry point."""
    config = parse_args(argv)
    configure_logging(config.log_level_value)
    logger.info("daemon_starting", vault=str(config.vault_path), transport=config.transport)

    try:
        gateway = build_gateway(config)
    except VaultNotFoundError as e:
        logger.error("vault_not_found", error=str(e))
        sys.exit(1)

    try:
        asyncio.run(run(gateway, config))
    except KeyboardInterrupt:
        logger.info("daemon_stopped")


if __name__ == "__main__":
    main()
