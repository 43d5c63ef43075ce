"""Ahmo Wall Board Core Entry Point.

Command line front end for the board core. It handles configuration and
logging setup, wires the document store, object storage and identity
session together, and runs one board operation per invocation.
"""

import sys
import argparse
import logging
import asyncio
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import List, Optional

# Import configuration
from config.config_manager import ConfigManager

# Import core components
from core.document_store import DocumentStore
from core.error_handler import BoardError, ErrorSeverity, get_error_handler
from core.identity_provider import AuthSession, AuthUser, StaticIdentityProvider
from core.object_storage import LocalObjectStorage
from core.password_manager import PasswordManager
from core.session_storage import SessionStorage

# Import logic layer
from logic.board_manager import BoardManager
from logic.sync_engine import BoardMirror, BoardSyncEngine
from models.board import StorePaths


def build_log_handlers(log_path: Path, max_bytes: int, backup_count: int) -> List[logging.Handler]:
    """
    Create the file and console handlers for the root logger.

    The log file rotates once it reaches ``max_bytes``, keeping
    ``backup_count`` older files next to it.
    """
    # Ensure log directory exists
    log_path.parent.mkdir(parents=True, exist_ok=True)

    return [
        RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'),
        logging.StreamHandler(sys.stdout)
    ]


# Configure logging
def setup_logging(log_level: str, log_path: Path, max_bytes: int = 10485760, backup_count: int = 5):
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_path: Path to log file
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
    """
    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=build_log_handlers(log_path, max_bytes, backup_count)
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized at level {log_level}")
    logger.info(f"Log file: {log_path}")


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Ahmo Wall - shared boards with live sync',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a moderated board as user alice
  python main.py --user alice create-board --title "Retro" --moderation

  # List alice's boards
  python main.py --user alice boards

  # Follow a board for a minute as a guest
  python main.py watch BOARD_ID --duration 60

  # Approve everything pending
  python main.py --user alice approve-all BOARD_ID
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        metavar='PATH',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override logging level from config'
    )

    parser.add_argument('--user', type=str, default=None, metavar='UID',
                        help='Act as this signed-in user (default: anonymous guest)')
    parser.add_argument('--display-name', type=str, default='', help='Display name of --user')
    parser.add_argument('--email', type=str, default=None, help='Email of --user, checked against the whitelist')

    subparsers = parser.add_subparsers(dest='command', required=True)

    create = subparsers.add_parser('create-board', help='Create a board')
    create.add_argument('--title', type=str, default='')
    create.add_argument('--description', type=str, default='')
    create.add_argument('--privacy', choices=['public', 'private', 'password'], default='public')
    create.add_argument('--password', type=str, default='')
    create.add_argument('--layout', choices=['shelf', 'wall', 'grid', 'stream'], default=None)
    create.add_argument('--guest-permission', choices=['edit', 'view'], default='edit')
    create.add_argument('--moderation', action='store_true', help='Hold guest posts for approval')

    subparsers.add_parser('boards', help="List the user's boards")

    watch = subparsers.add_parser('watch', help='Print a board and follow its changes')
    watch.add_argument('board_id')
    watch.add_argument('--password', type=str, default=None, help='Board password, if it has one')
    watch.add_argument('--duration', type=float, default=0, help='Seconds to follow (0: print once)')

    approve = subparsers.add_parser('approve-all', help='Approve all pending posts and comments')
    approve.add_argument('board_id')

    return parser.parse_args(argv)


def print_mirror(mirror: BoardMirror, engine: BoardSyncEngine) -> None:
    """Render the mirror as plain text."""
    board = mirror.board
    if board is None:
        return
    print(f"== {board.title} ({board.layout.value}, {board.privacy.value}) ==")
    if board.is_sectioned:
        grouped = engine.posts_by_section()
        for section in engine.sorted_sections():
            print(f"[{section.title}]")
            for post in grouped.get(section.id, []):
                print(f"  - {post.title or post.content[:40]} ({post.author.display_name}, {post.status.value})")
    for post in engine.unsectioned_posts():
        print(f"  - {post.title or post.content[:40]} ({post.author.display_name}, {post.status.value})")
    pending = engine.pending_count()
    if pending:
        print(f"{pending} item(s) awaiting approval")


async def run_command(args: argparse.Namespace, config_manager: ConfigManager) -> int:
    """Run one subcommand; returns the process exit code."""
    logger = logging.getLogger(__name__)

    store_config = config_manager.get_store_config()
    storage_config = config_manager.get_storage_config()
    access_config = config_manager.get_access_config()
    board_config = config_manager.get_board_config()

    store = DocumentStore(config_manager.expand_path(store_config.db_path))
    store.initialize()
    paths = StorePaths(store_config.collection_prefix)
    client = store.connect()

    object_storage = LocalObjectStorage(
        config_manager.expand_path(storage_config.media_root),
        base_url=storage_config.base_url or None,
        max_file_size=storage_config.max_attachment_size,
        delete_token_ttl=storage_config.delete_token_ttl,
        admin_delete=storage_config.admin_delete,
    )

    user = AuthUser(uid=args.user, display_name=args.display_name, email=args.email) if args.user else None
    auth = AuthSession(StaticIdentityProvider(user), access_config.allowed_emails, client, paths)
    session = SessionStorage()
    error_handler = get_error_handler()

    def notify(title: str, message: str, severity: ErrorSeverity) -> None:
        print(f"{severity.value.upper()}: {title}: {message}", file=sys.stderr)

    error_handler.set_notification_callback(notify)

    try:
        if user is not None:
            await auth.login()
            client.uid = auth.uid

        if args.command == 'create-board':
            manager = BoardManager(client, auth, paths, board_config, access_config,
                                   PasswordManager(), object_storage)
            board = await manager.create_board(
                title=args.title,
                description=args.description,
                privacy=args.privacy,
                password=args.password,
                guest_permission=args.guest_permission,
                moderation_enabled=args.moderation,
                layout=args.layout,
            )
            print(board.id)
            return 0

        if args.command == 'boards':
            manager = BoardManager(client, auth, paths, board_config, access_config)
            for board in await manager.list_boards():
                print(f"{board.id}  {board.created_at:%Y-%m-%d %H:%M}  {board.title}")
            return 0

        engine = BoardSyncEngine(client, auth, session, object_storage, paths,
                                 error_handler=error_handler, board_config=board_config)

        if args.command == 'approve-all':
            async with engine.open_board(args.board_id) as access:
                if not access.allowed:
                    print(f"Access denied: {access.reason}", file=sys.stderr)
                    return 1
                await asyncio.sleep(0)
                report = await engine.approve_all()
                if report is None:
                    return 1
                print(f"Approved {len(report.approved_posts)} post(s) and "
                      f"{len(report.approved_comments)} comment(s); {len(report.failures)} failed")
                return 0 if report.succeeded else 1

        async with engine.open_board(args.board_id) as access:
            if access.reason == "password_required":
                if not args.password or not await engine.submit_password(args.password):
                    print("This board needs the right --password.", file=sys.stderr)
                    return 1
            elif not access.allowed:
                print(f"Access denied: {access.reason}", file=sys.stderr)
                return 1

            if args.duration > 0:
                remove = engine.mirror.add_listener(lambda mirror: print_mirror(mirror, engine))
                try:
                    await asyncio.sleep(args.duration)
                finally:
                    remove()
            else:
                # let the first snapshots arrive
                await asyncio.sleep(0)
                print_mirror(engine.mirror, engine)
        return 0

    except BoardError as e:
        error_handler.handle_error(e, args.command)
        return 1
    finally:
        store.close()
        logger.debug("Document store closed")


def main(argv: Optional[list] = None) -> int:
    """
    Main application entry point.

    Loads configuration, sets up logging and runs the requested command.
    """
    # Parse command-line arguments
    args = parse_arguments(argv)

    # Initialize configuration manager
    config_path = Path(args.config) if args.config else None
    config_manager = ConfigManager(config_path)
    logging_config = config_manager.get_logging_config()

    # Override log level if specified
    if args.log_level:
        logging_config.level = args.log_level

    setup_logging(
        logging_config.level,
        config_manager.expand_path(logging_config.log_path),
        max_bytes=logging_config.max_log_size,
        backup_count=logging_config.backup_count,
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Running command: {args.command}")

    try:
        return asyncio.run(run_command(args, config_manager))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
