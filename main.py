"""AutoUpload main entry point."""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from autoupload.core.file_watcher import FileWatcher
from autoupload.core.remote_client import create_remote_client
from autoupload.core.sync_engine import SyncEngine
from autoupload.models.simple_config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    MissingCredentialsError,
    SimpleConfig,
    load_config,
    template_config,
)

# Set up logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

STATUS_INTERVAL = 300


class AutoUploadApp:
    """Main AutoUpload application."""

    def __init__(self, config: SimpleConfig):
        """Initialize application."""
        self.config = config
        self.remote_client = create_remote_client(config)
        self.file_watcher = FileWatcher()
        self.sync_engine = SyncEngine(config.policy, self.remote_client, self.file_watcher)
        self.running = False
        self.shutdown_event = asyncio.Event()

    async def start(self):
        """Start the application and run until a shutdown signal arrives.

        Raises:
            Exception: If the remote client cannot be initialized
        """
        logger.info("Starting AutoUpload...")
        self.running = True

        try:
            await self.remote_client.initialize()
            logger.info(f"✅ Remote client initialized ({self.config.remote})")

            await self.file_watcher.start()
            logger.info("✅ File Watcher started")

            # Checks every file once, then follows changes
            await self.sync_engine.start(self.config.files)
            logger.info("🚀 AutoUpload started successfully")

            self._setup_signal_handlers()

            # Main status loop - show sync statistics
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=STATUS_INTERVAL)
                    break  # Shutdown event was set
                except asyncio.TimeoutError:
                    logger.info(f"📊 Sync Status: {self.sync_engine.get_statistics()}")

        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            raise
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Shutdown the application."""
        if not self.running:
            return

        logger.info("Shutting down AutoUpload...")
        self.running = False

        try:
            await self.sync_engine.stop()
            logger.info("✅ Sync Engine stopped")

            await self.file_watcher.stop()
            logger.info("✅ File Watcher stopped")

            await self.remote_client.close()
            logger.info("✅ Remote client closed")

            logger.info("🛑 AutoUpload stopped successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum, _):
            logger.info(f"Received signal {signum}")
            self.running = False
            # Wake up the main loop immediately
            loop.call_soon_threadsafe(self.shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        if os.name == "nt":
            # SIGTERM is not delivered on Windows, SIGBREAK is similar
            sigbreak = getattr(signal, "SIGBREAK", None)
            if sigbreak is not None:
                signal.signal(sigbreak, signal_handler)
        else:
            signal.signal(signal.SIGTERM, signal_handler)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments; the optional first one is the config file path
    """
    args = sys.argv[1:] if argv is None else argv
    config_path = Path(args[0]) if args else DEFAULT_CONFIG_PATH

    # Lets AUTOUPLOAD_ACCESS_TOKEN come from a .env file
    load_dotenv()

    if not config_path.exists():
        logger.error(f"Configuration file not found at {config_path}")
        logger.info("Creating example configuration...")
        template_config().save(config_path)
        logger.info(f"Example configuration created at {config_path}")
        logger.info("Please edit the configuration file with your access token and files, then restart.")
        return 1

    # A missing token ends the run before the rest of the file is validated
    try:
        config = load_config(config_path, require_credentials=True)
    except MissingCredentialsError:
        logger.info("No access token!")
        return 0
    except ConfigError as e:
        logger.error(f"Invalid configuration in {config_path}: {e}")
        return 1

    app = AutoUploadApp(config)
    await app.start()
    return 0


def sync_main():
    """Synchronous main entry point for setuptools."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Application interrupted")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    sync_main()
