"""Application wiring for the Sparkscan Batch Analyzer."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterable, Optional

from .clients import SparkscanClient
from .config import AppConfig, SettingsError, get_settings
from .processors import JobController
from .storage import Job, ResultStore, create_result_store


class SparkBatchApp:
    """Main application class: owns configuration, store, client and controller."""

    def __init__(self, config: Optional[AppConfig] = None):
        """Initialize the application.

        Args:
            config: Explicit configuration; loaded from the environment when omitted
        """
        self.config = config
        self.store: Optional[ResultStore] = None
        self.client: Optional[SparkscanClient] = None
        self.controller: Optional[JobController] = None

        self._initialized = False
        self._logger = logging.getLogger(__name__)

    async def initialize(self, log_level: Optional[str] = None) -> None:
        """Initialize all application components."""
        if self._initialized:
            return

        try:
            if self.config is None:
                self._load_configuration()

            self._setup_logging(log_level)
            self._logger.info("🚀 Initializing Sparkscan Batch Analyzer")

            await self._initialize_store()
            self._initialize_client()

            self.controller = JobController(
                store=self.store,
                client=self.client,
                processing=self.config.processing,
            )

            self._initialized = True
            self._logger.info("✅ Application initialized successfully")

        except Exception as e:
            self._logger.error(f"❌ Failed to initialize application: {e}")
            await self.cleanup()
            raise

    def _load_configuration(self) -> None:
        """Load and validate application configuration."""
        settings = get_settings()
        validation_result = settings.validate_config()

        if not validation_result["valid"]:
            error_msg = "Configuration validation failed:\n" + "\n".join(validation_result["issues"])
            raise SettingsError(error_msg)

        self.config = settings.get_config()
        for warning in validation_result["warnings"]:
            self._logger.warning(f"⚠️ Configuration warning: {warning}")

    def _setup_logging(self, level_override: Optional[str] = None) -> None:
        """Setup application logging."""
        log_config = self.config.logging
        level = getattr(logging, (level_override or log_config.level).upper())

        handlers = []

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

        if log_config.file:
            log_config.file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_config.file,
                maxBytes=log_config.max_size_mb * 1024 * 1024,
                backupCount=log_config.backup_count
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
            ))
            handlers.append(file_handler)

        logging.basicConfig(level=level, handlers=handlers, force=True)

        # Reduce noise from external libraries
        logging.getLogger("aiohttp").setLevel(logging.WARNING)

        self._logger = logging.getLogger(__name__)
        self._logger.debug(f"📋 Logging configured: level={logging.getLevelName(level)}, file={log_config.file}")

    async def _initialize_store(self) -> None:
        """Initialize the result store and check it is reachable."""
        self._logger.info(f"💾 Initializing {self.config.get_storage_backend()} result store")
        self.store = create_result_store(self.config.storage)

        if not await self.store.health_check():
            raise SettingsError(f"Result store '{self.config.get_storage_backend()}' is not reachable")

    def _initialize_client(self) -> None:
        self._logger.info("🔌 Initializing Sparkscan client")
        self.client = SparkscanClient(
            config=self.config.sparkscan,
            processing=self.config.processing,
        )

    async def run_job(
        self,
        addresses: Iterable[str],
        name: Optional[str] = None,
        rate_limit: Optional[int] = None,
        target_token_address: Optional[str] = None,
    ) -> Job:
        """Run one batch job to completion."""
        if not self._initialized:
            await self.initialize()

        return await self.controller.run_job(
            addresses,
            name=name,
            rate_limit=rate_limit,
            target_token_address=target_token_address,
        )

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {}
        if self.client:
            stats["client"] = self.client.get_stats()
        if self.store and hasattr(self.store, "get_stats"):
            stats["store"] = self.store.get_stats()
        return stats

    async def cleanup(self) -> None:
        """Stop running jobs and release connections."""
        if self.controller:
            await self.controller.shutdown()

        if self.client:
            try:
                await self.client.close()
            except Exception as e:
                self._logger.warning(f"⚠️ Error closing Sparkscan client: {e}")

        if self.store:
            try:
                await self.store.close()
            except Exception as e:
                self._logger.warning(f"⚠️ Error closing result store: {e}")

        self._initialized = False
        self._logger.debug("🧹 Cleanup completed")


# Global application instance
_app_instance: Optional[SparkBatchApp] = None


def get_app() -> SparkBatchApp:
    """Get or create global application instance."""
    global _app_instance
    if _app_instance is None:
        _app_instance = SparkBatchApp()
    return _app_instance
