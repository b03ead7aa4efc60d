"""
Launcher for one-shot jobs started by an external scheduler.

A job is any object with async start() and stop(). The launcher sets up
telemetry and logging, runs start() to completion, always runs stop(), and
turns the outcome into the process exit code the scheduler acts on.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Callable, Optional, Tuple

from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

CliSetup = Callable[[], Tuple[Optional[argparse.Namespace], tuple, dict]]


class WorkerLauncher:
    """Runs a job once and reports success, failure or interruption."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.exit_code = EXIT_OK

    @staticmethod
    def configure_logging(log_level: str = "INFO") -> None:
        logging.basicConfig(
            level=getattr(logging, log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )

    def _install_signal_handlers(self, task: asyncio.Task) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, task.cancel)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    async def run_job(self, job: Any, job_name: str) -> int:
        """Run start() then stop(). Returns the exit code."""
        self._install_signal_handlers(asyncio.current_task())
        try:
            self.logger.info(f"Starting {job_name}")
            await job.start()
            self.logger.info(f"{job_name} finished")
        except asyncio.CancelledError:
            self.exit_code = EXIT_INTERRUPTED
            self.logger.warning(f"{job_name} interrupted by signal")
        except Exception as e:
            self.exit_code = EXIT_FAILED
            self.logger.error(f"{job_name} failed: {e}", exc_info=True)
        finally:
            self._remove_signal_handlers()
            try:
                await job.stop()
            except Exception as cleanup_error:
                self.logger.error(f"Cleanup of {job_name} failed: {cleanup_error}")
        return self.exit_code

    def run(
        self,
        worker_factory: Callable[..., Any],
        worker_name: str,
        factory_args: tuple = (),
        factory_kwargs: Optional[dict] = None,
        log_level: str = "INFO",
    ) -> None:
        """
        Build the job, run it and exit with a non-zero status when it did
        not finish cleanly.

        Args:
            worker_factory: Class or function that builds the job
            worker_name: Human readable name for logging
            factory_args: Positional arguments for worker_factory
            factory_kwargs: Keyword arguments for worker_factory
            log_level: Root log level
        """
        _initialize_telemetry()
        self.configure_logging(log_level)

        job = worker_factory(*factory_args, **(factory_kwargs or {}))
        exit_code = asyncio.run(self.run_job(job, worker_name))
        if exit_code != EXIT_OK:
            sys.exit(exit_code)

    def run_with_cli(
        self,
        worker_factory: Callable[..., Any],
        worker_name: str,
        cli_setup_func: Optional[CliSetup] = None,
    ) -> None:
        """
        Run a job whose factory arguments come from the command line.

        cli_setup_func returns (args, factory_args, factory_kwargs); a
        log_level attribute on args sets the root log level.
        """
        args, factory_args, factory_kwargs = (
            cli_setup_func() if cli_setup_func else (None, (), {})
        )
        self.run(
            worker_factory=worker_factory,
            worker_name=worker_name,
            factory_args=factory_args,
            factory_kwargs=factory_kwargs,
            log_level=getattr(args, "log_level", None) or "INFO",
        )
