"""Temporal worker for batch transcription workflows.

The worker connects to the Temporal server and executes workflows and activities.
Run this before starting any transcriptions.

Usage:
    # Start Temporal server first:
    temporal server start-dev

    # Then run the worker:
    batch-transcription worker --config settings.yaml

Features:
    - Registers the submission and monitor workflows and their activities
    - Owns the HTTP client and object store used by the activities
    - Graceful shutdown on SIGINT/SIGTERM
"""

import asyncio
import logging
import signal
from contextlib import asynccontextmanager

import httpx
from temporalio.client import Client
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import (
    SandboxedWorkflowRunner,
    SandboxRestrictions,
)

from core.config import DEFAULT_TASK_QUEUE, Settings
from core.storage import ObjectStore, create_store

from .activities import TranscriptionActivities
from .workflows import MonitorTranscriptionWorkflow, TranscribeAudioWorkflow

logger = logging.getLogger(__name__)

# Task queue name - all workflows and activities use this by default
TASK_QUEUE = DEFAULT_TASK_QUEUE

# All workflows to register
WORKFLOWS = [
    TranscribeAudioWorkflow,
    MonitorTranscriptionWorkflow,
]

# Side-effect free at import time; shared with the sandbox instead of reloaded
PASSTHROUGH_MODULES = (
    "core",
    "orchestrators",
    "httpx",
    "pydantic",
    "yaml",
)


def create_workflow_runner() -> SandboxedWorkflowRunner:
    """Sandbox runner that shares this project's modules with the host."""
    return SandboxedWorkflowRunner(
        restrictions=SandboxRestrictions.default.with_passthrough_modules(*PASSTHROUGH_MODULES)
    )


def get_activities(impl: TranscriptionActivities) -> list:
    """Bound activity methods to register on a worker."""
    return [
        impl.submit_transcription,
        impl.get_transcription_status,
        impl.save_transcription,
    ]


@asynccontextmanager
async def create_worker(
    settings: Settings,
    client: Client | None = None,
    store: ObjectStore | None = None,
):
    """Create and manage a Temporal worker with proper lifecycle.

    Args:
        settings: Deployment settings
        client: Optional pre-connected client
        store: Optional object store (default: built from the connection string)

    Yields:
        Configured Worker instance
    """
    if client is None:
        client = await Client.connect(
            settings.temporal.address, namespace=settings.temporal.namespace
        )
    if store is None:
        store = create_store(settings.storage_connection_string)

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
        activities = TranscriptionActivities(settings, store, http_client)
        yield Worker(
            client,
            task_queue=settings.temporal.task_queue,
            workflows=WORKFLOWS,
            activities=get_activities(activities),
            workflow_runner=create_workflow_runner(),
        )


async def run_worker(
    settings: Settings,
    client: Client | None = None,
    graceful_shutdown: bool = True,
):
    """Run the Temporal worker with optional graceful shutdown handling.

    Args:
        settings: Deployment settings
        client: Optional pre-connected client
        graceful_shutdown: Whether to handle SIGINT/SIGTERM gracefully
    """
    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    if graceful_shutdown:
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async with create_worker(settings, client=client) as worker:
        logger.info(f"Starting Temporal worker on task queue: {settings.temporal.task_queue}")
        logger.info(f"Connected to: {settings.temporal.address}")
        logger.info(f"Namespace: {settings.temporal.namespace}")
        logger.info(f"Registered workflows: {', '.join(wf.__name__ for wf in WORKFLOWS)}")

        if not graceful_shutdown:
            await worker.run()
            return

        worker_task = asyncio.create_task(worker.run())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, _ = await asyncio.wait(
            [worker_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        if shutdown_task in done:
            logger.info("Shutting down worker...")
            await worker.shutdown()
            await worker_task
            logger.info("Worker stopped gracefully.")
        else:
            shutdown_task.cancel()
            # Re-raise whatever stopped the worker
            worker_task.result()
