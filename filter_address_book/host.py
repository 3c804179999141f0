"""FilterHost — speaks the smtpd filter protocol and dispatches session events."""

from __future__ import annotations

import asyncio
import functools
import signal
import sys
import time
from collections.abc import Awaitable, Callable
from typing import BinaryIO

import structlog
import uvicorn

from . import __version__
from .config import FilterConfig
from .controller import TransactionController
from .errors import ProtocolError
from .health import create_health_app
from .models import FilterStatus
from .protocol import (
    SUBSYSTEM,
    ConfigLine,
    FilterRequest,
    ReportEvent,
    format_dataline,
    parse_line,
    registration_lines,
)
from .session import Session

logger = structlog.get_logger()

STREAM_LIMIT = 4 * 1024 * 1024
ENCODING_ERRORS = "surrogateescape"

Job = Callable[[], Awaitable[None]]


class SessionWorker:
    """Mailbox for one SMTP session.

    Jobs are run one at a time, in arrival order, by a dedicated task, so
    the session object is only ever touched from that task.  A slow
    directory lookup holds up this session's queue and nothing else.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.queue: asyncio.Queue[Job | None] = asyncio.Queue()
        self.task: asyncio.Task[None] | None = None


async def open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STREAM_LIMIT)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


class FilterHost:
    """Runs the filter conversation with smtpd.

    Reads protocol records from *reader*, answers the configuration
    handshake with the event registrations, keeps one
    :class:`SessionWorker` per SMTP session and writes ``filter-dataline``
    responses to *output*.
    """

    def __init__(
        self,
        config: FilterConfig,
        controller: TransactionController | None = None,
        *,
        reader: asyncio.StreamReader | None = None,
        output: BinaryIO | None = None,
        name: str = "filter-address-book",
        version: str = __version__,
    ) -> None:
        self.config = config
        self.controller = controller or TransactionController(config)
        self.name = name
        self.version = version
        self.status: FilterStatus = FilterStatus.STARTING
        self.start_time: float = time.monotonic()
        self.protocol_version: str | None = None
        self.registered = False

        self._reader = reader
        self._output = output if output is not None else sys.stdout.buffer
        self._workers: dict[str, SessionWorker] = {}
        self._shutdown_event = asyncio.Event()

    @property
    def active_sessions(self) -> int:
        return len(self._workers)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _write(self, line: str) -> None:
        self._output.write(f"{line}\n".encode("utf-8", ENCODING_ERRORS))
        self._output.flush()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _allocate(self, session_id: str) -> SessionWorker:
        worker = SessionWorker(self.controller.new_session(session_id))
        worker.task = asyncio.create_task(self._run_worker(worker))
        self._workers[session_id] = worker
        logger.debug("session_allocated", session=session_id)
        return worker

    def _worker_for(self, session_id: str) -> SessionWorker:
        worker = self._workers.get(session_id)
        if worker is None:
            # smtpd was already talking to this session before we started
            logger.info("session_allocated_implicitly", session=session_id)
            worker = self._allocate(session_id)
        return worker

    def _release(self, session_id: str) -> None:
        worker = self._workers.pop(session_id, None)
        if worker is None:
            return
        worker.queue.put_nowait(None)
        logger.debug("session_released", session=session_id)

    async def _run_worker(self, worker: SessionWorker) -> None:
        try:
            while True:
                job = await worker.queue.get()
                if job is None:
                    worker.queue.task_done()
                    return
                try:
                    await job()
                except Exception:
                    logger.exception("session_event_failed", session=worker.session.session_id)
                finally:
                    worker.queue.task_done()
        finally:
            await self.controller.discard(worker.session)

    async def drain(self) -> None:
        """Wait until every queued session event has been processed."""
        await asyncio.gather(*(worker.queue.join() for worker in list(self._workers.values())))

    async def close_sessions(self) -> None:
        """Stop every session worker and release its directory client."""
        workers = list(self._workers.values())
        for session_id in list(self._workers):
            self._release(session_id)
        tasks = [worker.task for worker in workers if worker.task is not None]
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Record dispatch
    # ------------------------------------------------------------------

    async def handle_line(self, line: str) -> None:
        """Dispatch one protocol record.  Malformed records are logged and skipped."""
        try:
            record = parse_line(line)
        except ProtocolError as exc:
            logger.warning("protocol_error", error=str(exc))
            return

        if isinstance(record, ConfigLine):
            self._handle_config(record)
        elif isinstance(record, ReportEvent):
            self._handle_report(record)
        else:
            self._handle_filter(record)

    def _handle_config(self, record: ConfigLine) -> None:
        if record.key == "protocol":
            self.protocol_version = record.value
        logger.debug("config", key=record.key, value=record.value)
        if record.ready:
            for line in registration_lines():
                self._write(line)
            self.registered = True
            self.status = FilterStatus.RUNNING
            logger.info("filter_registered", protocol=self.protocol_version)

    def _handle_report(self, event: ReportEvent) -> None:
        if event.subsystem != SUBSYSTEM:
            return

        if event.event == "link-connect":
            if event.session_id not in self._workers:
                self._allocate(event.session_id)
            return
        if event.event == "link-disconnect":
            self._release(event.session_id)
            return

        try:
            job = self._report_job(event)
        except ProtocolError as exc:
            logger.warning("protocol_error", session=event.session_id, error=str(exc))
            return
        if job is None:
            logger.debug("report_ignored", event=event.event, session=event.session_id)
            return
        self._worker_for(event.session_id).queue.put_nowait(job)

    def _report_job(self, event: ReportEvent) -> Job | None:
        controller = self.controller
        worker = self._worker_for(event.session_id)
        session = worker.session

        if event.event == "tx-begin":
            return functools.partial(controller.tx_begin, session, event.message_id())
        if event.event == "tx-reset":
            return functools.partial(controller.tx_reset, session, event.message_id())
        if event.event == "tx-rollback":
            return functools.partial(controller.tx_rollback, session, event.message_id())
        if event.event == "tx-mail":
            return functools.partial(controller.tx_mail, session, *event.envelope())
        if event.event == "tx-rcpt":
            return functools.partial(controller.tx_rcpt, session, *event.envelope())
        if event.event == "tx-commit":
            return functools.partial(controller.tx_commit, session, *event.commit())
        return None

    def _handle_filter(self, request: FilterRequest) -> None:
        if request.phase != "data-line":
            logger.warning("filter_phase_unsupported", phase=request.phase, session=request.session_id)
            return
        worker = self._worker_for(request.session_id)
        worker.queue.put_nowait(functools.partial(self._data_line, worker.session, request))

    async def _data_line(self, session: Session, request: FilterRequest) -> None:
        try:
            lines = await self.controller.data_line(session, request.params)
        except Exception:
            logger.exception("data_line_failed", session=session.session_id, line=request.params)
            lines = [request.params]
        for line in lines:
            self._write(format_dataline(request, line))

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run_dispatch_loop(self, reader: asyncio.StreamReader) -> None:
        logger.info("dispatch_loop_started")
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                await self.handle_line(raw.decode("utf-8", ENCODING_ERRORS).rstrip("\r\n"))
            await self.drain()
        finally:
            logger.info("dispatch_loop_stopped")
            self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        """Let SIGTERM (sent by smtpd when it exits) and SIGINT end the run loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        self._shutdown_event.set()

    async def _watch_shutdown(self, dispatch: asyncio.Task[None]) -> None:
        await self._shutdown_event.wait()
        dispatch.cancel()

    async def _run_health_server(self) -> None:
        """Serve the health app until the shutdown event fires."""
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="127.0.0.1",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    async def run(self) -> None:
        """Talk to smtpd until stdin closes or a shutdown signal arrives.

        Called from the CLI as::

            asyncio.run(host.run())
        """
        self._install_signal_handlers()
        self.start_time = time.monotonic()
        reader = self._reader if self._reader is not None else await open_stdin()

        logger.info("filter_starting", filter=self.name, version=self.version)

        try:
            async with asyncio.TaskGroup() as tg:
                dispatch = tg.create_task(self._run_dispatch_loop(reader))
                tg.create_task(self._watch_shutdown(dispatch))
                if self.config.health_port:
                    tg.create_task(self._run_health_server())
        except* Exception:
            logger.exception("filter_task_group_error", filter=self.name)
        finally:
            self.status = FilterStatus.STOPPING
            await self.close_sessions()
            self.status = FilterStatus.STOPPED
            logger.info("filter_stopped", filter=self.name)
