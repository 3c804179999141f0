"""TransactionController — drives sessions through SMTP transaction events.

The host calls one method per protocol event, in protocol order, never
concurrently for the same session.  Every method contains its own
failures: a broken header, an unreachable directory or a host contract
violation is logged and the message passes through unchanged.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from .address import extract_address, try_extract_address
from .config import FilterConfig
from .directory_client import DirectoryClient
from .errors import AddressNotFound, DirectoryError, SessionTypeError
from .models import LookupStats
from .retry import with_retry
from .session import LineKind, Session, classify_line

logger = structlog.get_logger()


class TransactionController:
    """Correlates envelope and header facts and injects the address-book header."""

    def __init__(
        self,
        config: FilterConfig,
        client_factory: Callable[[], DirectoryClient] | None = None,
    ) -> None:
        self.config = config
        self.stats = LookupStats()
        self._client_factory = client_factory or (lambda: DirectoryClient(config.directory))
        self._retry = with_retry(config.retry)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def new_session(self, session_id: str) -> Session:
        """Allocate the session object for a new SMTP connection."""
        return Session(session_id=session_id, client=self._client_factory())

    async def discard(self, session: Session) -> None:
        """Release the resources held by a session at connection close."""
        await session.client.aclose()

    @staticmethod
    def _check(session: object) -> Session:
        if not isinstance(session, Session):
            raise SessionTypeError(session)
        return session

    async def _clear(self, event: str, session: object, message_id: str) -> None:
        try:
            checked = self._check(session)
            previous = checked.client
            checked.reset(self._client_factory(), message_id)
            await previous.aclose()
        except Exception as exc:
            logger.error(f"{event}_error", session=str(session), message_id=message_id, error=str(exc))
            return
        logger.info(event, session=checked.session_id, message_id=message_id)

    # ------------------------------------------------------------------
    # Transaction events
    # ------------------------------------------------------------------

    async def tx_begin(self, session: Session, message_id: str) -> None:
        await self._clear("tx_begin", session, message_id)

    async def tx_reset(self, session: Session, message_id: str) -> None:
        await self._clear("tx_reset", session, message_id)

    async def tx_mail(self, session: Session, message_id: str, result: str, address: str) -> None:
        try:
            session = self._check(session)
        except SessionTypeError as exc:
            logger.error("tx_mail_error", message_id=message_id, error=str(exc))
            return

        if session.envelope_from is not None:
            logger.warning(
                "redundant_envelope_from",
                session=session.session_id,
                message_id=message_id,
                kept=session.envelope_from,
                ignored=address,
            )
            return
        session.envelope_from = address
        logger.info(
            "tx_mail",
            session=session.session_id,
            message_id=message_id,
            result=result,
            address=address,
        )

    async def tx_rcpt(self, session: Session, message_id: str, result: str, address: str) -> None:
        try:
            session = self._check(session)
        except SessionTypeError as exc:
            logger.error("tx_rcpt_error", message_id=message_id, error=str(exc))
            return

        session.envelope_to.append(address)
        logger.info(
            "tx_rcpt",
            session=session.session_id,
            message_id=message_id,
            result=result,
            address=address,
        )

    async def tx_commit(self, session: Session, message_id: str, size: int) -> None:
        logger.info("tx_commit", session=getattr(session, "session_id", None), message_id=message_id, size=size)

    async def tx_rollback(self, session: Session, message_id: str) -> None:
        logger.info("tx_rollback", session=getattr(session, "session_id", None), message_id=message_id)

    # ------------------------------------------------------------------
    # Data lines
    # ------------------------------------------------------------------

    async def data_line(self, session: Session, line: str) -> list[str]:
        """Return the lines that replace *line* in the message (``[]`` drops it)."""
        try:
            session = self._check(session)
        except SessionTypeError as exc:
            logger.error("data_line_error", line=line, error=str(exc))
            return [line]

        log = logger.bind(session=session.session_id, message_id=session.message_id)
        log.debug("data_line", line=line)
        session.data_started = True

        kind = classify_line(
            line,
            header_complete=session.header_complete,
            marker=self.config.header_prefix,
        )

        if kind is LineKind.ADDRESS_BOOK:
            self.stats.headers_suppressed += 1
            log.info("header_suppressed", line=line)
            return []

        if kind is LineKind.FROM:
            if session.header_from is not None:
                log.warning("redundant_header", header="From", kept=session.header_from, line=line)
                return [line]
            try:
                session.header_from = extract_address(line)
            except AddressNotFound as exc:
                log.warning("header_parse_failed", header="From", line=line, error=str(exc))
            return [line]

        if kind is LineKind.TO:
            if session.header_to is not None:
                log.warning("redundant_header", header="To", kept=session.header_to, line=line)
                return [line]
            try:
                session.header_to = extract_address(line)
            except AddressNotFound as exc:
                log.warning("header_parse_failed", header="To", line=line, error=str(exc))
            return [line]

        if kind is LineKind.BLANK:
            session.header_complete = True
            log.info(
                "header_complete",
                header_from=session.header_from,
                header_to=session.header_to,
                envelope_from=session.envelope_from,
                envelope_to=session.envelope_to,
            )
            if not self.config.lookup_enabled:
                return [line]
            header = await self._lookup_header(session, log)
            if header is None:
                return [line]
            return [header, line]

        return [line]

    # ------------------------------------------------------------------
    # Directory lookup
    # ------------------------------------------------------------------

    def _lookup_parties(self, session: Session) -> tuple[str | None, list[str]]:
        sender = session.header_from
        if sender is None and session.envelope_from is not None:
            sender = try_extract_address(session.envelope_from)

        recipients: list[str] = []
        for address in session.envelope_to:
            recipient = try_extract_address(address)
            if recipient is not None and recipient not in recipients:
                recipients.append(recipient)
        if not recipients and session.header_to is not None:
            recipients.append(session.header_to)
        return sender, recipients

    async def _lookup_header(self, session: Session, log: structlog.stdlib.BoundLogger) -> str | None:
        sender, recipients = self._lookup_parties(session)
        if sender is None or not recipients:
            log.info("lookup_skipped", sender=sender, recipients=recipients)
            return None

        books: set[str] = set()
        for recipient in recipients:
            log.info("lookup", sender=sender, recipient=recipient)
            self.stats.lookups += 1
            try:
                found = await self._retry(session.client.scan)(recipient, sender)
            except DirectoryError as exc:
                self.stats.failures += 1
                log.error("lookup_failed", sender=sender, recipient=recipient, error=str(exc))
                continue
            if found:
                self.stats.hits += 1
            books.update(found)

        if not books:
            return None

        header = f"{self.config.header_name}: {','.join(sorted(books))}"
        self.stats.headers_added += 1
        log.info("add_header", header=header)
        return header
