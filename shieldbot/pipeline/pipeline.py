"""
Inbound message safety pipeline.

Every inbound message passes, in order:

    Shield -> Sanitizer -> Anti-Spam -> Dispatcher

A stage that rejects a message ends processing for it. Each stage boundary
is also a catch boundary: an unexpected exception drops the message with
outcome ERROR and is logged, so nothing raised while handling one message
reaches the session.

Example:
    pipeline = MessagePipeline(Shield(), Sanitizer(), AntiSpam(sender), dispatcher)
    result = await pipeline.process(InboundMessage.from_raw(raw))
    if result.outcome == PipelineOutcome.BLOCKED:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from shieldbot.pipeline.dispatcher import Dispatcher, DispatchReport
from shieldbot.protocol.base import InboundMessage, SanitizedMessage
from shieldbot.security.antispam import AntiSpam
from shieldbot.security.sanitizer import Sanitizer
from shieldbot.security.shield import Shield

logger = logging.getLogger(__name__)


class PipelineOutcome(str, Enum):
    """Terminal state of one message in the pipeline."""

    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    IGNORED_BROADCAST = "ignored_broadcast"
    DISPATCHED = "dispatched"
    NO_HANDLER = "no_handler"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineResult:
    """
    Result of processing one message.

    Attributes:
        outcome: Where the message ended up.
        reason: Human-readable detail (block reason, failing stage, ...).
        sanitized: The sanitized message, once the Sanitizer ran.
        report: The dispatch report, once the Dispatcher ran.
    """

    outcome: PipelineOutcome
    reason: str = ""
    sanitized: SanitizedMessage | None = None
    report: DispatchReport | None = None

    @property
    def delivered(self) -> bool:
        return self.outcome == PipelineOutcome.DISPATCHED


class MessagePipeline:
    """Runs the four safety stages over each inbound message."""

    def __init__(
        self,
        shield: Shield,
        sanitizer: Sanitizer,
        antispam: AntiSpam,
        dispatcher: Dispatcher,
    ) -> None:
        self.shield = shield
        self.sanitizer = sanitizer
        self.antispam = antispam
        self.dispatcher = dispatcher

    async def process(self, message: InboundMessage) -> PipelineResult:
        """Push *message* through every stage. Never raises."""
        # Shield
        try:
            verdict = self.shield.inspect(message)
        except Exception as e:
            return self._error("shield", message, e)
        if verdict.blocked:
            logger.warning(
                f"Shield blocked message {message.id} from {message.remote_id}: "
                f"{verdict.reason}"
            )
            return PipelineResult(PipelineOutcome.BLOCKED, verdict.reason)

        # Sanitizer
        try:
            sanitized = self.sanitizer.sanitize(message)
        except Exception as e:
            return self._error("sanitizer", message, e)
        if sanitized.flags:
            logger.debug(
                f"Sanitized message {message.id}: {', '.join(sorted(sanitized.flags))}"
            )

        # Anti-spam
        try:
            spam = await self.antispam.check(sanitized)
        except Exception as e:
            return self._error("antispam", message, e, sanitized)
        if spam.blocked:
            return PipelineResult(PipelineOutcome.RATE_LIMITED, spam.reason, sanitized)

        # Dispatcher
        try:
            report = await self.dispatcher.dispatch(sanitized)
        except Exception as e:
            return self._error("dispatcher", message, e, sanitized)

        if report.ignored:
            outcome = PipelineOutcome.IGNORED_BROADCAST
        elif report.invoked:
            outcome = PipelineOutcome.DISPATCHED
        else:
            outcome = PipelineOutcome.NO_HANDLER
        return PipelineResult(outcome, "", sanitized, report)

    @staticmethod
    def _error(
        stage: str,
        message: InboundMessage,
        error: Exception,
        sanitized: SanitizedMessage | None = None,
    ) -> PipelineResult:
        logger.exception(f"Pipeline stage {stage} failed on message {message.id}")
        return PipelineResult(
            PipelineOutcome.ERROR,
            f"{stage}: {type(error).__name__}",
            sanitized,
        )
