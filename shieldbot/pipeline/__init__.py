"""shieldbot inbound pipeline: safety stages, dispatch and first contact."""

from shieldbot.pipeline.dispatcher import DispatchReport, Dispatcher
from shieldbot.pipeline.first_contact import FirstContactGreeter
from shieldbot.pipeline.pipeline import (
    MessagePipeline,
    PipelineOutcome,
    PipelineResult,
)

__all__ = [
    "DispatchReport",
    "Dispatcher",
    "FirstContactGreeter",
    "MessagePipeline",
    "PipelineOutcome",
    "PipelineResult",
]
