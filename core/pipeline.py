"""Processor/producer plumbing shared by CLI commands.

A command builds a request object, a ``SafeProcessor`` turns it into a
``ResultEnvelope`` (never raising), and a ``BaseProducer`` renders the envelope.
``run_pipeline`` wires the two and yields the exit code.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from .cli_errors import CLIError, ExitCode

LOG = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ResultEnvelope(Generic[R]):
    status: str
    payload: Optional[R] = None
    diagnostics: Optional[Dict[str, Any]] = None

    def ok(self) -> bool:
        return self.status.lower() == "success"

    @property
    def exit_code(self) -> int:
        if self.ok():
            return int(ExitCode.SUCCESS)
        return int((self.diagnostics or {}).get("code", ExitCode.ERROR))


class BaseProducer:
    """Renders envelopes; subclasses implement ``_produce_success``."""

    def produce(self, result: ResultEnvelope) -> None:
        if not result.ok():
            self._report_failure(result.diagnostics or {})
        elif result.payload is not None:
            self._produce_success(result.payload, result.diagnostics)

    def _produce_success(self, payload: Any, diagnostics: Optional[Dict[str, Any]]) -> None:
        raise NotImplementedError("Subclass must implement _produce_success")

    @staticmethod
    def _report_failure(diag: Dict[str, Any]) -> None:
        if diag.get("message"):
            print(f"Error: {diag['message']}", file=sys.stderr)
        if diag.get("hint"):
            print(f"Hint: {diag['hint']}", file=sys.stderr)


class SafeProcessor(Generic[T, R]):
    """Runs ``_process_safe`` and folds any exception into an error envelope.

    ``CLIError`` keeps its exit code and hint; anything else becomes
    ``ExitCode.ERROR``.
    """

    def process(self, payload: T) -> ResultEnvelope[R]:
        try:
            return ResultEnvelope(status="success", payload=self._process_safe(payload))
        except CLIError as e:
            diagnostics: Dict[str, Any] = {"message": e.message, "code": int(e.code)}
            if e.hint:
                diagnostics["hint"] = e.hint
            return ResultEnvelope(status="error", diagnostics=diagnostics)
        except Exception as e:
            LOG.debug("%s failed", type(self).__name__, exc_info=True)
            return ResultEnvelope(status="error", diagnostics={"message": str(e), "code": int(ExitCode.ERROR)})

    def _process_safe(self, payload: T) -> R:
        raise NotImplementedError("Subclass must implement _process_safe")


def run_pipeline(request: Any, processor_cls: type, producer_cls: type) -> int:
    """Process ``request``, render the outcome and return the exit code."""
    envelope = processor_cls().process(request)
    producer_cls().produce(envelope)
    return envelope.exit_code
