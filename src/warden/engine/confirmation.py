"""Confirmation channels that resolve ``ask`` decisions.

The engine awaits ``confirm`` without holding any lock, so a channel may
take as long as a human needs. The engine bounds the wait with its own
timeout and treats ConfirmationUnavailable as a refusal.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import IO, Any, Callable

from warden.exceptions import ConfirmationUnavailable
from warden.schemas.confirmation import (
    ConfirmationChoice,
    ConfirmationOutcome,
    PendingApproval,
)
from warden.schemas.decision import RiskAssessment
from warden.schemas.operation import OperationRequest

logger = logging.getLogger("warden.confirmation")


class ConfirmationChannel(ABC):
    @abstractmethod
    async def confirm(
        self, request: OperationRequest, risk: RiskAssessment
    ) -> ConfirmationOutcome:
        ...


class NonInteractiveChannel(ConfirmationChannel):
    """For contexts with nobody to ask. Every ``ask`` resolves to deny."""

    async def confirm(
        self, request: OperationRequest, risk: RiskAssessment
    ) -> ConfirmationOutcome:
        raise ConfirmationUnavailable("no interactive confirmation channel configured")


class StaticConfirmationChannel(ConfirmationChannel):
    """Answers from a fixed script. The last answer repeats once the script runs out."""

    def __init__(self, answers: ConfirmationChoice | list[ConfirmationChoice]) -> None:
        self._answers = [answers] if isinstance(answers, ConfirmationChoice) else list(answers)
        if not self._answers:
            raise ValueError("at least one answer is required")
        self.calls: list[tuple[OperationRequest, RiskAssessment]] = []

    async def confirm(
        self, request: OperationRequest, risk: RiskAssessment
    ) -> ConfirmationOutcome:
        self.calls.append((request, risk))
        choice = self._answers.pop(0) if len(self._answers) > 1 else self._answers[0]
        return ConfirmationOutcome.from_choice(choice, responder="static")


# ---------------------------------------------------------------------------
# Terminal prompt
# ---------------------------------------------------------------------------

_CONSOLE_CHOICES: dict[str, ConfirmationChoice] = {
    "A": ConfirmationChoice.APPROVE_ONCE,
    "D": ConfirmationChoice.DENY_ONCE,
    "S": ConfirmationChoice.ALWAYS_ALLOW,
    "N": ConfirmationChoice.NEVER_ALLOW,
}

_MAX_VALUE_WIDTH = 100


def _format_value(value: object) -> str:
    if isinstance(value, str):
        return value if len(value) <= _MAX_VALUE_WIDTH else value[:_MAX_VALUE_WIDTH] + "..."
    return json.dumps(value, default=str)


class ConsoleConfirmationChannel(ConfirmationChannel):
    """Asks the operator on the terminal.

    Options: [A]pprove once, [D]eny once, [M]odify parameters and approve
    once, [S] always allow the tool, [N]ever allow the tool, [I] show full
    parameters and ask again. Any other answer denies.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output: IO[str] | None = None,
        require_tty: bool = True,
    ) -> None:
        self._input = input_func
        self._output = output or sys.stdout
        self._require_tty = require_tty
        self._lock = threading.Lock()

    async def confirm(
        self, request: OperationRequest, risk: RiskAssessment
    ) -> ConfirmationOutcome:
        if self._require_tty and not sys.stdin.isatty():
            raise ConfirmationUnavailable("stdin is not a terminal")
        return await asyncio.to_thread(self._prompt, request, risk)

    def _print(self, line: str = "") -> None:
        self._output.write(line + "\n")

    def _read(self, prompt: str) -> str:
        try:
            return self._input(prompt)
        except EOFError as exc:
            raise ConfirmationUnavailable("input closed") from exc

    def _prompt(self, request: OperationRequest, risk: RiskAssessment) -> ConfirmationOutcome:
        # One prompt at a time on a shared terminal
        with self._lock:
            self._print()
            self._print(f"Tool request: {request.tool_name}")
            for name, value in request.parameters.items():
                self._print(f"  {name}: {_format_value(value)}")
            self._print(f"Risk: {risk.level.value.upper()} ({risk.score}/100)")
            for factor in risk.factors:
                self._print(f"  - {factor}")
            for rec in risk.recommendations:
                self._print(f"  * {rec}")

            while True:
                self._print(
                    f"[A] approve once  [D] deny  [M] modify parameters  "
                    f"[S] always allow {request.tool_name}  "
                    f"[N] never allow {request.tool_name}  [I] more info"
                )
                answer = self._read("Decision [A/D/M/S/N/I]: ").strip().upper()
                if answer == "I":
                    self._print(json.dumps(request.parameters, indent=4, default=str))
                    continue
                if answer == "M":
                    return ConfirmationOutcome.from_choice(
                        ConfirmationChoice.APPROVE_ONCE,
                        responder="console",
                        updated_parameters=self._modify(request.parameters),
                    )
                choice = _CONSOLE_CHOICES.get(answer)
                if choice is None:
                    self._print("Invalid option, denying.")
                    choice = ConfirmationChoice.DENY_ONCE
                return ConfirmationOutcome.from_choice(choice, responder="console")

    def _modify(self, parameters: dict[str, Any]) -> dict[str, Any]:
        self._print("Edit parameters (press Enter to keep the current value):")
        updated = dict(parameters)
        for name, value in parameters.items():
            answer = self._read(f"  {name} [{_format_value(value)}]: ").strip()
            if not answer:
                continue
            if isinstance(value, str):
                updated[name] = answer
            else:
                try:
                    updated[name] = json.loads(answer)
                except ValueError:
                    updated[name] = answer
        return updated


# ---------------------------------------------------------------------------
# Remote approval (resolved through the HTTP API)
# ---------------------------------------------------------------------------


class PendingApprovalChannel(ConfirmationChannel):
    """Parks each ``ask`` until an operator resolves it by approval ID."""

    def __init__(self) -> None:
        self._pending: dict[str, tuple[PendingApproval, asyncio.Future[ConfirmationOutcome]]] = {}
        self._lock = threading.Lock()

    async def confirm(
        self, request: OperationRequest, risk: RiskAssessment
    ) -> ConfirmationOutcome:
        approval = PendingApproval(
            request_id=request.request_id,
            session_id=request.session_id,
            tool_name=request.tool_name,
            parameters=request.parameters,
            risk_assessment=risk,
        )
        future: asyncio.Future[ConfirmationOutcome] = asyncio.get_running_loop().create_future()
        with self._lock:
            self._pending[approval.approval_id] = (approval, future)
        logger.info(
            "Awaiting approval %s for %s (risk %s)",
            approval.approval_id,
            request.tool_name,
            risk.level.value,
        )
        try:
            return await future
        finally:
            with self._lock:
                self._pending.pop(approval.approval_id, None)

    def pending(self) -> list[PendingApproval]:
        with self._lock:
            return [approval for approval, _ in self._pending.values()]

    def resolve(
        self,
        approval_id: str,
        choice: ConfirmationChoice,
        reviewer: str = "unknown",
        updated_parameters: dict[str, Any] | None = None,
    ) -> bool:
        """Answer a pending approval. False if it is unknown or already settled."""
        with self._lock:
            item = self._pending.get(approval_id)
        if item is None:
            return False
        _, future = item
        if future.done():
            return False
        outcome = ConfirmationOutcome.from_choice(
            choice, responder=reviewer, updated_parameters=updated_parameters
        )

        def _settle() -> None:
            if not future.done():
                future.set_result(outcome)

        future.get_loop().call_soon_threadsafe(_settle)
        return True
