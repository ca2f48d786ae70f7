"""Policy engine: the allow/deny/ask pipeline for one operation request.

Decision flow:
  (tool_name, parameters)
         |
  [1] canonical key            invalid request -> DENY
         |
  [2] rate limiter             cap reached     -> DENY
         |
  [3] decision cache           hit             -> cached decision
         |
  [4] critical Delete paths    protected path  -> DENY (not configurable)
         |
  [5] rule store               deny -> DENY, allow -> ALLOW, ask -> [7]
         |
  [6] no rule: trivial read tool -> ALLOW, otherwise DENY (default deny)
         |
  [7] confirmation channel     approve -> ALLOW (temporary grant), else DENY
                               approve with edits -> ALLOW once, rechecked
         |
  [8] audit trail, return Decision

Every failure resolves to DENY. ``evaluate`` only raises if the calling task
is cancelled while a confirmation is pending.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable

from pydantic import ValidationError

from warden.engine.audit import AuditTrail, JsonlAuditSink
from warden.engine.confirmation import ConfirmationChannel, NonInteractiveChannel
from warden.engine.decision_cache import DecisionCache
from warden.engine.keys import canonical_key, canonical_tool_name, identifying_value
from warden.engine.rate_limiter import ToolRateLimiter
from warden.engine.risk_analyzer import HeuristicRiskAnalyzer, RiskAnalyzer
from warden.engine.rule_store import (
    RuleFileWatcher,
    RuleMatch,
    RulePolicyStore,
    RuleSet,
    RuleSource,
    critical_delete_block,
)
from warden.exceptions import ConfirmationUnavailable, InvalidRequest
from warden.schemas.audit import AuditEntry
from warden.schemas.confirmation import ConfirmationOutcome
from warden.schemas.decision import (
    Decision,
    DecisionBehavior,
    DecisionSource,
    RiskAssessment,
    RiskLevel,
)
from warden.schemas.operation import OperationRequest
from warden.schemas.policy import RuleTier

logger = logging.getLogger("warden.engine")

DEFAULT_TRIVIAL_TOOLS = ("LS", "Grep", "Glob")


@dataclass
class EngineStatistics:
    total: int = 0
    allowed: int = 0
    denied: int = 0
    asked: int = 0
    cache_hits: int = 0
    rate_limited: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class PolicyEngine:
    def __init__(
        self,
        rule_store: RulePolicyStore,
        *,
        risk_analyzer: RiskAnalyzer | None = None,
        rate_limiter: ToolRateLimiter | None = None,
        cache: DecisionCache | None = None,
        audit: AuditTrail | None = None,
        confirmation: ConfirmationChannel | None = None,
        trivial_tools: tuple[str, ...] | list[str] = DEFAULT_TRIVIAL_TOOLS,
        confirmation_timeout: float | None = None,
        session_id: str | None = None,
    ) -> None:
        self.rule_store = rule_store
        # An empty DecisionCache is falsy, so test for None explicitly
        self.risk_analyzer = risk_analyzer if risk_analyzer is not None else HeuristicRiskAnalyzer()
        self.rate_limiter = rate_limiter if rate_limiter is not None else ToolRateLimiter()
        self.cache = cache if cache is not None else DecisionCache()
        self.audit = audit if audit is not None else AuditTrail()
        self.confirmation = confirmation if confirmation is not None else NonInteractiveChannel()
        self.trivial_tools = frozenset(canonical_tool_name(t) for t in trivial_tools)
        self.confirmation_timeout = confirmation_timeout
        self.session_id = session_id or uuid.uuid4().hex
        self._stats = EngineStatistics()
        self._stats_lock = threading.Lock()
        self._watcher: RuleFileWatcher | None = None

    @classmethod
    def from_settings(
        cls, settings: Any, confirmation: ConfirmationChannel | None = None
    ) -> PolicyEngine:
        """Build an engine from a ``warden.config.Settings`` instance."""
        store = RulePolicyStore(settings.permissions_path, settings.active_profiles)
        store.load()
        audit = AuditTrail()
        if settings.audit_log_path:
            audit.add_sink(JsonlAuditSink(settings.audit_log_path))
        return cls(
            store,
            rate_limiter=ToolRateLimiter(
                limits=settings.rate_limits,
                default_limit=settings.default_rate_limit,
                window=settings.rate_window_seconds,
            ),
            cache=DecisionCache(
                ttl=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
            audit=audit,
            confirmation=confirmation,
            trivial_tools=settings.trivial_tools,
            confirmation_timeout=settings.confirmation_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @property
    def rules(self) -> RuleSet:
        return self.rule_store.rules

    def reload_rules(self, source: RuleSource | None = None) -> None:
        """Replace the rule lists and drop every cached decision."""
        if source is None:
            changed = self.rule_store.reload()
        else:
            self.rule_store.load(source)
            changed = True
        if changed:
            self.cache.clear()
            logger.info("Rules reloaded (v%d), decision cache cleared", self.rules.version)

    def add_rule(self, tier: RuleTier, pattern: str, persist: bool = True) -> None:
        self.rule_store.add_rule(tier, pattern, persist=persist)
        self.cache.clear()

    def start_watching(self) -> None:
        """Hot-reload rules whenever the backing file changes."""
        if self._watcher is not None or self.rule_store.path is None:
            return
        self._watcher = RuleFileWatcher(self.rule_store.path, self.reload_rules)
        self._watcher.start()

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def statistics(self) -> dict[str, int]:
        with self._stats_lock:
            return self._stats.as_dict()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        tool_name: str,
        parameters: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Decision:
        try:
            request = OperationRequest(
                tool_name=tool_name,
                parameters=parameters or {},
                session_id=session_id or self.session_id,
            )
        except ValidationError as exc:
            return self._invalid(str(tool_name), session_id, f"invalid request: {exc.errors()[0]['msg']}")

        try:
            return await self._evaluate(request)
        except Exception:
            logger.exception("Evaluation failed for %s, denying", request.tool_name)
            decision = Decision(
                tool_name=request.tool_name,
                canonical_key=f"{request.tool_name}(?)",
                behavior=DecisionBehavior.DENY,
                reason="internal error during evaluation",
                source=DecisionSource.DEFAULT,
            )
            return self._record(request, decision)

    async def evaluate_request(self, request: OperationRequest) -> Decision:
        return await self.evaluate(request.tool_name, request.parameters, request.session_id)

    async def _evaluate(self, request: OperationRequest) -> Decision:
        tool = request.tool_name

        # [1] canonical key
        try:
            key = canonical_key(tool, request.parameters)
        except InvalidRequest as exc:
            return self._invalid(tool, request.session_id, f"invalid request: {exc.detail}")

        # [2] rate limit (cache hits count too)
        if not self.rate_limiter.try_acquire(tool):
            cap = self.rate_limiter.limit_for(tool)
            with self._stats_lock:
                self._stats.rate_limited += 1
            decision = Decision(
                tool_name=tool,
                canonical_key=key,
                behavior=DecisionBehavior.DENY,
                reason=f"rate limit exceeded: {cap} {tool} calls per {self.rate_limiter.window:g}s",
                source=DecisionSource.RATE_LIMIT,
            )
            return self._record(request, decision)

        # [3] cache
        entry = self.cache.get(key)
        if entry is not None:
            with self._stats_lock:
                self._stats.cache_hits += 1
            return self._record(request, entry.decision, cache_hit=True)

        # [4] hardcoded Delete overrides
        if tool == "Delete":
            protected = critical_delete_block(identifying_value(tool, request.parameters) or "")
            if protected is not None:
                decision = Decision(
                    tool_name=tool,
                    canonical_key=key,
                    behavior=DecisionBehavior.DENY,
                    reason=f"cannot delete critical path: {protected}",
                    source=DecisionSource.OVERRIDE,
                )
                return self._record(request, decision)

        risk = self.risk_analyzer.assess(tool, request.parameters)

        # [5] configured rules
        match = self.rule_store.evaluate(key)
        if match is not None and match.tier == RuleTier.ASK:
            return await self._ask(request, key, match, risk)
        if match is not None:
            decision = self._rule_decision(tool, key, match, risk)
        # [6] nothing matched
        elif tool in self.trivial_tools:
            decision = Decision(
                tool_name=tool,
                canonical_key=key,
                behavior=DecisionBehavior.ALLOW,
                reason=f"{tool} is a read-only tool",
                source=DecisionSource.TRIVIAL,
                risk_assessment=risk,
            )
        else:
            decision = Decision(
                tool_name=tool,
                canonical_key=key,
                behavior=DecisionBehavior.DENY,
                reason="no matching rule (default deny)",
                source=DecisionSource.DEFAULT,
                risk_assessment=risk,
            )

        self.cache.put(key, decision)
        return self._record(request, decision)

    def _rule_decision(
        self, tool: str, key: str, match: RuleMatch, risk: RiskAssessment
    ) -> Decision:
        if match.tier == RuleTier.DENY:
            behavior = DecisionBehavior.DENY
            reason = f"blocked by deny rule: {match.pattern}"
        else:
            behavior = DecisionBehavior.ALLOW
            reason = f"allowed by rule: {match.pattern}"
        return Decision(
            tool_name=tool,
            canonical_key=key,
            behavior=behavior,
            reason=reason,
            matched_pattern=match.pattern,
            source=DecisionSource.RULE,
            risk_assessment=risk,
        )

    # ------------------------------------------------------------------
    # Ask
    # ------------------------------------------------------------------

    async def _ask(
        self, request: OperationRequest, key: str, match: RuleMatch, risk: RiskAssessment
    ) -> Decision:
        tool = request.tool_name
        with self._stats_lock:
            self._stats.asked += 1

        def refuse(reason: str) -> Decision:
            return Decision(
                tool_name=tool,
                canonical_key=key,
                behavior=DecisionBehavior.DENY,
                reason=reason,
                matched_pattern=match.pattern,
                automatic=False,
                source=DecisionSource.CONFIRMATION,
                risk_assessment=risk,
            )

        try:
            outcome: ConfirmationOutcome = await asyncio.wait_for(
                self.confirmation.confirm(request, risk), self.confirmation_timeout
            )
        except asyncio.CancelledError:
            logger.info("Confirmation for %s cancelled, denying", key)
            self._record(request, refuse("confirmation cancelled"))
            raise
        except TimeoutError:
            logger.warning("Confirmation for %s timed out, denying", key)
            return self._record(request, refuse("confirmation timed out"))
        except ConfirmationUnavailable as exc:
            logger.warning("Confirmation unavailable for %s: %s", key, exc)
            decision = refuse(f"confirmation unavailable: {exc}")
            return self._record(request, decision.model_copy(update={"automatic": True}))
        except Exception:
            logger.exception("Confirmation channel failed for %s", key)
            decision = refuse("confirmation failed")
            return self._record(request, decision.model_copy(update={"automatic": True}))

        who = outcome.responder or "operator"
        if outcome.never_allow:
            await asyncio.to_thread(self.add_rule, RuleTier.DENY, f"{tool}(*)")
            return self._record(request, refuse(f"{tool} blocked by {who} (never allow)"))
        if not outcome.approved:
            return self._record(request, refuse(f"denied by {who}"))
        if outcome.updated_parameters is not None:
            return self._approve_modified(request, outcome.updated_parameters, who, refuse)

        if outcome.always_allow:
            await asyncio.to_thread(self.add_rule, RuleTier.ALLOW, f"{tool}(*)")
            reason = f"{tool} always allowed by {who}"
        else:
            reason = f"approved once by {who} (requires confirmation: {match.pattern})"
        temporary = not outcome.always_allow
        decision = Decision(
            tool_name=tool,
            canonical_key=key,
            behavior=DecisionBehavior.ALLOW,
            reason=reason,
            matched_pattern=match.pattern,
            automatic=False,
            source=DecisionSource.CONFIRMATION,
            temporary=temporary,
            risk_assessment=risk,
        )
        self.cache.put(key, decision, temporary=temporary)
        return self._record(request, decision)

    def _approve_modified(
        self,
        request: OperationRequest,
        parameters: dict[str, Any],
        who: str,
        refuse: Callable[[str], Decision],
    ) -> Decision:
        """Allow the edited call once, unless the edit itself is blocked.

        Nothing is cached. The approval covers this one call only.
        """
        tool = request.tool_name
        try:
            key = canonical_key(tool, parameters)
        except InvalidRequest as exc:
            return self._record(request, refuse(f"modified parameters rejected: {exc.detail}"))
        if tool == "Delete":
            protected = critical_delete_block(identifying_value(tool, parameters) or "")
            if protected is not None:
                return self._record(
                    request, refuse(f"cannot delete critical path: {protected}")
                )
        match = self.rule_store.evaluate(key)
        if match is not None and match.tier == RuleTier.DENY:
            return self._record(
                request, refuse(f"modified parameters blocked by deny rule: {match.pattern}")
            )
        decision = Decision(
            tool_name=tool,
            canonical_key=key,
            behavior=DecisionBehavior.ALLOW,
            reason=f"approved once by {who} with modified parameters",
            matched_pattern=match.pattern if match is not None else None,
            automatic=False,
            source=DecisionSource.CONFIRMATION,
            temporary=True,
            updated_parameters=parameters,
            risk_assessment=self.risk_analyzer.assess(tool, parameters),
        )
        return self._record(request, decision)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _invalid(self, tool: str, session_id: str | None, reason: str) -> Decision:
        decision = Decision(
            tool_name=tool,
            canonical_key=f"{tool}(?)",
            behavior=DecisionBehavior.DENY,
            reason=reason,
            source=DecisionSource.INVALID,
        )
        self._count(decision)
        self._append_audit(session_id or self.session_id, decision, cache_hit=False)
        logger.info("deny %s: %s", decision.canonical_key, reason)
        return decision

    def _record(
        self, request: OperationRequest, decision: Decision, cache_hit: bool = False
    ) -> Decision:
        self._count(decision)
        self._append_audit(request.session_id, decision, cache_hit=cache_hit)
        logger.info(
            "%s %s: %s%s",
            decision.behavior.value,
            decision.canonical_key,
            decision.reason,
            " (cached)" if cache_hit else "",
        )
        return decision

    def _count(self, decision: Decision) -> None:
        with self._stats_lock:
            self._stats.total += 1
            if decision.behavior == DecisionBehavior.ALLOW:
                self._stats.allowed += 1
            else:
                self._stats.denied += 1

    def _append_audit(self, session_id: str, decision: Decision, cache_hit: bool) -> None:
        risk = decision.risk_assessment
        high_risk_allowed = (
            decision.behavior == DecisionBehavior.ALLOW
            and risk is not None
            and risk.level == RiskLevel.HIGH
        )
        if high_risk_allowed and not cache_hit:
            logger.warning(
                "High-risk operation allowed: %s (score %d: %s)",
                decision.canonical_key,
                risk.score,
                "; ".join(risk.factors),
            )
        entry = AuditEntry(
            session_id=session_id,
            tool_name=decision.tool_name,
            canonical_key=decision.canonical_key,
            decision=decision,
            risk_assessment=risk,
            cache_hit=cache_hit,
            high_risk_allowed=high_risk_allowed,
        )
        self.audit.append(entry)
