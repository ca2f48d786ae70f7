"""Tests for the policy engine: the end-to-end decision pipeline."""

import asyncio
import json
import logging
import threading

import pytest

from warden.engine.audit import AuditTrail, JsonlAuditSink
from warden.engine.confirmation import ConfirmationChannel, StaticConfirmationChannel
from warden.engine.decision_cache import DecisionCache
from warden.engine.orchestrator import PolicyEngine
from warden.engine.risk_analyzer import HeuristicRiskAnalyzer
from warden.engine.rule_store import RulePolicyStore
from warden.schemas.confirmation import ConfirmationChoice, ConfirmationOutcome
from warden.schemas.decision import DecisionBehavior, DecisionSource, RiskLevel
from warden.schemas.policy import RuleTier
from tests.conftest import FakeClock, make_engine, make_request


class HangingChannel(ConfirmationChannel):
    """Never answers."""

    async def confirm(self, request, risk):
        await asyncio.Event().wait()


class BrokenChannel(ConfirmationChannel):
    async def confirm(self, request, risk):
        raise RuntimeError("channel exploded")


class CountingStore(RulePolicyStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.evaluations = 0

    def evaluate(self, key):
        self.evaluations += 1
        return super().evaluate(key)


class TestRuleDecisions:
    async def test_deny_rule(self, engine):
        decision = await engine.evaluate("Bash", {"command": "rm -rf /tmp/build"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.RULE
        assert decision.matched_pattern == "Bash(rm -rf:*)"
        assert decision.reason == "blocked by deny rule: Bash(rm -rf:*)"

    async def test_allow_rule(self, engine):
        decision = await engine.evaluate("Bash", {"command": "git status"})
        assert decision.allowed
        assert decision.matched_pattern == "Bash(git status)"
        assert decision.automatic is True

    async def test_bare_tool_deny(self, engine):
        decision = await engine.evaluate("WebFetch", {"url": "https://example.com"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.matched_pattern == "WebFetch"

    async def test_tool_without_identifying_parameter(self, engine):
        decision = await engine.evaluate("DeleteDatabase", {"name": "prod"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.canonical_key == "DeleteDatabase(*)"

    async def test_deny_wins_over_allow(self):
        engine = make_engine({"allow": ["Read(*)"], "deny": ["Read(**/*secret*)"]})
        decision = await engine.evaluate("Read", {"file_path": "./my-secret.txt"})
        assert decision.behavior == DecisionBehavior.DENY

    async def test_no_rule_is_default_deny(self, engine):
        decision = await engine.evaluate("Bash", {"command": "make build"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.DEFAULT
        assert decision.reason == "no matching rule (default deny)"

    async def test_trivial_tool_allowed_without_rule(self):
        engine = make_engine({})
        decision = await engine.evaluate("LS", {"path": "."})
        assert decision.allowed
        assert decision.source == DecisionSource.TRIVIAL

    async def test_trivial_tool_respects_deny(self):
        engine = make_engine({"deny": ["Grep(*)"]})
        decision = await engine.evaluate("Grep", {"pattern": "TODO"})
        assert decision.behavior == DecisionBehavior.DENY

    async def test_risk_is_attached_but_never_overrides_allow(self, sink):
        engine = make_engine({"allow": ["Bash(*)"]}, sink=sink)
        decision = await engine.evaluate("Bash", {"command": "sudo rm -rf x > /dev/sda"})
        assert decision.allowed
        assert decision.risk_assessment.level == RiskLevel.HIGH
        assert sink.entries[-1].high_risk_allowed is True


class TestCriticalDeletes:
    async def test_allow_rule_cannot_open_root(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("Delete", {"path": "/etc"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.OVERRIDE
        assert decision.reason == "cannot delete critical path: /etc"

    async def test_windows_drive_root(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("Delete", {"path": "C:\\"})
        assert decision.source == DecisionSource.OVERRIDE

    async def test_ordinary_path_follows_rules(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        assert (await engine.evaluate("Delete", {"path": "./build"})).allowed


class TestInvalidRequests:
    async def test_missing_parameter(self, engine, sink):
        decision = await engine.evaluate("Bash", {})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.INVALID
        assert decision.reason.startswith("invalid request:")
        assert len(sink.entries) == 1

    async def test_blank_tool_name(self, engine):
        decision = await engine.evaluate("   ", {"command": "ls"})
        assert decision.source == DecisionSource.INVALID

    async def test_oversized_parameters(self, engine):
        decision = await engine.evaluate("Write", {"file_path": "./a", "content": "x" * (1024 * 1024 + 1)})
        assert decision.source == DecisionSource.INVALID

    async def test_invalid_requests_are_not_rate_limited(self):
        engine = make_engine(limits={"Bash": 1})
        await engine.evaluate("Bash", {})
        assert (await engine.evaluate("Bash", {"command": "git status"})).allowed


class TestRateLimiting:
    async def test_cap_then_deny(self):
        engine = make_engine(limits={"Bash": 2})
        await engine.evaluate("Bash", {"command": "git status"})
        await engine.evaluate("Bash", {"command": "pwd"})
        decision = await engine.evaluate("Bash", {"command": "npm test"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.RATE_LIMIT
        assert decision.reason == "rate limit exceeded: 2 Bash calls per 60s"

    async def test_rate_limit_beats_allow_rule(self):
        engine = make_engine({"allow": ["Bash(*)"]}, limits={"Bash": 1})
        await engine.evaluate("Bash", {"command": "a"})
        assert not (await engine.evaluate("Bash", {"command": "b"})).allowed

    async def test_cache_hits_count_against_the_window(self):
        engine = make_engine(limits={"Bash": 2})
        await engine.evaluate("Bash", {"command": "git status"})
        await engine.evaluate("Bash", {"command": "git status"})
        decision = await engine.evaluate("Bash", {"command": "git status"})
        assert decision.source == DecisionSource.RATE_LIMIT
        assert engine.statistics()["rate_limited"] == 1

    async def test_window_rolls_over(self):
        clock = FakeClock()
        engine = make_engine(limits={"Bash": 1}, clock=clock)
        await engine.evaluate("Bash", {"command": "pwd"})
        assert not (await engine.evaluate("Bash", {"command": "pwd"})).allowed
        clock.advance(61)
        assert (await engine.evaluate("Bash", {"command": "pwd"})).allowed

    async def test_other_tools_unaffected(self):
        engine = make_engine(limits={"Bash": 1})
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "pwd"})
        assert (await engine.evaluate("Grep", {"pattern": "x"})).allowed

    async def test_concurrent_requests_respect_cap(self):
        engine = make_engine({"allow": ["Bash(echo:*)"]}, limits={"Bash": 5})
        decisions = await asyncio.gather(
            *(engine.evaluate("Bash", {"command": f"echo {i}"}) for i in range(12))
        )
        assert sum(d.allowed for d in decisions) == 5
        assert sum(d.source == DecisionSource.RATE_LIMIT for d in decisions) == 7


class TestCaching:
    async def test_repeat_returns_identical_decision(self, engine, sink):
        first = await engine.evaluate("Bash", {"command": "git status"})
        second = await engine.evaluate("Bash", {"command": "git status"})
        assert second is first
        assert second.model_dump() == first.model_dump()
        assert [e.cache_hit for e in sink.entries] == [False, True]
        assert engine.statistics()["cache_hits"] == 1

    async def test_cache_hit_skips_rule_evaluation(self):
        store = CountingStore()
        store.load({"permissions": {"allow": ["Read(*)"]}})
        engine = make_engine()
        engine.rule_store = store
        await engine.evaluate("Read", {"file_path": "./a"})
        await engine.evaluate("Read", {"file_path": "./a"})
        assert store.evaluations == 1

    async def test_denials_are_cached(self, engine):
        first = await engine.evaluate("Bash", {"command": "sudo ls"})
        assert await engine.evaluate("Bash", {"command": "sudo ls"}) is first

    async def test_entries_expire(self, clock):
        engine = make_engine(clock=clock)
        first = await engine.evaluate("Bash", {"command": "pwd"})
        clock.advance(301)
        second = await engine.evaluate("Bash", {"command": "pwd"})
        assert second is not first
        assert second.decision_id != first.decision_id

    async def test_rule_change_clears_cache(self, engine):
        await engine.evaluate("Bash", {"command": "pwd"})
        engine.add_rule(RuleTier.DENY, "Bash(pwd)", persist=False)
        assert len(engine.cache) == 0
        decision = await engine.evaluate("Bash", {"command": "pwd"})
        assert decision.behavior == DecisionBehavior.DENY

    async def test_reload_clears_cache(self, engine):
        await engine.evaluate("Bash", {"command": "pwd"})
        engine.reload_rules({"permissions": {"deny": ["Bash(*)"]}})
        assert len(engine.cache) == 0
        assert not (await engine.evaluate("Bash", {"command": "pwd"})).allowed

    async def test_invalid_and_rate_limited_are_not_cached(self):
        engine = make_engine(limits={"Bash": 1})
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "make"})
        assert engine.cache.get("Bash(make)") is None


class TestAsk:
    async def test_non_interactive_denies(self, engine):
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.CONFIRMATION
        assert decision.automatic is True
        assert decision.reason.startswith("confirmation unavailable")
        assert engine.cache.get("Bash(git push origin main)") is None

    async def test_ask_never_returned(self, engine):
        decision = await engine.evaluate("Delete", {"path": "./build"})
        assert decision.behavior != DecisionBehavior.ASK

    async def test_approve_once(self, clock, sink):
        channel = StaticConfirmationChannel(ConfirmationChoice.APPROVE_ONCE)
        engine = make_engine(confirmation=channel, clock=clock, sink=sink)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.allowed
        assert decision.temporary is True
        assert decision.automatic is False
        assert decision.matched_pattern == "Bash(git push:*)"
        assert engine.cache.get(decision.canonical_key).temporary is True

        # cached grant, no second prompt
        again = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert again is decision
        assert len(channel.calls) == 1

        # grant expires with the cache entry
        clock.advance(300)
        await engine.evaluate("Bash", {"command": "git push origin main"})
        assert len(channel.calls) == 2

    async def test_channel_sees_risk(self):
        channel = StaticConfirmationChannel(ConfirmationChoice.DENY_ONCE)
        engine = make_engine({"ask": ["Database(*)"]}, confirmation=channel)
        await engine.evaluate("Database", {"query": "DROP TABLE users"})
        request, risk = channel.calls[0]
        assert request.tool_name == "Database"
        assert risk.level == RiskLevel.HIGH

    async def test_deny_once_caches_nothing(self):
        channel = StaticConfirmationChannel(ConfirmationChoice.DENY_ONCE)
        engine = make_engine(confirmation=channel)
        decision = await engine.evaluate("Bash", {"command": "pip install requests"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.automatic is False
        assert decision.reason == "denied by static"
        await engine.evaluate("Bash", {"command": "pip install requests"})
        assert len(channel.calls) == 2

    async def test_always_allow_persists(self, tmp_path):
        path = tmp_path / "perms.json"
        channel = StaticConfirmationChannel(ConfirmationChoice.ALWAYS_ALLOW)
        engine = make_engine(confirmation=channel, path=path)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.allowed
        assert decision.temporary is False
        assert "Bash(*)" in json.loads(path.read_text())["permissions"]["allow"]

        # survives a restart
        restarted = make_engine(path=path)
        other = await restarted.evaluate("Bash", {"command": "git merge dev"})
        assert other.allowed
        assert other.matched_pattern == "Bash(*)"

    async def test_always_allow_does_not_open_denied_commands(self):
        channel = StaticConfirmationChannel(ConfirmationChoice.ALWAYS_ALLOW)
        engine = make_engine(confirmation=channel)
        await engine.evaluate("Bash", {"command": "git push origin main"})
        assert not (await engine.evaluate("Bash", {"command": "rm -rf /"})).allowed

    async def test_never_allow_adds_deny_rule(self):
        channel = StaticConfirmationChannel(ConfirmationChoice.NEVER_ALLOW)
        engine = make_engine(confirmation=channel)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.behavior == DecisionBehavior.DENY
        assert "Bash(*)" in engine.rules.deny
        later = await engine.evaluate("Bash", {"command": "git status"})
        assert later.reason == "blocked by deny rule: Bash(*)"

    async def test_timeout_denies(self):
        engine = make_engine(confirmation=HangingChannel(), confirmation_timeout=0.05)
        decision = await engine.evaluate("Delete", {"path": "./build"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason == "confirmation timed out"

    async def test_broken_channel_denies(self):
        engine = make_engine(confirmation=BrokenChannel())
        decision = await engine.evaluate("Delete", {"path": "./build"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason == "confirmation failed"

    async def test_cancellation_audits_deny_and_propagates(self, sink):
        engine = make_engine(confirmation=HangingChannel(), sink=sink)
        task = asyncio.create_task(engine.evaluate("Delete", {"path": "./build"}))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sink.entries[-1].decision.reason == "confirmation cancelled"
        assert len(engine.cache) == 0

    async def test_other_requests_proceed_while_waiting(self):
        engine = make_engine(confirmation=HangingChannel())
        task = asyncio.create_task(engine.evaluate("Delete", {"path": "./build"}))
        await asyncio.sleep(0.01)
        decision = await asyncio.wait_for(engine.evaluate("Bash", {"command": "pwd"}), 1)
        assert decision.allowed
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestAuditAndStats:
    async def test_one_entry_per_decision(self, engine, sink):
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "sudo x"})
        await engine.evaluate("Bash", {})
        assert len(sink.entries) == 3
        assert engine.audit.count == 3
        assert sink.entries[0].session_id == engine.session_id

    async def test_session_id_is_recorded(self, engine, sink):
        await engine.evaluate("Bash", {"command": "pwd"}, session_id="sess-1")
        assert sink.entries[0].session_id == "sess-1"

    async def test_audit_failure_does_not_change_decision(self, tmp_path, caplog):
        engine = make_engine()
        engine.audit.add_sink(JsonlAuditSink(tmp_path))  # a directory, so every write fails
        with caplog.at_level(logging.ERROR, logger="warden.audit"):
            decision = await engine.evaluate("Bash", {"command": "pwd"})
        assert decision.allowed
        assert "Audit write failed" in caplog.text

    async def test_jsonl_sink(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        engine = make_engine()
        engine.audit.add_sink(JsonlAuditSink(path))
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "pwd"})
        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line["cache_hit"] for line in lines] == [False, True]
        assert lines[0]["decision"]["behavior"] == "allow"

    async def test_statistics(self):
        engine = make_engine(limits={"Bash": 3})
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "pwd"})
        await engine.evaluate("Bash", {"command": "git push x"})
        await engine.evaluate("Bash", {"command": "pwd"})
        assert engine.statistics() == {
            "total": 4,
            "allowed": 2,
            "denied": 2,
            "asked": 1,
            "cache_hits": 1,
            "rate_limited": 1,
        }

    async def test_evaluate_request(self, engine):
        decision = await engine.evaluate_request(make_request("Bash", {"command": "pwd"}))
        assert decision.allowed

    async def test_internal_error_denies(self, engine, caplog):
        class ExplodingAnalyzer:
            def assess(self, tool_name, parameters):
                raise RuntimeError("boom")

        engine.risk_analyzer = ExplodingAnalyzer()
        decision = await engine.evaluate("Bash", {"command": "pwd"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason == "internal error during evaluation"


class ModifyingChannel(ConfirmationChannel):
    """Approves once with replacement parameters."""

    def __init__(self, parameters):
        self.parameters = parameters
        self.calls = 0

    async def confirm(self, request, risk):
        self.calls += 1
        return ConfirmationOutcome.from_choice(
            ConfirmationChoice.APPROVE_ONCE, responder="reviewer", updated_parameters=self.parameters
        )


class ThreadRecordingStore(RulePolicyStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.mutation_threads = []

    def add_rule(self, tier, pattern, persist=True):
        self.mutation_threads.append(threading.get_ident())
        super().add_rule(tier, pattern, persist=persist)


class TestModifiedApproval:
    async def test_allows_edited_call_once(self, sink):
        channel = ModifyingChannel({"command": "git push origin feature"})
        engine = make_engine(confirmation=channel, sink=sink)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.allowed
        assert decision.temporary is True
        assert decision.updated_parameters == {"command": "git push origin feature"}
        assert decision.canonical_key == "Bash(git push origin feature)"
        assert decision.reason == "approved once by reviewer with modified parameters"
        assert len(engine.cache) == 0

        await engine.evaluate("Bash", {"command": "git push origin main"})
        assert channel.calls == 2

    async def test_edit_into_denied_command_is_refused(self):
        channel = ModifyingChannel({"command": "rm -rf /"})
        engine = make_engine(confirmation=channel)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason == "modified parameters blocked by deny rule: Bash(rm -rf:*)"
        assert decision.updated_parameters is None

    async def test_edit_into_critical_delete_is_refused(self):
        channel = ModifyingChannel({"path": "/"})
        engine = make_engine({"ask": ["Delete(*)"]}, confirmation=channel)
        decision = await engine.evaluate("Delete", {"path": "./build"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason == "cannot delete critical path: /"

    async def test_edit_missing_identifying_parameter_is_refused(self):
        channel = ModifyingChannel({"cwd": "/tmp"})
        engine = make_engine(confirmation=channel)
        decision = await engine.evaluate("Bash", {"command": "git push origin main"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.reason.startswith("modified parameters rejected:")


class TestToolNameCasing:
    async def test_lowercase_delete_still_hits_critical_paths(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("delete", {"path": "/"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.OVERRIDE
        assert decision.tool_name == "Delete"

    @pytest.mark.parametrize("tool_name", ["bash", "BASH", " Bash "])
    async def test_deny_rule_applies_to_any_casing(self, tool_name):
        engine = make_engine({"deny": ["Bash(rm -rf:*)"], "allow": ["Bash(*)"]})
        decision = await engine.evaluate(tool_name, {"command": "rm -rf /"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.canonical_key == "Bash(rm -rf /)"
        assert decision.matched_pattern == "Bash(rm -rf:*)"

    async def test_casing_variants_share_one_rate_window(self):
        engine = make_engine(limits={"Bash": 1})
        await engine.evaluate("Bash", {"command": "pwd"})
        decision = await engine.evaluate("bash", {"command": "ls"})
        assert decision.source == DecisionSource.RATE_LIMIT

    async def test_casing_variants_share_cache_entries(self, engine):
        first = await engine.evaluate("Bash", {"command": "git status"})
        assert await engine.evaluate("bash", {"command": "git status"}) is first

    async def test_lowercase_tool_is_risk_scored(self):
        engine = make_engine({"allow": ["Database(*)"]})
        decision = await engine.evaluate("database", {"query": "DROP TABLE users"})
        assert decision.risk_assessment.level == RiskLevel.HIGH

    async def test_configured_trivial_tools_are_canonicalised(self):
        engine = make_engine({}, trivial_tools=["ls"])
        assert (await engine.evaluate("LS", {"path": "."})).allowed

    async def test_unknown_tool_keeps_its_spelling(self, engine):
        decision = await engine.evaluate("mcp__Notes", {"title": "x"})
        assert decision.canonical_key == "mcp__Notes(*)"


class TestCriticalDeleteTarget:
    async def test_blank_path_falls_through_to_file_path(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("Delete", {"path": " ", "file_path": "/"})
        assert decision.behavior == DecisionBehavior.DENY
        assert decision.source == DecisionSource.OVERRIDE
        assert decision.canonical_key == "Delete(/)"

    async def test_file_path_only(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("Delete", {"file_path": "/usr/"})
        assert decision.source == DecisionSource.OVERRIDE

    async def test_padded_critical_path(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decision = await engine.evaluate("Delete", {"path": "  /home "})
        assert decision.source == DecisionSource.OVERRIDE


class TestCollaborators:
    async def test_empty_cache_is_not_replaced(self, clock):
        cache = DecisionCache(ttl=5, max_entries=7, clock=clock)
        store = RulePolicyStore()
        store.load({"permissions": {"allow": ["Bash(pwd)"]}})
        engine = PolicyEngine(store, cache=cache)
        assert engine.cache is cache

        first = await engine.evaluate("Bash", {"command": "pwd"})
        clock.advance(5)
        assert await engine.evaluate("Bash", {"command": "pwd"}) is not first

    async def test_empty_audit_trail_is_not_replaced(self, sink):
        audit = AuditTrail([sink])
        engine = PolicyEngine(RulePolicyStore(), audit=audit)
        assert engine.audit is audit

    async def test_rule_mutation_from_confirmation_runs_off_the_loop(self):
        store = ThreadRecordingStore()
        store.load({"permissions": {"ask": ["Bash(*)"]}})
        engine = PolicyEngine(
            store, confirmation=StaticConfirmationChannel(ConfirmationChoice.ALWAYS_ALLOW)
        )
        assert (await engine.evaluate("Bash", {"command": "make"})).allowed
        assert store.mutation_threads
        assert threading.get_ident() not in store.mutation_threads


class TestFromSettings:
    async def test_builds_from_settings(self, tmp_path):
        from warden.config import Settings

        settings = Settings(
            permissions_path=str(tmp_path / "p.json"),
            audit_log_path=str(tmp_path / "a.jsonl"),
            rate_limits={"Bash": 1},
            cache_ttl_seconds=5,
            cache_max_entries=7,
        )
        engine = PolicyEngine.from_settings(settings)
        assert engine.rate_limiter.limit_for("Bash") == 1
        assert engine.cache.ttl == 5
        assert engine.cache.max_entries == 7
        await engine.evaluate("Bash", {"command": "pwd"})
        assert (tmp_path / "a.jsonl").exists()
        assert (tmp_path / "p.json").exists()


class CountingAnalyzer:
    def __init__(self):
        self.calls = 0
        self._inner = HeuristicRiskAnalyzer()

    def assess(self, tool_name, parameters):
        self.calls += 1
        return self._inner.assess(tool_name, parameters)


class TestScenarios:
    async def test_npm_test_rm_rf_echo(self):
        engine = make_engine({"deny": ["Bash(rm -rf:*)"], "allow": ["Bash(npm test)"]})
        assert (await engine.evaluate("Bash", {"command": "npm test"})).behavior == DecisionBehavior.ALLOW
        assert (await engine.evaluate("Bash", {"command": "rm -rf /tmp/x"})).behavior == DecisionBehavior.DENY
        assert (await engine.evaluate("Bash", {"command": "echo hi"})).behavior == DecisionBehavior.DENY

    async def test_eleventh_delete_is_rate_limited(self):
        engine = make_engine({"allow": ["Delete(*)"]})
        decisions = [await engine.evaluate("Delete", {"path": f"./tmp/{i}"}) for i in range(11)]
        assert all(d.allowed for d in decisions[:10])
        assert decisions[10].source == DecisionSource.RATE_LIMIT
        assert "rate limit" in decisions[10].reason

    async def test_cache_hit_skips_risk_analysis(self):
        analyzer = CountingAnalyzer()
        engine = make_engine(risk_analyzer=analyzer)
        first = await engine.evaluate("Bash", {"command": "git status"})
        second = await engine.evaluate("Bash", {"command": "git status"})
        assert analyzer.calls == 1
        assert second.model_dump_json() == first.model_dump_json()
