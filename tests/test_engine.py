"""
Tests for modgate/moderation/engine.py

End-to-end behavior of the moderation engine against a recording
platform: priority resolution, rate rules, escalation, confirmation,
classifier removals, reviewer actions and runtime host exceptions.
"""

import asyncio

import pytest

from modgate.core.constants import (
    CLASSIFIER_DISABLED_REPLY,
    RECORD_NOT_FOUND_REPLY,
    REVIEW_DENIED_REPLY,
    SPAM_PATTERN_TEXT,
)
from modgate.moderation.classifier import ClassifierGateway
from modgate.moderation.engine import ModerationEngine
from modgate.moderation.models import ActionKind, ReviewAction
from modgate.utils.metrics import metrics

from conftest import (
    CHANNEL_ID,
    DEFAULT_ROLES,
    ELEVATED_ROLES,
    GUILD_ID,
    MODERATOR_ID,
    OTHER_USER_ID,
    REPORT_CHANNEL_ID,
    TRUSTED_ROLE_ID,
    USER_ID,
    FakeResponse,
    FakeSession,
    scored,
)


@pytest.fixture
def engine(config, platform, disabled_classifier):
    return ModerationEngine(config, platform, classifier=disabled_classifier)


def classifier_engine(config, platform, *outcomes):
    session = FakeSession(*outcomes)
    gateway = ClassifierGateway(url="http://classifier.local/score", enabled=True, session=session)
    return ModerationEngine(config, platform, classifier=gateway), session


# =============================================================================
# Message Processing Tests
# =============================================================================

class TestProcessMessage:
    """Tests for process_message."""

    @pytest.mark.asyncio
    async def test_clean_message_no_calls(self, engine, platform, make_message):
        assert await engine.process_message(make_message("hello there")) is None
        assert platform.calls == []
        assert len(engine.history) == 1

    @pytest.mark.asyncio
    async def test_bot_ignored(self, engine, platform, make_message):
        message = make_message("bitcoin https://random.site", author_is_bot=True)
        assert await engine.process_message(message) is None
        assert platform.calls == []
        assert len(engine.history) == 0

    @pytest.mark.asyncio
    async def test_restricted_channel_ignored(self, engine, platform, make_message):
        message = make_message("bitcoin https://random.site", can_send=False)
        assert await engine.process_message(message) is None
        assert platform.calls == []

    @pytest.mark.asyncio
    async def test_tie_goes_to_link_gate(self, engine, platform, make_message):
        outcome = await engine.process_message(make_message("bitcoin https://random.site"))

        assert outcome.rule_name == "link_gate"
        assert outcome.action is ActionKind.HOLD
        assert len(platform.sent_to(CHANNEL_ID)) == 1

    @pytest.mark.asyncio
    async def test_invite_kick_beats_link_hold(self, engine, platform, make_message):
        platform.invites["abc"] = "NSFW stuff"
        outcome = await engine.process_message(make_message("https://discord.gg/abc"))

        assert outcome.action is ActionKind.KICK
        assert outcome.rule_name == "invite_links"
        assert len(platform.calls_named("kick_member")) == 1
        assert platform.sent_to(CHANNEL_ID) == []
        assert len(engine.tracker) == 0

    @pytest.mark.asyncio
    async def test_duplicates_trigger_on_fourth(self, engine, platform, make_message):
        outcomes = [
            await engine.process_message(make_message("same words here", at=i * 3))
            for i in range(4)
        ]

        assert outcomes[:3] == [None, None, None]
        assert outcomes[3].rule_name == "duplicates"
        assert outcomes[3].action is ActionKind.MESSAGE_CLEANUP

    @pytest.mark.asyncio
    async def test_flood_triggers_on_third(self, engine, make_message):
        contents = ["hello", "how are you", "nice to meet you"]
        outcomes = [
            await engine.process_message(make_message(content, at=i))
            for i, content in enumerate(contents)
        ]

        assert outcomes[:2] == [None, None]
        assert outcomes[2].rule_name == "flood"

    @pytest.mark.asyncio
    async def test_roles_fetched_when_missing(self, engine, platform, make_message):
        platform.add_member(USER_ID, ELEVATED_ROLES)
        assert await engine.process_message(make_message("free bitcoin", role_ids=None)) is None
        assert platform.calls_named("delete_message") == []


# =============================================================================
# Elevated Authors & Reports
# =============================================================================

class TestReports:
    """Reports are posted for every triggered rule, even for exempt authors."""

    MISLEADING = "[https://google.com](https://evil.test/login)"

    @pytest.mark.asyncio
    async def test_elevated_author_exempt(self, engine, platform, make_message):
        message = make_message("free bitcoin", role_ids=ELEVATED_ROLES)
        assert await engine.process_message(message) is None
        assert platform.calls == []

    @pytest.mark.asyncio
    async def test_elevated_author_still_reported(self, engine, platform, make_message):
        message = make_message(self.MISLEADING, role_ids=ELEVATED_ROLES)
        assert await engine.process_message(message) is None

        assert len(platform.sent_to(REPORT_CHANNEL_ID)) == 1
        assert platform.calls_named("delete_message") == []

    @pytest.mark.asyncio
    async def test_report_alongside_action(self, engine, platform, make_message):
        outcome = await engine.process_message(make_message(self.MISLEADING))

        assert outcome.rule_name == "link_gate"
        assert "misleading" in platform.sent_to(REPORT_CHANNEL_ID)[0].content
        assert len(platform.sent_to(CHANNEL_ID)) == 1

    @pytest.mark.asyncio
    async def test_no_report_channel(self, engine, platform, config, make_message):
        config.report_channel_id = None
        await engine.process_message(make_message(self.MISLEADING, role_ids=ELEVATED_ROLES))
        assert platform.calls == []


# =============================================================================
# Escalation & Confirmation Tests
# =============================================================================

class TestEscalation:
    """Soft flag, escalate, kick, and confirmation by reaction."""

    @pytest.mark.asyncio
    async def test_three_strikes(self, engine, platform, make_message):
        for i in range(3):
            await engine.process_message(make_message(f"https://random.site/{i}", at=i * 10))
            if i < 2:
                assert engine.tracker.get(USER_ID).violation_count == i + 1

        assert len(platform.calls_named("kick_member")) == 1
        assert USER_ID not in engine.tracker

    @pytest.mark.asyncio
    async def test_same_user_serialized(self, engine, platform, make_message):
        await asyncio.gather(*[
            engine.process_message(make_message(f"https://random.site/{i}", at=i * 10))
            for i in range(3)
        ])

        assert len(platform.calls_named("kick_member")) == 1
        assert USER_ID not in engine.tracker
        assert len(engine.locks) == 0

    @pytest.mark.asyncio
    async def test_users_independent(self, engine, make_message):
        await asyncio.gather(
            engine.process_message(make_message("https://random.site", author_id=USER_ID)),
            engine.process_message(make_message("https://random.site", author_id=OTHER_USER_ID)),
        )
        assert USER_ID in engine.tracker
        assert OTHER_USER_ID in engine.tracker

    @pytest.mark.asyncio
    async def test_author_confirms(self, engine, platform, make_message):
        await engine.process_message(make_message("see https://random.site"))
        prompt_id = engine.tracker.get(USER_ID).prompt_ref.message_id

        assert await engine.handle_confirmation(prompt_id, USER_ID, GUILD_ID)

        assert USER_ID not in engine.tracker
        assert "see https://random.site" in platform.sent_to(CHANNEL_ID)[-1].content
        assert platform.calls_named("add_role") == [("add_role", GUILD_ID, USER_ID, TRUSTED_ROLE_ID)]

    @pytest.mark.asyncio
    async def test_third_party_reaction_ignored(self, engine, make_message):
        await engine.process_message(make_message("see https://random.site"))
        prompt_id = engine.tracker.get(USER_ID).prompt_ref.message_id

        assert not await engine.handle_confirmation(prompt_id, OTHER_USER_ID, GUILD_ID, DEFAULT_ROLES)
        assert USER_ID in engine.tracker

    @pytest.mark.asyncio
    async def test_warn_not_confirmable(self, engine, make_message):
        await engine.process_message(make_message("anyone got a gun buddy?"))
        prompt_id = engine.tracker.get(USER_ID).prompt_ref.message_id

        assert not await engine.handle_confirmation(prompt_id, USER_ID, GUILD_ID)
        assert USER_ID in engine.tracker

    @pytest.mark.asyncio
    async def test_confirmation_races_escalation(self, engine, platform, make_message):
        for i in range(2):
            await engine.process_message(make_message(f"https://random.site/{i}", at=i * 10))
        record = engine.tracker.get(USER_ID)

        _, cleared = await asyncio.gather(
            engine.process_message(make_message("https://random.site/2", at=20)),
            engine.handle_confirmation(record.prompt_ref.message_id, USER_ID, GUILD_ID),
        )

        kicked = len(platform.calls_named("kick_member")) == 1
        assert kicked != cleared
        live = engine.tracker.get(USER_ID)
        if kicked:
            assert live is None
        else:
            assert live is not record
            assert live.violation_count == 1
        assert len(engine.locks) == 0

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, engine):
        assert not await engine.handle_confirmation(12345, USER_ID, GUILD_ID)


# =============================================================================
# Classifier Tests
# =============================================================================

class TestClassifierFlow:

    @pytest.mark.asyncio
    async def test_removal(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.85))
        message = make_message("cheap followers today")
        outcome = await engine.process_message(message)

        assert outcome.rule_name == "external_classifier"
        assert ("delete_message", message.ref) in platform.calls
        assert platform.sent_to(REPORT_CHANNEL_ID)[0].review_key == message.id
        assert engine.tracker.find_by_original(message.id) is not None

    @pytest.mark.asyncio
    async def test_report_only(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.70))
        outcome = await engine.process_message(make_message("cheap followers today"))

        assert outcome.action is ActionKind.LOG
        assert platform.calls_named("delete_message") == []
        assert len(platform.sent_to(REPORT_CHANNEL_ID)) == 1

    @pytest.mark.asyncio
    async def test_low_score(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.40))
        assert await engine.process_message(make_message("hello there")) is None
        assert platform.calls == []

    @pytest.mark.asyncio
    async def test_outage(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, FakeResponse(500))
        assert await engine.process_message(make_message("hello there")) is None
        assert platform.calls == []
        assert metrics.get_counter("classifier.unavailable.http_500") == 1

    @pytest.mark.asyncio
    async def test_repeated_removals_kick(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.95))
        for i in range(3):
            await engine.process_message(make_message(f"cheap followers batch {i}", at=i * 40))
            if i < 2:
                assert engine.tracker.get(USER_ID).violation_count == i + 1

        assert len(platform.calls_named("kick_member")) == 1
        assert USER_ID not in engine.tracker

    @pytest.mark.asyncio
    async def test_removal_replaces_hold_prompt(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.40), scored(0.95))
        await engine.process_message(make_message("see https://random.site"))
        hold_prompt = engine.tracker.get(USER_ID).prompt_ref

        second = make_message("cheap followers today", at=40)
        await engine.process_message(second)

        record = engine.tracker.get(USER_ID)
        assert record.violation_count == 2
        assert record.original_message_id == second.id
        assert record.prompt_ref != hold_prompt
        assert ("delete_message", hold_prompt) in platform.calls
        assert not await engine.handle_confirmation(hold_prompt.message_id, USER_ID, GUILD_ID)

    @pytest.mark.asyncio
    async def test_removal_after_link_gate_wins_tie(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.95))
        cdn = " ".join(f"https://cdn.discordapp.com/attachments/{i}/nitro.png" for i in range(3))
        message = make_message(f"free nitro {cdn}")

        outcome = await engine.process_message(message)

        assert outcome.rule_name == "link_gate"
        assert any(SPAM_PATTERN_TEXT in (n.content or "") for n in platform.sent_to(CHANNEL_ID))
        assert [n.review_key for n in platform.sent_to(REPORT_CHANNEL_ID)] == [message.id]
        assert engine.tracker.find_by_original(message.id) is not None

    @pytest.mark.asyncio
    async def test_removal_reported_after_kick(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.95))
        message = make_message("(HOW) https://evil.example/login")

        outcome = await engine.process_message(message)

        assert outcome.action is ActionKind.KICK
        assert len(platform.calls_named("kick_member")) == 1
        reviews = [n for n in platform.sent_to(REPORT_CHANNEL_ID) if n.content.startswith("Spam classifier")]
        assert len(reviews) == 1
        assert reviews[0].review_key is None
        assert USER_ID not in engine.tracker


# =============================================================================
# Reviewer Action Tests
# =============================================================================

class TestReviewActions:
    """Tests for handle_review_action."""

    async def _removed(self, config, platform, make_message, feedback=None):
        engine, session = classifier_engine(config, platform, scored(0.85), feedback or FakeResponse(200))
        message = make_message("cheap followers today")
        await engine.process_message(message)
        return engine, session, message

    @pytest.mark.asyncio
    async def test_disabled(self, engine):
        result = await engine.handle_review_action(
            ReviewAction.NOT_SPAM, 1, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )
        assert not result.ok
        assert result.message == CLASSIFIER_DISABLED_REPLY

    @pytest.mark.asyncio
    async def test_denied(self, config, platform, make_message):
        engine, _, message = await self._removed(config, platform, make_message)
        result = await engine.handle_review_action(
            ReviewAction.NOT_SPAM, message.id, OTHER_USER_ID, GUILD_ID, DEFAULT_ROLES,
        )
        assert result.message == REVIEW_DENIED_REPLY
        assert USER_ID in engine.tracker

    @pytest.mark.asyncio
    async def test_not_found(self, config, platform, make_message):
        engine, _, _ = await self._removed(config, platform, make_message)
        result = await engine.handle_review_action(
            ReviewAction.NOT_SPAM, 999, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )
        assert result.message == RECORD_NOT_FOUND_REPLY.format(message_id=999)

    @pytest.mark.asyncio
    async def test_not_spam(self, config, platform, make_message):
        engine, session, message = await self._removed(config, platform, make_message)
        result = await engine.handle_review_action(
            ReviewAction.NOT_SPAM, message.id, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )

        assert result.ok
        assert result.message == "Update success"
        assert session.requests[-1]["method"] == "DELETE"
        assert USER_ID not in engine.tracker
        assert "cheap followers today" in platform.sent_to(CHANNEL_ID)[-1].content
        edit = platform.calls_named("edit_message")[0]
        assert "not spam" in edit[2].content

    @pytest.mark.asyncio
    async def test_confirm_spam(self, config, platform, make_message):
        engine, session, message = await self._removed(config, platform, make_message)
        result = await engine.handle_review_action(
            ReviewAction.CONFIRM_SPAM, message.id, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )

        assert result.ok
        assert session.requests[-1]["method"] == "PATCH"
        assert USER_ID in engine.tracker
        assert "confirmed spam" in platform.calls_named("edit_message")[0][2].content

    @pytest.mark.asyncio
    async def test_temp_exempt(self, config, platform, make_message):
        engine, session, message = await self._removed(config, platform, make_message)
        result = await engine.handle_review_action(
            ReviewAction.TEMP_EXEMPT, message.id, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )

        assert result.ok
        assert "15 minutes" in result.message
        assert engine.classifier.is_exempt(USER_ID)
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_feedback_failure(self, config, platform, make_message):
        engine, _, message = await self._removed(config, platform, make_message, FakeResponse(503))
        result = await engine.handle_review_action(
            ReviewAction.NOT_SPAM, message.id, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
        )

        assert not result.ok
        assert result.message == "Classifier update failed (http_503)"
        assert USER_ID in engine.tracker
        assert platform.calls_named("edit_message") == []

    @pytest.mark.asyncio
    async def test_review_races_escalation(self, config, platform, make_message):
        engine, _ = classifier_engine(config, platform, scored(0.95))
        first = make_message("cheap followers today")
        await engine.process_message(first)
        record = engine.tracker.get(USER_ID)
        record.violation_count = 2

        _, result = await asyncio.gather(
            engine.process_message(make_message("cheap followers again", at=40)),
            engine.handle_review_action(
                ReviewAction.NOT_SPAM, first.id, MODERATOR_ID, GUILD_ID, ELEVATED_ROLES,
            ),
        )

        kicked = len(platform.calls_named("kick_member")) == 1
        assert kicked != result.ok
        live = engine.tracker.get(USER_ID)
        if kicked:
            assert live is None
            assert result.message == RECORD_NOT_FOUND_REPLY.format(message_id=first.id)
        else:
            assert live is not record
            assert live.violation_count == 1
        assert len(engine.locks) == 0


# =============================================================================
# Lifecycle & Host Exceptions
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_stop(self, engine):
        await engine.start(load_tlds=False)
        assert engine.history.running
        await engine.stop()
        assert not engine.history.running

    @pytest.mark.asyncio
    async def test_approved_host(self, engine, make_message):
        assert engine.approve_host("https://Random.Site/path") == "random.site"
        assert engine.approved_hosts == ["random.site"]
        assert await engine.process_message(make_message("https://random.site/x")) is None

    def test_revoke_host(self, engine):
        engine.approve_host("random.site")
        assert engine.revoke_host("random.site")
        assert not engine.revoke_host("random.site")
        assert engine.approved_hosts == []

    def test_invalid_host(self, engine):
        assert engine.approve_host("   ") == ""
        assert engine.approved_hosts == []
