"""Unit tests for asana_connector.engine.registry and the EventOptions model."""

import pytest
from pydantic import ValidationError

from asana_connector.engine.errors import SubscriptionError
from asana_connector.engine.models import EventOptions
from asana_connector.engine.registry import Subscription, SubscriptionRegistry


def _sub(sub_id, gid="r1", action="*"):
    return Subscription(id=sub_id, options=EventOptions(gid=gid, asana_event=action))


class TestEventOptions:

    def test_default_action_is_wildcard(self):
        assert EventOptions(gid="1201").asana_event == "*"

    def test_none_action_is_wildcard(self):
        assert EventOptions(gid="1201", asana_event=None).asana_event == "*"

    @pytest.mark.parametrize("action", ["added", "removed", "changed", "deleted", "undeleted"])
    def test_known_actions(self, action):
        assert EventOptions(gid="1", asana_event=action).asana_event == action

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError, match="asana_event"):
            EventOptions(gid="1", asana_event="renamed")

    def test_empty_gid_rejected(self):
        with pytest.raises(ValidationError):
            EventOptions(gid=" ")

    def test_matches(self):
        wildcard = EventOptions(gid="1")
        changed = EventOptions(gid="1", asana_event="changed")
        assert wildcard.matches("added")
        assert wildcard.matches("story_liked")
        assert changed.matches("changed")
        assert not changed.matches("added")


class TestSubscriptionRegistry:

    def setup_method(self):
        self.reg = SubscriptionRegistry()

    def test_register_and_get(self):
        sub = self.reg.register(_sub("s1"))
        assert self.reg.get("s1") is sub
        assert "s1" in self.reg
        assert len(self.reg) == 1

    def test_subscription_properties(self):
        sub = _sub("s1", gid="1201", action="changed")
        assert sub.resource_gid == "1201"
        assert sub.action_filter == "changed"

    def test_duplicate_id_rejected(self):
        self.reg.register(_sub("s1"))
        with pytest.raises(SubscriptionError, match="already registered"):
            self.reg.register(_sub("s1", gid="other"))
        assert len(self.reg) == 1

    def test_registration_order_kept(self):
        for sub_id in ("c", "a", "b"):
            self.reg.register(_sub(sub_id))
        assert [s.id for s in self.reg.all()] == ["c", "a", "b"]
        assert [s.id for s in self.reg] == ["c", "a", "b"]

    def test_matching(self):
        self.reg.register(_sub("s1", action="*"))
        self.reg.register(_sub("s2", action="changed"))
        self.reg.register(_sub("s3", gid="r2", action="added"))
        assert [s.id for s in self.reg.matching("changed")] == ["s1", "s2"]
        assert [s.id for s in self.reg.matching("added")] == ["s1", "s3"]
        assert [s.id for s in self.reg.matching("undeleted")] == ["s1"]

    def test_matching_none(self):
        self.reg.register(_sub("s1", action="deleted"))
        assert self.reg.matching("added") == []

    def test_resource_gids_distinct(self):
        self.reg.register(_sub("s1", gid="r1"))
        self.reg.register(_sub("s2", gid="r2"))
        self.reg.register(_sub("s3", gid="r1", action="changed"))
        assert self.reg.resource_gids() == ["r1", "r2"]

    def test_freeze_blocks_registration(self):
        self.reg.register(_sub("s1"))
        self.reg.freeze()
        assert self.reg.frozen
        with pytest.raises(SubscriptionError, match="after the connector has started"):
            self.reg.register(_sub("s2"))
        assert self.reg.matching("added")[0].id == "s1"

    def test_subscription_is_immutable(self):
        sub = _sub("s1")
        with pytest.raises(Exception):
            sub.id = "other"
