"""Tests for the event host mixin."""

import pytest

from excevent import Emit, EventEmitter, EventHost, Excevent, HandlerRegistrationError, event_host, handles


class TestEventHost:
    """Test cases for EventHost and event_host()."""

    def test_instances_get_their_own_emitter(self):
        """Test that every instance owns a separate emitter."""

        class Host(EventHost):
            pass

        first, second = Host(), Host()
        assert isinstance(first.event, EventEmitter)
        assert first.event is not second.event
        assert first.event.host is first

        first.event.subscribe("test", lambda api: 1)
        assert second.event.emit("test") == []

    def test_event_host_binds_registry(self):
        """Test that event_host() wires the emitter to an Excevent."""
        excevent = Excevent()

        class Host(event_host(excevent)):
            pass

        assert Host().event.excevent is excevent
        assert EventHost().event.excevent is None

    def test_cooperative_init(self):
        """Test that the mixin forwards constructor arguments."""

        class Named:
            def __init__(self, name):
                self.name = name

        class Host(EventHost, Named):
            pass

        host = Host("door")
        assert host.name == "door"
        assert isinstance(host.event, EventEmitter)


class TestHandles:
    """Test cases for the own-event handler decorator."""

    def test_own_handlers_subscribed_on_construction(self):
        """Test that declared methods handle the host's own events."""

        class Host(EventHost):
            def __init__(self, name):
                super().__init__()
                self.name = name

            @handles("greet", priority=1)
            def on_greet(self, api, other):
                return f"{self.name} greets {other}"

        first, second = Host("a"), Host("b")
        assert first.event.emit("greet", "x") == ["a greets x"]
        assert second.event.emit("greet", "y") == ["b greets y"]

    def test_plain_handlers_run_before_own_handlers(self):
        """Test ordering inside one priority."""

        class Host(EventHost):
            @handles("test")
            def on_test(self, api):
                return "method"

        host = Host()
        host.event.subscribe("test", lambda api: "plain")

        assert host.event.emit("test") == ["plain", "method"]

    def test_inherited_and_stacked(self):
        """Test inherited declarations and several declarations on one method."""

        class Base(EventHost):
            @handles("base")
            def on_base(self, api):
                return "base"

        class Child(Base):
            @handles(["a", "b"])
            @handles("c", priority=3)
            def on_letter(self, api):
                return api.event

        child = Child()
        assert child.event.emit("base") == ["base"]
        assert [child.event.emit(event) for event in ("a", "b", "c")] == [["a"], ["b"], ["c"]]
        assert child.event.subscriptions.get("c").get_priorities() == (3,)

    def test_own_handler_unsubscribe_leaves_other_instances(self):
        """Test that own handler references are per instance."""

        class Host(EventHost):
            @handles("test")
            def on_test(self, api):
                return id(self)

        first, second = Host(), Host()
        first.event.subscriptions.remove_reference("test", 0, "on_test", first)

        assert first.event.emit("test") == []
        assert second.event.emit("test") == [id(second)]

    def test_handles_non_callable(self):
        """Test that only functions can be declared."""
        with pytest.raises(HandlerRegistrationError):
            handles("test")("not a function")


class TestEmit:
    """Test cases for watched properties."""

    def test_assignment_emits(self):
        """Test that every assignment emits once with the value and name."""

        class Player(EventHost):
            health = Emit("health_changed", default=100)

        player = Player()
        seen = []
        player.event.subscribe("health_changed", lambda api, value, name: seen.append((value, name, player.health)))

        assert player.health == 100
        player.health = 50
        player.health = 50
        assert seen == [(50, "health", 50), (50, "health", 50)]
        assert player.health == 50

    def test_several_events(self):
        """Test a property emitting more than one event."""

        class Player(EventHost):
            name = Emit("name_changed", "changed")

        player = Player()
        seen = []
        player.event.subscribe(["name_changed", "changed"], lambda api, value, name: seen.append(api.event))

        player.name = "bob"
        assert seen == ["name_changed", "changed"]

    def test_values_are_per_instance(self):
        """Test that instances keep separate values."""

        class Player(EventHost):
            score = Emit("score_changed", default=0)

        first, second = Player(), Player()
        first.score = 10

        assert first.score == 10
        assert second.score == 0
        assert isinstance(Player.score, Emit)

    def test_assignment_before_emitter_exists(self):
        """Test that assignments before the emitter is attached do not fail."""

        class Player(EventHost):
            level = Emit("level_changed")

            def __init__(self):
                self.level = 1
                super().__init__()

        player = Player()
        assert player.level == 1
        assert player.event.emit("level_changed", 2, "level") == []

    def test_emits_to_declared_handlers(self):
        """Test a watched property driving an own handler."""

        class Thermostat(EventHost):
            temperature = Emit("temperature_changed", default=20)

            def __init__(self):
                super().__init__()
                self.alerts = []

            @handles("temperature_changed")
            def on_temperature(self, api, value, name):
                if value > 30:
                    self.alerts.append(value)

        thermostat = Thermostat()
        thermostat.temperature = 25
        thermostat.temperature = 35

        assert thermostat.alerts == [35]

    def test_default_is_shared_and_default_factory_is_not(self):
        """Test mutable defaults against per-instance defaults."""

        class Inventory(EventHost):
            shared = Emit("shared_changed", default=[])
            items = Emit("items_changed", default_factory=list)

        first, second = Inventory(), Inventory()
        seen = []
        first.event.subscribe("items_changed", lambda api, value, name: seen.append(name))

        first.shared.append("key")
        first.items.append("sword")

        assert second.shared == ["key"]
        assert second.items == []
        assert first.items == ["sword"]
        assert seen == []

        first.items = ["shield"]
        assert seen == ["items"]

    def test_default_and_default_factory_are_exclusive(self):
        """Test that only one kind of default can be given."""
        with pytest.raises(TypeError):
            Emit("changed", default=0, default_factory=int)
