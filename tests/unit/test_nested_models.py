"""Unit tests for models and collections nested inside models."""

import asyncio

import pytest

from derivable import (
    CollectionAttribute,
    CollectionAttributeValidationError,
    Model,
    ModelAttributeValidationError,
    ModelValidationError,
    StringAttribute,
)
from tests.utils import Nested, Order, WithNested


def watch(model, events):
    model.on("all", lambda event, *args: events.append(event))


@pytest.mark.unit
@pytest.mark.model
class TestModelAttribute:
    """A model held as the value of an attribute"""

    def test_nested_change_is_reported_by_parent(self):
        """Changing the nested model emits change and change:nested on the parent"""

        async def scenario():
            model = WithNested()
            await model.ready()
            events = []
            watch(model, events)

            model.get("nested").set("a", "a-1")
            await model.ready()
            return events

        events = asyncio.run(scenario())

        assert "change:nested" in events
        assert events[-1] == "change"
        assert events.count("calculate") == 1

    def test_nested_change_marks_parent_changed(self):
        """The parent is changed while its nested model is"""

        async def scenario():
            model = WithNested()
            await model.ready()

            model.get("nested").set("a", "a-1")
            await model.ready()
            changed = model.is_changed()

            model.revert()
            await model.ready()
            return changed, model.is_changed(), model.get("nested").get("a")

        assert asyncio.run(scenario()) == (True, False, "")

    def test_parent_waits_for_nested_calculation(self):
        """The parent settles only after its nested model settled"""

        async def scenario():
            model = WithNested()
            await model.ready()

            model.get("nested").set("b", "b-1")
            await model.ready()
            return model.get("nested").is_ready()

        assert asyncio.run(scenario()) is True

    def test_commit_is_delegated(self):
        """Committing the parent commits the nested model"""

        async def scenario():
            model = WithNested()
            await model.ready()
            events = []
            watch(model, events)

            model.get("nested").set("a", "a-1")
            await model.ready()
            assert model.commit()
            return events, model.get("nested").is_changed()

        events, nested_changed = asyncio.run(scenario())

        assert not nested_changed
        assert "commit:nested" in events

    def test_to_json_embeds_nested_data(self):
        """to_json() of the parent contains the nested model's to_json()"""

        async def scenario():
            model = WithNested({"title": "t", "nested": {"a": "x", "invalid": 1}})
            await model.ready()
            return model.to_json(), model.get("nested").to_json()

        data, nested = asyncio.run(scenario())

        assert data["nested"] == nested
        assert data == {"title": "t", "nested": {"a": "x", "b": "", "invalid": 1}}

    def test_setting_mapping_updates_nested_model(self):
        """A mapping is applied to the existing nested model"""

        async def scenario():
            model = WithNested()
            nested = model.get("nested")
            model.set("nested", {"a": "x"})
            await model.ready()
            return nested, model.get("nested")

        before, after = asyncio.run(scenario())

        assert before is after
        assert after.get("a") == "x"

    def test_setting_same_instance_is_a_no_op(self):
        """Setting the held nested model again changes nothing"""

        async def scenario():
            model = WithNested()
            await model.ready()
            events = []
            watch(model, events)

            model.set("nested", model.get("nested"))
            return events, model.is_changed()

        assert asyncio.run(scenario()) == ([], False)

    def test_replacing_nested_model_can_be_reverted(self):
        """A replaced nested model is a change; revert() restores the committed instance"""

        async def scenario():
            model = WithNested()
            await model.ready()
            original = model.get("nested")
            replacement = Nested({"a": "other"})

            model.set("nested", replacement)
            await model.ready()
            assert model.get("nested") is replacement
            assert model.is_changed()

            replacement.set("a", "unobserved")
            model.revert()
            await model.ready()
            return original, model

        original, model = asyncio.run(scenario())

        assert model.get("nested") is original
        assert not model.is_changed()

    def test_replaced_model_is_no_longer_observed(self):
        """The parent stops listening to a nested model it no longer holds"""

        async def scenario():
            model = WithNested()
            await model.ready()
            original = model.get("nested")
            model.set("nested", Nested())
            await model.ready()
            model.commit()

            original.set("a", "detached")
            await original.ready()
            return model.is_ready(), model.is_changed()

        assert asyncio.run(scenario()) == (True, False)

    def test_validation_wraps_nested_errors(self):
        """Invalid nested models fail the parent validation"""

        async def scenario():
            model = WithNested()
            with pytest.raises(ModelValidationError) as error:
                await model.validate()

            model.get("nested").set("invalid", 5)
            return error.value, await model.validate()

        error, fixed = asyncio.run(scenario())

        assert fixed is True
        [nested_error] = error.attributes
        assert isinstance(nested_error, ModelAttributeValidationError)
        assert nested_error.attribute.name == "nested"
        assert nested_error.model_error.attributes[0].attribute.name == "invalid"


class Group(Model):
    name = StringAttribute
    members = CollectionAttribute.of(Nested)


@pytest.mark.unit
@pytest.mark.collection
class TestCollectionAttribute:
    """A collection held as the value of an attribute"""

    def test_member_change_recalculates_owner(self):
        """Derived values of the owner follow changes of the members"""

        async def scenario():
            order = Order({"lines": [{"price": 10, "quantity": 2}, {"price": 5}]})
            await order.ready()
            first = order.get("total")

            order.get("lines").at(0).set("quantity", 3)
            await order.ready()
            return first, order.get("total")

        assert asyncio.run(scenario()) == (25, 35)

    def test_membership_change_recalculates_owner(self):
        """Adding and removing members counts as a change of the attribute"""

        async def scenario():
            order = Order({"lines": [{"price": 10}]})
            await order.ready()
            events = []
            watch(order, events)

            lines = order.get("lines")
            lines.add({"price": 4, "quantity": 2})
            await order.ready()
            added = order.get("total")

            lines.remove(lines.at(0))
            await order.ready()
            return added, order.get("total"), events

        added, removed, events = asyncio.run(scenario())

        assert (added, removed) == (18, 8)
        assert events.count("change:lines") == 2

    def test_setting_list_replaces_members(self):
        """Setting raw data resets the nested collection"""

        async def scenario():
            order = Order({"lines": [{"price": 10}]})
            await order.ready()
            collection = order.get("lines")

            order.set("lines", [{"price": 1}, {"price": 2}])
            await order.ready()
            return collection, order

        collection, order = asyncio.run(scenario())

        assert order.get("lines") is collection
        assert order.get("total") == 3
        assert order.is_changed()

    def test_revert_restores_membership(self):
        """revert() restores the committed members of the collection"""

        async def scenario():
            order = Order({"lines": [{"price": 10}]})
            await order.ready()
            order.commit()
            first = order.get("lines").at(0)

            order.get("lines").add({"price": 1})
            await order.ready()
            assert order.is_changed()

            order.revert()
            await order.ready()
            return first, order

        first, order = asyncio.run(scenario())

        assert list(order.get("lines")) == [first]
        assert order.get("total") == 10
        assert not order.is_changed()

    def test_validation_collects_member_errors(self):
        """Every invalid member is reported"""

        async def scenario():
            group = Group({"members": [{"invalid": 1}, {}, {}]})
            with pytest.raises(ModelValidationError) as error:
                await group.validate()
            return error.value

        error = asyncio.run(scenario())

        [members_error] = error.attributes
        assert isinstance(members_error, CollectionAttributeValidationError)
        assert len(members_error.model_errors) == 2

    def test_to_json_lists_members(self):
        """to_json() of a collection attribute is the list of member data"""

        async def scenario():
            order = Order({"customer": "ada", "lines": [{"price": 2}]})
            await order.ready()
            return order.to_json()

        assert asyncio.run(scenario()) == {
            "id": None,
            "customer": "ada",
            "lines": [{"price": 2, "quantity": 1, "total": 2}],
            "total": 2,
        }
