"""Unit tests for model declaration, attribute access and validation."""

import asyncio

import pytest

from derivable import (
    PREVIOUS_BRANCH,
    AttributeValidationError,
    IdAttribute,
    Model,
    ModelDestructedError,
    ModelValidationError,
    NoEventLoopError,
    NumberAttribute,
    PreconditionError,
    StringAttribute,
    UnknownAttributeError,
)
from tests.utils import InvalidWhenZero, Item, Nested


class Account(Model):
    owner = StringAttribute
    balance = NumberAttribute
    token = StringAttribute.declare(internal=True)


@pytest.mark.unit
@pytest.mark.model
class TestDeclaration:
    """Attributes are declared as class attributes"""

    def test_class_access_returns_declared_type(self):
        """Model.<name> is the declared attribute type"""
        assert Account.owner is StringAttribute
        assert issubclass(Account.token, StringAttribute)

    def test_instance_access_returns_bound_attribute(self):
        """instance.<name> is the attribute bound to that instance"""

        async def scenario():
            account = Account({"owner": "Ada"})
            assert account.owner.name == "owner"
            assert account.owner.model is account
            assert account.owner.get() == "Ada"
            await account.ready()

        asyncio.run(scenario())

    def test_assignment_sets_value(self):
        """instance.<name> = value goes through set()"""

        async def scenario():
            account = Account()
            account.balance = 12
            assert account.get("balance") == 12
            assert account.balance.is_changed()
            await account.ready()

        asyncio.run(scenario())

    def test_inherited_attributes_come_first(self):
        """Subclasses extend the declaration order of their bases"""

        class Savings(Account):
            rate = NumberAttribute
            owner = StringAttribute.declare(default="bank")

        assert list(Savings._attribute_types) == ["owner", "balance", "token", "rate"]
        assert Savings.owner.default == "bank"
        assert Account.owner.default == ""

    @pytest.mark.parametrize("name", ["storage", "collection", "attributes", "ready", "get"])
    def test_attribute_may_not_shadow_model_members(self, name):
        """Declaring an attribute under a Model member name fails at class creation"""
        with pytest.raises(PreconditionError, match=name):
            type("Clash", (Model,), {name: StringAttribute})

    def test_private_attribute_names_are_rejected(self):
        """Names starting with an underscore are reserved for the model"""
        with pytest.raises(PreconditionError, match="_events"):

            class Private(Model):
                _events = StringAttribute

    def test_only_one_identity_attribute(self):
        """A model declares at most one identity attribute"""
        with pytest.raises(PreconditionError, match="id, other_id"):

            class Twin(Model):
                id = IdAttribute
                other_id = IdAttribute

    def test_inherited_identity_counts(self):
        """A second identity in a subclass is rejected as well"""
        with pytest.raises(PreconditionError, match="identity"):

            class Relabelled(Item):
                key = IdAttribute

    def test_attributes_preserve_declaration_order(self):
        """attributes are kept in the order they were declared"""

        async def scenario():
            account = Account()
            await account.ready()
            return list(account.attributes)

        assert asyncio.run(scenario()) == ["owner", "balance", "token"]

    def test_model_requires_running_loop(self):
        """Constructing a model outside an event loop is a precondition error"""
        with pytest.raises(NoEventLoopError):
            Account()


@pytest.mark.unit
@pytest.mark.model
class TestAttributeAccess:
    """get/set/unset/is_set by attribute name"""

    def test_unknown_attribute_name_raises(self):
        """Single-name access to an undeclared attribute raises"""

        async def scenario():
            account = Account()
            with pytest.raises(UnknownAttributeError, match="Unknown attribute missing"):
                account.get("missing")
            with pytest.raises(KeyError):
                account.set("missing", 1)
            await account.ready()

        asyncio.run(scenario())

    def test_bulk_set_ignores_unknown_keys(self):
        """Bulk data may carry keys the model does not declare"""

        async def scenario():
            account = Account()
            account.set({"owner": "Ada", "missing": 1})
            assert account.get("owner") == "Ada"
            await account.ready()

        asyncio.run(scenario())

    def test_set_returns_model(self):
        """set() can be chained"""

        async def scenario():
            account = Account()
            assert account.set("owner", "Ada").set("balance", 3) is account
            await account.ready()

        asyncio.run(scenario())

    def test_unset_and_is_set(self):
        """unset() returns an attribute to its default"""

        async def scenario():
            account = Account({"owner": "Ada"})
            assert account.is_set("owner")
            assert not account.is_set("balance")

            account.unset("owner")

            assert account.get("owner") == ""
            assert not account.is_set("owner")
            await account.ready()

        asyncio.run(scenario())

    def test_to_json_excludes_internal_attributes(self):
        """Internal attributes stay out of serialized data"""

        async def scenario():
            account = Account({"owner": "Ada", "balance": 5, "token": "secret"})
            assert account.get("token") == "secret"
            await account.ready()
            return account.to_json()

        assert asyncio.run(scenario()) == {"owner": "Ada", "balance": 5}


@pytest.mark.unit
@pytest.mark.model
class TestBranches:
    """Model branch operations aggregate over attributes"""

    def test_is_changed_and_commit(self):
        """A model is changed when any attribute is"""

        async def scenario():
            account = Account({"owner": "Ada"})
            commits = []
            account.on("commit", lambda model, branch: commits.append(branch))

            assert not account.is_changed()
            account.set("balance", 10)
            assert account.is_changed()

            assert account.commit()
            assert not account.is_changed()
            assert not account.commit()
            await account.ready()
            return commits

        assert asyncio.run(scenario()) == ["DEFAULT_BRANCH"]

    def test_commit_emits_attribute_commit_events(self):
        """Committing announces every committed attribute"""

        async def scenario():
            account = Account()
            events = []
            account.on("all", lambda event, *args: events.append(event))

            account.set({"owner": "Ada", "balance": 3})
            account.commit()
            await account.ready()
            return events

        events = asyncio.run(scenario())

        assert events[:4] == ["calculate", "commit:owner", "commit:balance", "commit"]

    def test_revert_restores_every_attribute(self):
        """revert() goes back to the last commit"""

        async def scenario():
            account = Account({"owner": "Ada", "balance": 1})
            account.set({"owner": "Grace", "balance": 2})

            account.revert()

            assert account.to_json() == {"owner": "Ada", "balance": 1}
            assert not account.is_changed()
            await account.ready()

        asyncio.run(scenario())

    def test_get_last_committed_and_previous(self):
        """Committed and previous values are available per branch"""

        async def scenario():
            account = Account({"owner": "Ada", "balance": 1})
            account.set("balance", 2)
            account.commit()
            account.set("balance", 3)

            assert account.get_last_committed() == {"owner": "Ada", "balance": 2}
            assert account.previous("balance") == 2
            assert account.previous()["balance"] == 2
            await account.ready()

        asyncio.run(scenario())

    def test_named_branch_is_independent(self):
        """Commits to a named branch leave the default branch alone"""

        async def scenario():
            account = Account({"owner": "Ada"})
            account.set("owner", "Grace")
            account.commit(PREVIOUS_BRANCH)

            assert account.is_changed()
            assert not account.is_changed(PREVIOUS_BRANCH)
            await account.ready()

        asyncio.run(scenario())


@pytest.mark.unit
@pytest.mark.model
class TestValidation:
    """validate() aggregates attribute errors"""

    def test_invalid_model_is_rejected(self):
        """Invalid attributes are reported in one ModelValidationError"""

        async def scenario():
            nested = Nested()
            with pytest.raises(ModelValidationError) as error:
                await nested.validate()
            return error.value

        error = asyncio.run(scenario())

        assert len(error.attributes) == 1
        assert isinstance(error.attributes[0], AttributeValidationError)
        assert error.attributes[0].attribute.name == "invalid"
        assert error.attributes[0].message == "must not be zero"
        assert str(error) == "Invalid attributes: invalid"

    def test_fixing_the_attribute_makes_validation_pass(self):
        """A model whose invalid attribute was fixed validates"""

        async def scenario():
            nested = Nested()
            with pytest.raises(ModelValidationError):
                await nested.validate()

            nested.set("invalid", 1)
            return await nested.validate()

        assert asyncio.run(scenario()) is True

    def test_errors_of_every_attribute_are_collected(self):
        """Validation runs for all attributes, not only the first failing one"""

        class Pair(Model):
            left = InvalidWhenZero
            right = InvalidWhenZero

        async def scenario():
            pair = Pair()
            with pytest.raises(ModelValidationError) as error:
                await pair.validate()
            return [sub.attribute.name for sub in error.value.attributes]

        assert asyncio.run(scenario()) == ["left", "right"]

    def test_unexpected_validation_failure_propagates(self):
        """Exceptions other than validation errors are not collected"""

        class Broken(NumberAttribute):
            def get_validation_error(self):
                raise RuntimeError("validator crashed")

        class Gadget(Model):
            part = Broken

        async def scenario():
            gadget = Gadget()
            with pytest.raises(RuntimeError, match="validator crashed"):
                await gadget.validate()

        asyncio.run(scenario())


@pytest.mark.unit
@pytest.mark.model
class TestLifecycle:
    """destruct() makes a model inert"""

    def test_destructed_model_rejects_set(self):
        """Setting values on a destructed model is a precondition error"""

        async def scenario():
            item = Item({"title": "a"})
            await item.ready()
            item.destruct()

            assert item.is_destructed()
            with pytest.raises(ModelDestructedError):
                item.set("title", "b")

        asyncio.run(scenario())

    def test_destructed_model_rejects_unset(self):
        """unset() is refused like set() once the model is destructed"""

        async def scenario():
            item = Item({"title": "a"})
            await item.ready()
            item.destruct()

            with pytest.raises(ModelDestructedError):
                item.unset("title")
            assert item.get("title") == "a"

        asyncio.run(scenario())

    def test_destruct_emits_event_and_drops_listeners(self):
        """destruct is announced once, then listeners are removed"""

        async def scenario():
            item = Item()
            await item.ready()
            events = []
            item.on("destruct", lambda model: events.append(model))
            item.on("change", lambda model: events.append("change"))

            item.destruct()
            item.title.set("ignored")
            return item, events

        item, events = asyncio.run(scenario())

        assert events == [item]
        assert not item._events.has_listeners()

    def test_repr_shows_data(self):
        """repr() includes the model class and its data"""

        async def scenario():
            item = Item({"id": "1", "title": "a"})
            await item.ready()
            return repr(item)

        assert asyncio.run(scenario()) == "Item({'id': '1', 'title': 'a', 'done': False})"
