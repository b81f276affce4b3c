"""
Unit tests for entity references and the reference resolver.

Tests cover:
- Reference encoding
- Resolution and write contexts
- Cycle termination with identity preservation
- Strict and lenient dangling references
- Context cleanup after failures
"""

import logging

import pytest

import kvgraph.convert.references as references
from kvgraph.convert.codec import DefaultScalarCodec
from kvgraph.convert.flattener import PathFlattener
from kvgraph.convert.references import (
    EntityReference,
    ReferenceResolver,
    ResolutionContext,
    WriteContext,
    normalize_id,
    reference_of,
)
from kvgraph.errors import CodecError, DanglingReferenceError, MappingError, NotFoundError
from kvgraph.store.memory import InMemoryKeyValueStore
from tests.models import Address, Country, Person, build_registry


class TestEntityReference:
    """Tests for EntityReference."""

    def test_encode(self):
        assert EntityReference("persons", "1").encode() == b"persons:1"
        assert str(EntityReference("persons", "1")) == "persons:1"

    def test_decode_splits_on_first_separator(self):
        """Ids may contain ':'."""
        ref = EntityReference.decode(b"events:2021:06:01")

        assert ref == EntityReference("events", "2021:06:01")

    @pytest.mark.parametrize("data", [b"persons", b":1", b"persons:", b"\xff:1"])
    def test_decode_malformed(self, data):
        with pytest.raises(CodecError):
            EntityReference.decode(data)

    def test_hashable(self):
        """References are usable as dict keys."""
        refs = {EntityReference("persons", "1"), EntityReference("persons", "1")}

        assert len(refs) == 1

    def test_normalize_id(self):
        assert normalize_id(b"abc") == "abc"
        assert normalize_id(7) == "7"
        assert normalize_id("x") == "x"

    def test_reference_of(self):
        """References come from registry metadata."""
        registry = build_registry()

        assert reference_of(registry, Country(id="andor")) == EntityReference(
            "countries", "andor"
        )
        with pytest.raises(MappingError, match="not an entity type"):
            reference_of(registry, Address(city="tear"))
        with pytest.raises(MappingError, match="has no value"):
            reference_of(registry, Country(id=""))


class TestContexts:
    """Tests for ResolutionContext and WriteContext."""

    def test_resolution_context(self):
        ctx = ResolutionContext()
        ref = EntityReference("persons", "1")
        person = Person()

        ctx.register(ref, person)

        assert ref in ctx
        assert ctx.get(ref) is person
        assert len(ctx) == 1

        ctx.clear()
        assert ref not in ctx
        assert len(ctx) == 0

    def test_write_context_dedups(self):
        """Each reference is queued once; first instance wins."""
        ctx = WriteContext()
        ref = EntityReference("persons", "1")
        first, second = Person(id="1"), Person(id="1")

        assert ctx.enqueue(ref, first)
        assert not ctx.enqueue(ref, second)
        assert ref in ctx
        assert ctx.pop() == (ref, first)
        assert ctx.pop() is None


class TestReferenceResolver:
    """Tests for ReferenceResolver."""

    @pytest.fixture
    def registry(self):
        return build_registry()

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def flattener(self, registry):
        return PathFlattener(registry, DefaultScalarCodec())

    @pytest.fixture
    def resolver(self, registry, store, flattener):
        return ReferenceResolver(registry, store, flattener)

    async def _save(self, store, flattener, *entities):
        await store.connect()
        for entity in entities:
            ref = reference_of(build_registry(), entity)
            await store.put(ref.keyspace, ref.id, flattener.flatten(entity))

    def test_should_inline(self, registry, resolver):
        """Inlining is decided by the declared type."""
        person_def = registry.get_type_def(Person)

        assert resolver.should_inline(person_def.get_field("address"))
        assert resolver.should_inline(person_def.get_field("firstname"))
        assert not resolver.should_inline(person_def.get_field("nationality"))
        assert not resolver.should_inline(person_def.get_field("coworkers"))

    def test_reference_for_write_queues_once(self, resolver):
        ctx = WriteContext()
        country = Country(id="andor")

        ref = resolver.reference_for_write(country, ctx)
        again = resolver.reference_for_write(Country(id="andor"), ctx)

        assert ref == again == EntityReference("countries", "andor")
        assert ctx.pop() == (ref, country)
        assert ctx.pop() is None

    @pytest.mark.asyncio
    async def test_resolve_nested_references(self, store, flattener, resolver):
        """Single, list and map references are resolved."""
        await self._save(
            store,
            flattener,
            Person(
                id="1",
                firstname="rand",
                nationality=Country(id="andor"),
                coworkers=[Person(id="2"), Person(id="3")],
                contacts={"friend": Person(id="2")},
            ),
            Country(id="andor", name="Andor"),
            Person(id="2", firstname="mat"),
            Person(id="3", firstname="perrin"),
        )

        person = await resolver.resolve_root(EntityReference("persons", "1"), Person)

        assert person.firstname == "rand"
        assert person.nationality == Country(id="andor", name="Andor")
        assert [p.firstname for p in person.coworkers] == ["mat", "perrin"]
        assert person.contacts["friend"] is person.coworkers[0]

    @pytest.mark.asyncio
    async def test_cycle_terminates_with_identity(self, store, flattener, resolver):
        """A -> B -> A resolves to the same A instance."""
        await self._save(
            store,
            flattener,
            Person(id="a", firstname="rand", best_friend=Person(id="b")),
            Person(id="b", firstname="mat", best_friend=Person(id="a")),
        )

        a = await resolver.resolve_root(EntityReference("persons", "a"), Person)

        assert a is not None
        assert a.best_friend is not None
        assert a.best_friend.firstname == "mat"
        assert a.best_friend.best_friend is a
        assert store.get_count("persons", "a") == 1
        assert store.get_count("persons", "b") == 1

    @pytest.mark.asyncio
    async def test_self_reference(self, store, flattener, resolver):
        """A cycle of length one resolves to the instance itself."""
        await self._save(
            store,
            flattener,
            Person(id="a", best_friend=Person(id="a"), coworkers=[Person(id="a")]),
        )

        a = await resolver.resolve_root(EntityReference("persons", "a"), Person)

        assert a.best_friend is a
        assert len(a.coworkers) == 1
        assert a.coworkers[0] is a

    @pytest.mark.asyncio
    async def test_long_reference_chain(self, store, flattener, resolver):
        """Reference depth is not bounded by the interpreter stack."""
        length = 1500
        await self._save(
            store,
            flattener,
            *[
                Person(id=str(i), best_friend=Person(id=str((i + 1) % length)))
                for i in range(length)
            ],
        )

        root = await resolver.resolve_root(EntityReference("persons", "0"), Person)

        current = root
        for i in range(length):
            assert current.id == str(i)
            current = current.best_friend
        assert current is root
        assert store.get_count("persons", str(length - 1)) == 1

    @pytest.mark.asyncio
    async def test_root_missing(self, store, resolver):
        """A missing root raises NotFoundError."""
        await store.connect()

        with pytest.raises(NotFoundError) as exc_info:
            await resolver.resolve_root(EntityReference("persons", "x"), Person)

        assert exc_info.value.ref == EntityReference("persons", "x")

    @pytest.mark.asyncio
    async def test_dangling_strict(self, store, flattener, resolver):
        """A missing nested record raises by default."""
        await self._save(store, flattener, Person(id="1", best_friend=Person(id="2")))

        with pytest.raises(DanglingReferenceError) as exc_info:
            await resolver.resolve_root(EntityReference("persons", "1"), Person)

        assert exc_info.value.ref == EntityReference("persons", "2")
        assert exc_info.value.path == "best_friend"

    @pytest.mark.asyncio
    async def test_dangling_lenient(self, registry, store, flattener, caplog):
        """Lenient mode nulls single references and drops list elements."""
        resolver = ReferenceResolver(registry, store, flattener, lenient=True)
        await self._save(
            store,
            flattener,
            Person(
                id="1",
                best_friend=Person(id="gone"),
                coworkers=[Person(id="2"), Person(id="gone"), Person(id="3")],
            ),
            Person(id="2"),
            Person(id="3"),
        )

        with caplog.at_level(logging.WARNING, logger="kvgraph.convert.references"):
            person = await resolver.resolve_root(EntityReference("persons", "1"), Person)

        assert person.best_friend is None
        assert [p.id for p in person.coworkers] == ["2", "3"]
        assert "Dropping dangling reference" in caplog.text

    @pytest.mark.asyncio
    async def test_context_cleared_after_failure(
        self, store, flattener, resolver, monkeypatch
    ):
        """The resolution context never outlives a failed read."""
        contexts = []

        class RecordingContext(ResolutionContext):
            def __init__(self):
                super().__init__()
                contexts.append(self)

        monkeypatch.setattr(references, "ResolutionContext", RecordingContext)
        await self._save(
            store,
            flattener,
            Person(id="1", coworkers=[Person(id="2"), Person(id="gone")]),
            Person(id="2"),
        )

        with pytest.raises(DanglingReferenceError):
            await resolver.resolve_root(EntityReference("persons", "1"), Person)

        assert len(contexts) == 1
        assert len(contexts[0]) == 0

    @pytest.mark.asyncio
    async def test_reads_do_not_share_instances(self, store, flattener, resolver):
        """Each top-level read builds fresh instances."""
        await self._save(store, flattener, Person(id="1", firstname="rand"))

        first = await resolver.resolve_root(EntityReference("persons", "1"), Person)
        second = await resolver.resolve_root(EntityReference("persons", "1"), Person)

        assert first == second
        assert first is not second

    @pytest.mark.asyncio
    async def test_resolve_with_shared_context(self, store, flattener, resolver):
        """resolve() reuses instances already in the given context."""
        await self._save(store, flattener, Person(id="1"))
        ctx = ResolutionContext()
        existing = Person(id="1", firstname="in progress")
        ctx.register(EntityReference("persons", "1"), existing)

        resolved = await resolver.resolve(EntityReference("persons", "1"), Person, ctx)

        assert resolved is existing
        assert store.get_count("persons", "1") == 0

    @pytest.mark.asyncio
    async def test_resolve_missing_in_context_is_dangling(self, store, resolver):
        """resolve() treats a missing record as a dangling reference."""
        await store.connect()

        with pytest.raises(DanglingReferenceError):
            await resolver.resolve(
                EntityReference("persons", "x"), Person, ResolutionContext(), path="p"
            )
