"""
Mapped classes shared by the test suite.

The graph mirrors a small address book:
- Person (keyspace "persons") references a Country, other Persons and
  embeds Addresses
- GeoAddress is an embedded subclass of Address, stored with a type hint
- Ticket (keyspace "tickets") has an integer id
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dc_field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from kvgraph.schema import MappingRegistry, embedded, entity, field


class Gender(Enum):
    MALE = "m"
    FEMALE = "f"


@dataclass
class Address:
    city: Optional[str] = None
    country: Optional[str] = None


@dataclass
class GeoAddress(Address):
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass
class Country:
    id: Optional[str] = None
    name: Optional[str] = None


@dataclass
class Person:
    id: Optional[str] = None
    firstname: Optional[str] = None
    age: Optional[int] = None
    alive: Optional[bool] = None
    gender: Optional[Gender] = None
    birthdate: Optional[date] = None
    address: Optional[Address] = None
    nicknames: List[str] = dc_field(default_factory=list)
    attributes: Dict[str, str] = dc_field(default_factory=dict)
    homes: List[Address] = dc_field(default_factory=list)
    nationality: Optional[Country] = None
    best_friend: Optional[Person] = None
    coworkers: List[Person] = dc_field(default_factory=list)
    contacts: Dict[str, Person] = dc_field(default_factory=dict)


@dataclass
class Ticket:
    id: Optional[int] = None
    title: Optional[str] = None


ADDRESS_FIELDS = (
    field("city", str),
    field("country", str),
)


def build_registry() -> MappingRegistry:
    """Fresh registry with every test type registered."""
    registry = MappingRegistry()
    registry.register(embedded(Address, ADDRESS_FIELDS))
    registry.register(
        embedded(GeoAddress, ADDRESS_FIELDS + (field("lat", float), field("lon", float)))
    )
    registry.register(entity(Country, "countries", (field("id", str), field("name", str))))
    registry.register(
        entity(
            Person,
            "persons",
            (
                field("id", str),
                field("firstname", str),
                field("age", int),
                field("alive", bool),
                field("gender", Gender),
                field("birthdate", date),
                field("address", Address),
                field("nicknames", str, container="list"),
                field("attributes", str, container="map"),
                field("homes", Address, container="list"),
                field("nationality", Country),
                field("best_friend", Person),
                field("coworkers", Person, container="list"),
                field("contacts", Person, container="map"),
            ),
        )
    )
    registry.register(entity(Ticket, "tickets", (field("id", int), field("title", str))))
    return registry
