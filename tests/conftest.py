"""Shared fixtures: an in-memory sqlite3 store seeded with super heroes."""

import sqlite3
import uuid

import pytest

SCHEMA = """
CREATE TABLE super_heroes (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    age INTEGER
);
CREATE TABLE villains (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE battles (
    super_hero_id TEXT NOT NULL,
    villain_id TEXT NOT NULL,
    battle_date TEXT NOT NULL
);
"""

HEROES = [
    ("Superman", "superman@dc.com", 86),
    ("Batman", "batman@dc.com", 85),
    ("Spider-man", "spider@marvel.com", 62),
]


@pytest.fixture
def store():
    """Open an in-memory database with the schema and three committed heroes."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA)
    conn.executemany(
        "INSERT INTO super_heroes (id, name, email, age) VALUES (?, ?, ?, ?)",
        [(str(uuid.uuid4()), name, email, age) for name, email, age in HEROES],
    )
    conn.commit()
    yield conn
    conn.close()
