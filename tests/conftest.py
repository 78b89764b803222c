from __future__ import annotations

import os

import pytest

# Set env before any rental_intake imports (settings are created at import time).
os.environ.setdefault("DATABASE_URL", "sqlite:///./.rental_intake_test.db")
os.environ.setdefault("EXTRACTION_CACHE_ENABLED", "false")
os.environ.setdefault("OPENAI_API_KEY", "")


@pytest.fixture
def catalog():
    from rental_intake.modules.catalog.schemas import CatalogSnapshot, Property

    return CatalogSnapshot(
        properties=(
            Property(id=1, name="Nazaré T2"),
            Property(id=2, name="Sete Rios"),
            Property(id=3, name="João Batista", aliases=("São João Batista T3",)),
            Property(id=4, name="Costa blue", aliases=("A203",)),
            Property(id=5, name="Casa dos Barcos", aliases=("Barcos T1",)),
            Property(id=6, name="Almada Noronha 37", aliases=("Almada Noronha",)),
        )
    )


class StubProvider:
    """In-memory extraction provider; `responses` maps filename to a reply or an exception."""

    name = "stub"
    model = "stub-1"

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    def extract_reservations(self, request):
        key = request.filename or request.text or ""
        for name, reply in self.responses.items():
            if name == request.filename or (request.text and name in request.text):
                self.calls.append(name)
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    return reply()
                return reply
        self.calls.append(key)
        return {"document_kind": None, "reservations": []}


@pytest.fixture
def stub_provider_factory():
    return StubProvider
