# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

from __future__ import annotations

import random
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List

import pytest

from objtransfer.di.injector import override_settings
from objtransfer.errors import StoreError
from objtransfer.schema.transfer import TransferSession
from objtransfer.settings import Settings
from objtransfer.store.memory import InMemoryObjectStoreClient, MemoryBackend

PART_SIZE = 16


class FakeSettings(Settings):
    default_part_size = PART_SIZE
    io_chunk_size = 7
    list_page_size = 2


class FlakyStoreClient(InMemoryObjectStoreClient):
    """In-memory store that rejects uploads of the given part numbers.

    With ``read_body`` set, a rejected part's body is consumed first, like a request
    that is sent in full and then refused by the server.
    """

    def __init__(
        self,
        *args: Any,
        fail_on: Iterable[int] = (),
        read_body: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.fail_on = set(fail_on)
        self.read_body = read_body
        self.attempted: List[int] = []
        self.uploaded: List[int] = []

    def upload_part(
        self, session: TransferSession, part_number: int, body: Any, size: int
    ) -> str:
        self.attempted.append(part_number)
        if part_number in self.fail_on:
            if self.read_body:
                body.read(size)
            raise StoreError(
                "injected failure", operation="upload_part", part_number=part_number
            )
        etag = super().upload_part(session, part_number, body, size)
        self.uploaded.append(part_number)
        return etag


@pytest.fixture(autouse=True)
def fake_settings() -> Iterator[Settings]:
    with override_settings(FakeSettings) as settings:
        yield settings


@pytest.fixture
def part_size() -> int:
    return PART_SIZE


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> InMemoryObjectStoreClient:
    return InMemoryObjectStoreClient(backend, min_part_size=1, page_size=2)


@pytest.fixture
def make_flaky_store(backend: MemoryBackend) -> Callable[..., FlakyStoreClient]:
    def _make(fail_on: Iterable[int] = (), read_body: bool = False) -> FlakyStoreClient:
        return FlakyStoreClient(
            backend,
            min_part_size=1,
            page_size=2,
            fail_on=fail_on,
            read_body=read_body,
        )

    return _make


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[[int], Path]:
    def _make(size: int, name: str = "source.bin") -> Path:
        rng = random.Random(size)
        path = tmp_path / name
        path.write_bytes(bytes(rng.getrandbits(8) for _ in range(size)))
        return path

    return _make
