# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Unit test for resumable upload."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Callable, List, Tuple
from unittest.mock import patch

import pytest

from objtransfer.cancel import CancellationToken
from objtransfer.downloader import DownloadStreamer
from objtransfer.errors import (
    IncompleteTransferError,
    InvalidConfigError,
    PartSizeMismatchError,
    StoreError,
    TransferCancelledError,
    TransferIOError,
)
from objtransfer.schema.transfer import PartDescriptor, TransferSession
from objtransfer.store.memory import InMemoryObjectStoreClient, MemoryBackend
from objtransfer.uploader import UploadCoordinator

BUCKET = "test"
KEY = "mysql.tar.gz"


class ProgressRecorder:
    def __init__(self) -> None:
        self.calls: List[Tuple[int, int]] = []

    def __call__(self, transferred: int, total: int) -> None:
        self.calls.append((transferred, total))

    def assert_valid(self, total: int) -> None:
        values = [transferred for transferred, _ in self.calls]
        assert values == sorted(values)
        assert all(t == total for _, t in self.calls)
        assert self.calls[-1] == (total, total)
        assert values.count(total) == 1


class RereadingStoreClient(InMemoryObjectStoreClient):
    """In-memory store that reads every part body twice before storing it."""

    def upload_part(
        self, session: TransferSession, part_number: int, body: Any, size: int
    ) -> str:
        body.read()
        body.seek(0)
        return super().upload_part(session, part_number, body, size)


def seed_parts(
    store: InMemoryObjectStoreClient,
    source: Path,
    part_size: int,
    part_numbers: List[int],
) -> str:
    data = source.read_bytes()
    upload_id = store.open_session(BUCKET, KEY)
    session = TransferSession(bucket=BUCKET, key=KEY, upload_id=upload_id)
    for n in part_numbers:
        chunk = data[(n - 1) * part_size : n * part_size]
        store.upload_part(session, n, io.BytesIO(chunk), len(chunk))
    return upload_id


def stored_object(store: InMemoryObjectStoreClient) -> bytes:
    return store.client.objects[(BUCKET, KEY)]


class TestUploadCoordinator:
    def test_round_trip_uploads_full_and_partial_parts(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        tmp_path: Path,
    ):
        part_size = 256
        source = make_source(7 * part_size + 123)
        recorder = ProgressRecorder()

        with patch.object(store, "upload_part", wraps=store.upload_part) as spy:
            summary = UploadCoordinator(store).upload(
                BUCKET, KEY, source, part_size, progress_callback=recorder
            )

        sizes = [c.args[3] for c in spy.call_args_list]
        assert [c.args[1] for c in spy.call_args_list] == list(range(1, 9))
        assert sizes == [part_size] * 7 + [123]
        assert summary.uploaded_parts == list(range(1, 9))
        assert summary.skipped_parts == []
        assert summary.total_bytes == summary.transferred_bytes == source.stat().st_size
        assert not summary.resumed
        assert summary.etag is not None and summary.etag.endswith('-8"')
        recorder.assert_valid(source.stat().st_size)

        dest = tmp_path / "out" / "mysql.tar.gz"
        DownloadStreamer(store).download(BUCKET, KEY, dest)
        assert dest.read_bytes() == source.read_bytes()

    def test_default_part_size_comes_from_settings(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(5 * part_size + 1)

        summary = UploadCoordinator(store).upload(BUCKET, KEY, source)

        assert summary.uploaded_parts == [1, 2, 3, 4, 5, 6]
        assert stored_object(store) == source.read_bytes()

    def test_resume_skips_seeded_parts(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(10 * part_size + 5)
        upload_id = seed_parts(store, source, part_size, [1, 2, 3])
        recorder = ProgressRecorder()

        with patch.object(store, "upload_part", wraps=store.upload_part) as spy:
            summary = UploadCoordinator(store).upload(
                BUCKET, KEY, source, part_size, progress_callback=recorder
            )

        assert [c.args[1] for c in spy.call_args_list] == list(range(4, 12))
        assert summary.resumed
        assert summary.upload_id == upload_id
        assert summary.skipped_parts == [1, 2, 3]
        assert summary.uploaded_parts == list(range(4, 12))
        assert summary.transferred_bytes == source.stat().st_size - 3 * part_size
        assert stored_object(store) == source.read_bytes()
        assert store.find_open_session(BUCKET, KEY) is None
        recorder.assert_valid(source.stat().st_size)

    @pytest.mark.parametrize("failing_part", [1, 3, 7])
    def test_failed_part_is_resumed_and_each_part_uploaded_once(
        self,
        make_flaky_store: Callable[..., InMemoryObjectStoreClient],
        make_source: Callable[[int], Path],
        part_size: int,
        failing_part: int,
    ):
        source = make_source(6 * part_size + 9)
        flaky = make_flaky_store(fail_on=[failing_part])
        recorder = ProgressRecorder()

        with pytest.raises(StoreError) as exc_info:
            UploadCoordinator(flaky).upload(
                BUCKET, KEY, source, part_size, progress_callback=recorder
            )
        assert exc_info.value.part_number == failing_part
        assert flaky.uploaded == list(range(1, failing_part))
        assert flaky.find_open_session(BUCKET, KEY) is not None
        assert (BUCKET, KEY) not in flaky.client.objects
        assert all(t < source.stat().st_size for t, _ in recorder.calls)

        flaky.fail_on.clear()
        summary = UploadCoordinator(flaky).upload(BUCKET, KEY, source, part_size)

        assert flaky.uploaded == list(range(1, 8))
        assert summary.skipped_parts == list(range(1, failing_part))
        assert stored_object(flaky) == source.read_bytes()

    def test_repeated_failures_upload_each_part_once(
        self,
        make_flaky_store: Callable[..., InMemoryObjectStoreClient],
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(6 * part_size + 9)
        flaky = make_flaky_store(fail_on=[3])

        with pytest.raises(StoreError) as exc_info:
            UploadCoordinator(flaky).upload(BUCKET, KEY, source, part_size)
        assert exc_info.value.part_number == 3
        upload_id = flaky.find_open_session(BUCKET, KEY)

        flaky.fail_on = {5}
        with pytest.raises(StoreError) as exc_info:
            UploadCoordinator(flaky).upload(BUCKET, KEY, source, part_size)
        assert exc_info.value.part_number == 5
        assert flaky.find_open_session(BUCKET, KEY) == upload_id

        flaky.fail_on.clear()
        summary = UploadCoordinator(flaky).upload(BUCKET, KEY, source, part_size)

        assert flaky.attempted == [1, 2, 3, 3, 4, 5, 5, 6, 7]
        assert flaky.uploaded == list(range(1, 8))
        assert summary.upload_id == upload_id
        assert summary.skipped_parts == [1, 2, 3, 4]
        assert summary.uploaded_parts == [5, 6, 7]
        assert stored_object(flaky) == source.read_bytes()

    def test_rejected_part_does_not_complete_progress(
        self,
        make_flaky_store: Callable[..., InMemoryObjectStoreClient],
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(2 * part_size)
        flaky = make_flaky_store(fail_on=[2], read_body=True)
        recorder = ProgressRecorder()

        with pytest.raises(StoreError):
            UploadCoordinator(flaky).upload(
                BUCKET, KEY, source, part_size, progress_callback=recorder
            )

        assert flaky.attempted == [1, 2]
        assert [t for t, _ in recorder.calls] == [part_size, 2 * part_size - 1]

        flaky.fail_on.clear()
        recorder = ProgressRecorder()
        UploadCoordinator(flaky).upload(
            BUCKET, KEY, source, part_size, progress_callback=recorder
        )

        recorder.assert_valid(2 * part_size)
        assert stored_object(flaky) == source.read_bytes()

    def test_rewound_part_body_is_counted_once(
        self,
        backend: MemoryBackend,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        client = RereadingStoreClient(backend, min_part_size=1, page_size=2)
        source = make_source(4 * part_size + 3)
        total = source.stat().st_size
        recorder = ProgressRecorder()

        UploadCoordinator(client).upload(
            BUCKET, KEY, source, part_size, progress_callback=recorder
        )

        assert recorder.calls == [
            (16, total),
            (32, total),
            (48, total),
            (64, total),
            (66, total),
            (67, total),
        ]
        assert stored_object(client) == source.read_bytes()

    def test_single_request_upload(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(5 * part_size + 3)
        recorder = ProgressRecorder()

        with patch.object(
            store, "open_session", wraps=store.open_session
        ) as open_session, patch.object(
            store, "put_object", wraps=store.put_object
        ) as put_object:
            summary = UploadCoordinator(store).upload(
                BUCKET,
                KEY,
                source,
                part_size,
                progress_callback=recorder,
                resumable=False,
            )

        open_session.assert_not_called()
        put_object.assert_called_once()
        assert summary.upload_id is None
        assert summary.uploaded_parts == []
        assert summary.total_bytes == summary.transferred_bytes == 5 * part_size + 3
        assert stored_object(store) == source.read_bytes()
        recorder.assert_valid(5 * part_size + 3)

    def test_failed_single_request_leaves_nothing_behind(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(3 * part_size)
        recorder = ProgressRecorder()

        with patch.object(
            store,
            "put_object",
            side_effect=StoreError("unavailable", operation="put_object"),
        ):
            with pytest.raises(StoreError):
                UploadCoordinator(store).upload(
                    BUCKET,
                    KEY,
                    source,
                    part_size,
                    progress_callback=recorder,
                    resumable=False,
                )

        assert recorder.calls == []
        assert store.find_open_session(BUCKET, KEY) is None
        assert (BUCKET, KEY) not in store.client.objects

    def test_rerun_after_failed_completion_uploads_nothing(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(3 * part_size)
        coordinator = UploadCoordinator(store)

        with patch.object(
            store,
            "complete_session",
            side_effect=StoreError("unavailable", operation="complete_session"),
        ):
            with pytest.raises(StoreError):
                coordinator.upload(BUCKET, KEY, source, part_size)

        with patch.object(store, "upload_part", wraps=store.upload_part) as spy:
            summary = coordinator.upload(BUCKET, KEY, source, part_size)

        spy.assert_not_called()
        assert summary.skipped_parts == [1, 2, 3]
        assert summary.transferred_bytes == 0
        assert stored_object(store) == source.read_bytes()

    def test_gap_in_recorded_parts_is_never_finalized(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(4 * part_size)
        parts = [
            PartDescriptor(
                part_number=n,
                offset=(n - 1) * part_size,
                size=part_size,
                etag=f'"{n}"',
                committed=True,
            )
            for n in (1, 2, 4)
        ]

        with patch.object(
            UploadCoordinator, "_upload_parts", return_value=parts
        ), patch.object(store, "complete_session") as complete:
            with pytest.raises(IncompleteTransferError) as exc_info:
                UploadCoordinator(store).upload(BUCKET, KEY, source, part_size)

        complete.assert_not_called()
        assert exc_info.value.missing_parts == [3]
        assert store.find_open_session(BUCKET, KEY) is not None

    def test_empty_source_is_put_directly(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
    ):
        source = make_source(0)
        recorder = ProgressRecorder()

        with patch.object(store, "upload_part") as upload_part, patch.object(
            store, "open_session"
        ) as open_session:
            summary = UploadCoordinator(store).upload(
                BUCKET, KEY, source, progress_callback=recorder
            )

        upload_part.assert_not_called()
        open_session.assert_not_called()
        assert stored_object(store) == b""
        assert summary.total_bytes == 0
        assert summary.upload_id is None
        assert recorder.calls == [(0, 0)]

    def test_session_with_other_part_size_is_rejected(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(4 * part_size)
        seed_parts(store, source, part_size // 2, [1, 2])

        with patch.object(store, "upload_part", wraps=store.upload_part) as spy:
            with pytest.raises(PartSizeMismatchError):
                UploadCoordinator(store).upload(BUCKET, KEY, source, part_size)

        spy.assert_not_called()
        assert store.find_open_session(BUCKET, KEY) is not None

    def test_session_with_other_part_size_is_restarted_on_request(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(4 * part_size)
        stale_id = seed_parts(store, source, part_size // 2, [1, 2])

        summary = UploadCoordinator(store).upload(
            BUCKET, KEY, source, part_size, restart_on_mismatch=True
        )

        assert summary.upload_id != stale_id
        assert summary.uploaded_parts == [1, 2, 3, 4]
        assert stale_id not in store.client.uploads
        assert stored_object(store) == source.read_bytes()

    def test_source_that_shrank_is_rejected(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(4 * part_size)
        seed_parts(store, source, part_size, [1, 2, 3, 4])
        source.write_bytes(source.read_bytes()[: 2 * part_size])

        with pytest.raises(PartSizeMismatchError):
            UploadCoordinator(store).upload(BUCKET, KEY, source, part_size)

    def test_cancel_before_start_leaves_nothing_uploaded(
        self,
        make_flaky_store: Callable[..., InMemoryObjectStoreClient],
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        flaky = make_flaky_store()
        token = CancellationToken()
        token.cancel("shutting down")

        with pytest.raises(TransferCancelledError, match="shutting down"):
            UploadCoordinator(flaky).upload(
                BUCKET, KEY, make_source(3 * part_size), part_size, cancel_token=token
            )

        assert flaky.uploaded == []

    def test_cancel_stops_at_part_boundary_and_resumes(
        self,
        make_flaky_store: Callable[..., InMemoryObjectStoreClient],
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        flaky = make_flaky_store()
        source = make_source(5 * part_size)
        token = CancellationToken()

        def cancel_after_two_parts(transferred: int, total: int) -> None:
            if transferred >= 2 * part_size:
                token.cancel()

        with pytest.raises(TransferCancelledError):
            UploadCoordinator(flaky).upload(
                BUCKET,
                KEY,
                source,
                part_size,
                progress_callback=cancel_after_two_parts,
                cancel_token=token,
            )
        assert flaky.uploaded == [1, 2]

        summary = UploadCoordinator(flaky).upload(BUCKET, KEY, source, part_size)
        assert flaky.uploaded == [1, 2, 3, 4, 5]
        assert summary.skipped_parts == [1, 2]
        assert stored_object(flaky) == source.read_bytes()

    def test_part_size_below_store_minimum(
        self, backend, make_source: Callable[[int], Path], part_size: int
    ):
        strict = InMemoryObjectStoreClient(backend, min_part_size=4 * part_size)

        with pytest.raises(InvalidConfigError):
            UploadCoordinator(strict).upload(
                BUCKET, KEY, make_source(8 * part_size), part_size
            )

        assert strict.find_open_session(BUCKET, KEY) is None

    def test_missing_source(self, store: InMemoryObjectStoreClient, tmp_path: Path):
        with pytest.raises(TransferIOError):
            UploadCoordinator(store).upload(BUCKET, KEY, tmp_path / "missing.bin")

        with pytest.raises(TransferIOError):
            UploadCoordinator(store).upload(BUCKET, KEY, tmp_path)

        assert store.find_open_session(BUCKET, KEY) is None

    def test_source_read_failure(
        self,
        store: InMemoryObjectStoreClient,
        make_source: Callable[[int], Path],
        part_size: int,
    ):
        source = make_source(3 * part_size)

        with patch(
            "objtransfer.utils.io.SectionReader.read",
            side_effect=OSError("Input/output error"),
        ):
            with pytest.raises(TransferIOError, match="part 1"):
                UploadCoordinator(store).upload(BUCKET, KEY, source, part_size)
