"""
End-to-end runs of the batch executor against SQLite and an in-memory file source.
"""

import pytest

from customer_import.domain.imports.errors import JobNotFoundError, StoreInsertError

HEADER = "First Name,Last Name,Email,Phone,Birthday,Email Opt In\n"


def _row_codes(job):
    return [(entry["row_number"], entry["code"]) for entry in job["error_log"]]


def test_duplicate_within_file_scenario(create_job, make_executor, standard_mapping):
    content = HEADER + "Jane,Doe,jane@example.com,,,yes\nJanet,Doe,jane@example.com,,,no\n"
    job = create_job(content, standard_mapping)

    result = make_executor().run(job["id"])

    assert result["status"] == "completed"
    assert result["succeeded"] == 1
    assert result["failed"] == 1
    assert _row_codes(result) == [(3, "duplicate_key")]
    assert result["completed_at"] is not None
    assert result["total_records"] == 2


def test_counters_cover_every_data_row(create_job, make_executor, standard_mapping, store):
    lines = [
        "Ann,Lee,ann@example.com,555-0100,1990-01-02,y",
        ",Missing,first@example.com,,,",
        "Bad,Email,not-an-email,,,",
        "Bob,Ray,bob@example.com,,garbage,TRUE",
        "Dup,Ann,ann@example.com,,,",
        '"Smith, Jr.",Carl,carl@example.com,,,',
    ]
    job = create_job(HEADER + "\n".join(lines) + "\n", standard_mapping)

    result = make_executor(batch_size=2).run(job["id"])

    assert result["succeeded"] + result["failed"] == len(lines)
    assert result["succeeded"] == 3
    assert _row_codes(result) == [
        (3, "missing_required_field"),
        (4, "invalid_format"),
        (6, "duplicate_key"),
    ]
    assert result["error_summary"] == {"missing_required_field": 1, "invalid_format": 1, "duplicate_key": 1}
    assert store.count() == 3
    assert store.exists("carl@example.com")


def test_missing_required_field_never_reaches_the_store(create_job, make_executor, standard_mapping, store):
    inserts = []

    class RecordingStore:
        def exists(self, email):
            return store.exists(email)

        def insert(self, record):
            inserts.append(record)
            return store.insert(record)

    job = create_job(HEADER + "Jane,,jane@example.com,,,\n", standard_mapping)
    result = make_executor(store=RecordingStore()).run(job["id"])

    assert _row_codes(result) == [(2, "missing_required_field")]
    assert inserts == []


def test_progress_is_persisted_after_each_batch(create_job, make_executor, standard_mapping, jobs):
    rows = "".join(f"P{i},Q{i},p{i}@example.com,,,\n" for i in range(5))
    job = create_job(HEADER + rows, standard_mapping)

    checkpoints = []
    original = jobs.record_progress

    def spy(job_id, progress, elapsed_ms):
        checkpoints.append((progress.succeeded, progress.failed))
        return original(job_id, progress, elapsed_ms)

    jobs.record_progress = spy
    make_executor(batch_size=2).run(job["id"])

    assert checkpoints == [(2, 0), (4, 0), (5, 0)]


def test_store_errors_are_row_level(create_job, make_executor, standard_mapping, store):
    class FlakyStore:
        def __init__(self):
            self.calls = 0

        def exists(self, email):
            return store.exists(email)

        def insert(self, record):
            self.calls += 1
            if self.calls == 1:
                raise StoreInsertError("insert failed: connection reset")
            return store.insert(record)

    job = create_job(HEADER + "A,B,a@example.com,,,\nC,D,c@example.com,,,\n", standard_mapping)
    result = make_executor(store=FlakyStore()).run(job["id"])

    assert result["status"] == "completed"
    assert result["succeeded"] == 1
    assert _row_codes(result) == [(2, "store_insert_error")]


def test_race_with_concurrent_writer_is_duplicate_key(create_job, make_executor, standard_mapping, store):
    """The gate sees no record, but another writer commits before our insert."""

    class RacingStore:
        def exists(self, email):
            return False

        def insert(self, record):
            return store.insert(record)

    job = create_job(HEADER + "A,B,same@example.com,,,\nC,D,same@example.com,,,\n", standard_mapping)
    result = make_executor(store=RacingStore()).run(job["id"])

    assert result["status"] == "completed"
    assert _row_codes(result) == [(3, "duplicate_key")]


@pytest.mark.parametrize("content", ["", "\n\n", HEADER, HEADER + "\n  \n"])
def test_empty_file_is_a_job_level_fault(content, create_job, make_executor, standard_mapping):
    job = create_job(content, standard_mapping)
    result = make_executor().run(job["id"])

    assert result["status"] == "failed"
    assert result["error_message"].startswith("empty_csv")
    assert result["succeeded"] == 0
    assert result["failed"] == 0
    assert result["error_log"] == []


def test_missing_source_file_fails_the_job(jobs, make_executor, standard_mapping):
    job = jobs.create_import_job(filename="gone.csv", source_path="imports/gone.csv", column_mapping=standard_mapping)
    result = make_executor().run(job["id"])

    assert result["status"] == "failed"
    assert "File not found" in result["error_message"]
    assert result["completed_at"] is not None


def test_job_without_storage_path_fails_as_invalid_descriptor(jobs, make_executor, standard_mapping):
    job = jobs.create_import_job(filename="never-uploaded.csv", column_mapping=standard_mapping)
    result = make_executor().run(job["id"])

    assert result["status"] == "failed"
    assert result["error_message"] == "missing_parameters: storage_path"


def test_descriptor_passed_to_run_replaces_the_stored_one(jobs, source_files, make_executor, standard_mapping):
    source_files["imports/late.csv"] = (HEADER + "Jane,Doe,jane@example.com,,,\n").encode("utf-8")
    job = jobs.create_import_job(filename="late.csv")

    result = make_executor().run(job["id"], source_path="imports/late.csv", column_mapping=standard_mapping)

    assert result["status"] == "completed"
    assert result["succeeded"] == 1
    assert result["source_path"] == "imports/late.csv"
    assert result["column_mapping"] == standard_mapping


def test_undecodable_file_fails_the_job(create_job, make_executor, standard_mapping):
    job = create_job(b"\xff\xfe\x00bad", standard_mapping)
    result = make_executor().run(job["id"])
    assert result["status"] == "failed"
    assert "UTF-8" in result["error_message"]


def test_byte_order_mark_does_not_break_header_matching(create_job, make_executor, standard_mapping):
    content = ("\ufeff" + HEADER + "Jane,Doe,jane@example.com,,,\n").encode("utf-8")
    job = create_job(content, standard_mapping)
    result = make_executor().run(job["id"])
    assert result["succeeded"] == 1


def test_rerun_succeeds_once_conflicts_are_removed(create_job, make_executor, standard_mapping, store):
    from customer_import.domain.imports.mapper import CandidateRecord, StringValue

    store.insert(CandidateRecord({
        "first_name": StringValue("Existing"),
        "last_name": StringValue("Customer"),
        "client_email": StringValue("taken@example.com"),
    }))
    job = create_job(HEADER + "New,Person,taken@example.com,,,\nOther,Person,free@example.com,,,\n", standard_mapping)
    executor = make_executor()

    first = executor.run(job["id"])
    assert first["succeeded"] == 1
    assert _row_codes(first) == [(2, "duplicate_key")]

    store.delete_by_email("taken@example.com")
    second = executor.run(job["id"])

    assert second["status"] == "completed"
    # free@example.com was inserted by the first run and is now the duplicate.
    assert _row_codes(second) == [(3, "duplicate_key")]
    assert second["succeeded"] == 1
    assert store.exists("taken@example.com")


def test_unknown_job_id_raises(make_executor):
    with pytest.raises(JobNotFoundError):
        make_executor().run(4242)


def test_unexpected_failure_marks_job_failed(create_job, make_executor, standard_mapping, jobs):
    job = create_job(HEADER + "Jane,Doe,jane@example.com,,,\n", standard_mapping)

    def broken(*args, **kwargs):
        raise RuntimeError("database went away")

    jobs.record_progress = broken
    result = make_executor().run(job["id"])

    assert result["status"] == "failed"
    assert "database went away" in result["error_message"]


def test_invalid_batch_size_is_rejected(make_executor):
    with pytest.raises(ValueError):
        make_executor(batch_size=0)
