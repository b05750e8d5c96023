"""
Tests for per-incident serialization across threads.
"""
import threading
import time
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from casework.database import Base
from casework.repositories.cases import CaseRepository
from casework.services.locks import IncidentLocks
from casework.store.adapter import SqlRecordStore

from conftest import COMPLAINANT

T0 = datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def file_engine(tmp_path):
    """On-disk database so each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'casework.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


class TestIncidentLocks:
    """Test the lock registry."""

    def test_same_incident_is_serialized(self):
        """
        INVARIANT: Two holders of one incident's lock never overlap.
        """
        locks = IncidentLocks()
        events = []
        entered = threading.Event()
        release = threading.Event()

        def first():
            with locks.hold("INC20250001"):
                entered.set()
                release.wait(5)
                events.append("first done")

        def second():
            entered.wait(5)
            with locks.hold("INC20250001"):
                events.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        entered.wait(5)
        time.sleep(0.05)
        events.append("checked")
        release.set()
        for thread in threads:
            thread.join(5)

        assert events == ["checked", "first done", "second"]

    def test_other_incidents_are_not_blocked(self):
        locks = IncidentLocks()
        done = threading.Event()

        def other():
            with locks.hold("INC20250002"):
                done.set()

        with locks.hold("INC20250001"):
            thread = threading.Thread(target=other)
            thread.start()
            assert done.wait(5)
        thread.join(5)

    def test_idle_locks_are_dropped(self):
        """
        INVARIANT: The registry only holds locks that are in use.
        """
        locks = IncidentLocks()
        with locks.hold("INC20250001"):
            with locks.hold("INC20250001"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

        with pytest.raises(RuntimeError):
            with locks.hold("INC20250002"):
                raise RuntimeError("write failed")
        assert len(locks) == 0


class TestParallelCaseAllocation:

    def test_threads_get_distinct_case_ids(self, file_engine):
        """
        INVARIANT: Cases allocated in parallel under one incident never share an id.
        """
        Session = sessionmaker(bind=file_engine)
        locks = IncidentLocks()
        barrier = threading.Barrier(2)
        ids, errors = [], []

        def allocate(worker):
            session = Session()
            repository = CaseRepository(SqlRecordStore(session))
            try:
                barrier.wait(5)
                for n in range(5):
                    with locks.hold("INC20250001"):
                        case = repository.create(
                            "INC20250001", f"student{worker}-{n}@school.edu", COMPLAINANT, T0
                        )
                    ids.append(case.case_id)
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=allocate, args=(worker,)) for worker in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        assert errors == []
        assert sorted(ids) == [f"CASE-20250001-{n:03d}" for n in range(1, 11)]
