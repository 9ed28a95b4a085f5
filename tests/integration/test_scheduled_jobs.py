"""Integration tests for the scheduled job bodies."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from rukun.jobs import tasks
from rukun.models.iuran import Iuran, IuranStatus


@pytest.fixture(autouse=True)
def job_sessions(db_session, monkeypatch):
    """Point the jobs at the test database."""
    factory = sessionmaker(bind=db_session.get_bind(), autocommit=False, autoflush=False)
    monkeypatch.setattr(tasks, "SessionLocal", factory)
    return factory


def _count(db_session, **filters) -> int:
    stmt = select(func.count(Iuran.id))
    for name, value in filters.items():
        stmt = stmt.where(getattr(Iuran, name) == value)
    return db_session.execute(stmt).scalar_one()


class TestMonthlyGeneration:
    def test_generates_and_reports(self, db_session, make_user):
        make_user()
        make_user()

        summary = tasks.run_monthly_generation("2025-09")

        assert summary == {"period": "2025-09", "created": 2, "skipped": 0}
        assert _count(db_session, period="2025-09") == 2

    def test_rerun_skips(self, db_session, make_user):
        make_user()
        tasks.run_monthly_generation("2025-09")

        assert tasks.run_monthly_generation("2025-09")["skipped"] == 1

    def test_celery_task_body(self, db_session, make_user):
        make_user()
        assert tasks.generate_monthly_iuran.run("2025-10")["created"] == 1


class TestYearlyGeneration:
    def test_summary(self, db_session, make_user):
        make_user()

        summary = tasks.run_yearly_generation(2026)

        assert summary == {"year": 2026, "created": 12, "skipped": 0, "failed": []}


class TestDueReminders:
    def test_counts_residents_with_unpaid_iuran(self, db_session, make_user):
        make_user()
        paid_user = make_user()
        tasks.run_monthly_generation("2025-09")
        db_session.execute(
            Iuran.__table__.update()
            .where(Iuran.user_id == paid_user.id)
            .values(status=IuranStatus.PAID)
        )
        db_session.commit()

        assert tasks.run_due_reminders("2025-09") == {"period": "2025-09", "reminded": 1}

    def test_celery_task_body(self, db_session):
        assert tasks.send_due_reminders.run("2025-09") == {"period": "2025-09", "reminded": 0}
