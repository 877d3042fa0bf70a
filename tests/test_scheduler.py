from decimal import Decimal

from sqlalchemy.orm import sessionmaker

import circulation
import models
import scheduler
from conftest import days_ago


def test_scheduler_disabled_by_default():
    assert scheduler.build_scheduler(0) is None


def test_scheduler_registers_sweep_job():
    sched = scheduler.build_scheduler(15)
    job = sched.get_job("overdue_fines")
    assert job.func is scheduler.run_overdue_fine_sweep
    assert job.trigger.interval.total_seconds() == 15 * 60


def test_sweep_fines_overdue_loans(db, repo, make_member, make_media, monkeypatch):
    loan_id = circulation.issue_loan(repo, make_member(), make_media(), loan_date=days_ago(16)).id
    # The job opens and closes its own session on the test engine
    monkeypatch.setattr(scheduler, "SessionLocal", sessionmaker(bind=db.get_bind()))

    scheduler.run_overdue_fine_sweep()

    fines = repo.list_all(models.Fine)
    assert [(f.loan_id, f.amount) for f in fines] == [(loan_id, Decimal("1.00"))]
