"""Tests for the expiration ladder and the daily reminder dispatch."""

from datetime import timedelta

import pytest

from core.errors import BadRequest, NotFound
from deadlines.service import ReminderService, days_until
from models.reminder import Reminder
from conftest import RecordingEmail


class FlakyEmail(RecordingEmail):
    """Fails for one recipient only."""

    def __init__(self, broken):
        super().__init__()
        self.broken = broken

    def send(self, to, subject, html_body):
        if to == self.broken:
            raise ConnectionError("mailbox unavailable")
        super().send(to, subject, html_body)


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", role="MANAGER", first_name="Olga", last_name="Novak")


@pytest.fixture
def service(db, email, clock):
    return ReminderService(db, email=email, clock=clock)


def _due(service, contract, clock, **ago):
    return service.create(contract.id, "CUSTOM", clock() - timedelta(**ago), "Check renewal terms")


class TestLadder:
    def test_far_end_date_gets_full_ladder(self, service, owner, make_contract, clock):
        contract = make_contract(owner)
        reminders = service.auto_generate(contract.id, clock() + timedelta(days=100))
        assert [r.message for r in reminders] == [
            f"Contract expires in {d} days" for d in (90, 60, 30, 14, 7)
        ]
        assert all(r.type == "EXPIRATION" and not r.is_sent for r in reminders)

    def test_near_end_date_skips_past_rungs(self, service, owner, make_contract, clock):
        contract = make_contract(owner)
        reminders = service.auto_generate(contract.id, clock() + timedelta(days=10))
        assert len(reminders) == 1
        assert reminders[0].reminder_date == clock() + timedelta(days=3)

    def test_past_end_date_gets_nothing(self, service, owner, make_contract, clock):
        contract = make_contract(owner)
        assert service.auto_generate(contract.id, clock() - timedelta(days=1)) == []

    def test_days_until_rounds_up_and_floors_at_zero(self, clock):
        assert days_until(clock() + timedelta(days=2, hours=1), clock()) == 3
        assert days_until(clock() - timedelta(days=2), clock()) == 0
        assert days_until(None, clock()) == 0


class TestCrud:
    def test_create_list_delete(self, service, owner, make_contract, clock):
        contract = make_contract(owner)
        later = service.create(contract.id, "RENEWAL", clock() + timedelta(days=5), "Renew?")
        sooner = service.create(contract.id, "CUSTOM", clock() + timedelta(days=1))
        assert [r.id for r in service.list_for_contract(contract.id)] == [sooner.id, later.id]

        service.delete(sooner.id)
        assert [r.id for r in service.list_for_contract(contract.id)] == [later.id]
        with pytest.raises(NotFound):
            service.get(sooner.id)

    def test_invalid_type(self, service, owner, make_contract, clock):
        contract = make_contract(owner)
        with pytest.raises(BadRequest):
            service.create(contract.id, "BIRTHDAY", clock())

    def test_unknown_contract(self, service, clock):
        with pytest.raises(NotFound):
            service.create(999, "CUSTOM", clock())


class TestUpcoming:
    def test_window_and_status_filters(self, service, owner, make_contract, clock):
        active = make_contract(owner, title="Active lease")
        draft = make_contract(owner, status="DRAFT", title="Draft lease")
        soon = service.create(active.id, "CUSTOM", clock() + timedelta(days=3))
        service.create(active.id, "CUSTOM", clock() + timedelta(days=45))
        service.create(draft.id, "CUSTOM", clock() + timedelta(days=3))

        rows = service.upcoming(30)
        assert [row["id"] for row in rows] == [soon.id]
        assert rows[0]["contract_title"] == "Active lease"
        assert rows[0]["days_until"] == 3

        assert len(service.upcoming(60)) == 2
        assert service.upcoming(60, contract_ids=[draft.id]) == []


class TestDispatch:
    def test_sends_due_reminders_once(self, service, owner, make_contract, db, clock, email):
        contract = make_contract(owner, end_date=clock() + timedelta(days=7))
        reminder = _due(service, contract, clock, hours=1)
        service.create(contract.id, "CUSTOM", clock() + timedelta(days=2))

        assert service.dispatch_due() == {"processed": 1, "failed": 0}
        assert len(email.subjects_to("owner@example.com")) == 1
        db.expire_all()
        sent = db.get(Reminder, reminder.id)
        assert sent.is_sent
        assert sent.sent_at == clock()

        assert service.dispatch_due() == {"processed": 0, "failed": 0}
        assert len(email.sent) == 1

    def test_inactive_contracts_are_ignored(self, service, owner, make_contract, clock, email):
        draft = make_contract(owner, status="DRAFT")
        _due(service, draft, clock, days=1)
        assert service.dispatch_due() == {"processed": 0, "failed": 0}
        assert email.sent == []

    def test_failed_send_stays_pending(self, db, owner, make_user, make_contract, clock):
        broken = make_user("broken@example.com", role="MANAGER")
        flaky = FlakyEmail("broken@example.com")
        service = ReminderService(db, email=flaky, clock=clock)
        good = _due(service, make_contract(owner), clock, hours=2)
        bad = _due(service, make_contract(broken), clock, hours=2)

        assert service.dispatch_due() == {"processed": 1, "failed": 1}
        db.expire_all()
        assert db.get(Reminder, good.id).is_sent
        assert not db.get(Reminder, bad.id).is_sent

        # the next run retries only the failed one
        flaky.broken = None
        assert service.dispatch_due() == {"processed": 1, "failed": 0}
        assert flaky.subjects_to("broken@example.com")
