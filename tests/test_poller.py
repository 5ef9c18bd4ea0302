import asyncio

from afyaclaims.client import ClaimsView, NotificationPoller, NotificationsView
from afyaclaims.core.errors import AuthenticationError, DependencyError
from afyaclaims.core.models import Claim, Notification, NotificationPage, paginate
from afyaclaims.core.states import ClaimStatus


def inbox(*read_flags, unread_count=None):
    notifications = [
        Notification(dispatch_id=f"d-{i}", user_id="user-1", title=f"Note {i}", message="body", is_read=flag)
        for i, flag in enumerate(read_flags)
    ]
    _, pagination = paginate(notifications, 1, 20)
    if unread_count is None:
        unread_count = sum(1 for flag in read_flags if not flag)
    return NotificationPage(notifications=notifications, unread_count=unread_count, pagination=pagination)


class FakeApi:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def notifications(self, user_id, page=1, limit=20, unread_only=False):
        self.calls += 1
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def test_poller_polls_immediately_and_stops_cleanly():
    api = FakeApi(inbox(False, True))
    updated = asyncio.Event()
    poller = NotificationPoller(api, "user-1", interval=60, on_update=lambda view: updated.set())

    async with poller:
        await asyncio.wait_for(updated.wait(), timeout=1)
        assert poller.running
        assert poller.view.unread_count == 1

    assert not poller.running
    assert api.calls == 1


async def test_poller_keeps_going_after_transient_errors():
    api = FakeApi(DependencyError("service down"), inbox(False))
    poller = NotificationPoller(api, "user-1", interval=0.01)

    poller.start()
    for _ in range(100):
        if api.calls >= 2:
            break
        await asyncio.sleep(0.01)
    await poller.stop()

    assert api.calls >= 2
    assert poller.view.unread_count == 1


async def test_poller_ends_when_session_ends():
    api = FakeApi(AuthenticationError("Session has ended"))
    poller = NotificationPoller(api, "user-1", interval=0.01)

    poller.start()
    await asyncio.sleep(0.05)

    assert not poller.running
    assert api.calls == 1
    await poller.stop()


def test_fetch_counts_unread_beyond_the_loaded_page():
    view = NotificationsView().apply_fetch(inbox(False, True, unread_count=7))

    assert view.unread_count == 7
    assert view.unread_elsewhere == 6


def test_mark_read_and_delete_are_pure():
    original = NotificationsView().apply_fetch(inbox(False, False))
    target = original.notifications[0].id

    read = original.apply_mark_read(target)
    deleted = read.apply_delete(original.notifications[1].id)

    assert original.unread_count == 2
    assert read.unread_count == 1
    assert deleted.unread_count == 0
    assert [n.id for n in deleted.notifications] == [target]


def test_mark_all_read_zeroes_unread():
    view = NotificationsView().apply_fetch(inbox(False, False, unread_count=5)).apply_mark_all_read()

    assert view.unread_count == 0
    assert all(n.is_read for n in view.notifications)


def test_claims_view_replaces_confirmed_versions():
    claim = Claim(policy_id="p-1", patient_id="u-1", facility_id="f-1", claim_amount=900, services_rendered=["consultation"])
    approved = claim.model_copy(update={"status": ClaimStatus.APPROVED, "processed_by": "admin-1", "transaction_hash": "0xabc"})

    view = ClaimsView().apply_claim(claim)
    updated = view.apply_claim(approved)

    assert view.get(claim.id).status == ClaimStatus.PENDING
    assert updated.get(claim.id).status == ClaimStatus.APPROVED
    assert len(updated.claims) == 1
    assert updated.with_status(ClaimStatus.PENDING) == []


async def test_poller_survives_a_failing_update_handler(caplog):
    api = FakeApi(inbox(False))

    def broken_handler(view):
        raise RuntimeError("render failed")

    poller = NotificationPoller(api, "user-1", interval=0.01, on_update=broken_handler)

    poller.start()
    for _ in range(100):
        if api.calls >= 2:
            break
        await asyncio.sleep(0.01)

    assert poller.running
    await poller.stop()

    assert api.calls >= 2
    assert "render failed" in caplog.text
