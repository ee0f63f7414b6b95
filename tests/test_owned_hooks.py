from conftest import EMAIL, PASSWORD
from resources.base import mounted
from resources.bookings import BookingsHook
from resources.custom_requests import CustomRequestsHook
from resources.profile import ProfileHook


def add_booking(client, auth, listing_id="t1", total=100.0):
    return client.insert("bookings", {"listing_id": listing_id, "user_id": auth.user_id,
                                      "total_amount": total, "payment_status": "pending"})


def test_signed_out_hooks_short_circuit(client, auth, queries):
    for hook_cls, empty in ((BookingsHook, []), (CustomRequestsHook, []), (ProfileHook, None)):
        with mounted(hook_cls(client, auth)) as hook:
            assert hook.data == empty
            assert hook.error is None
            assert hook.subscription is None
    assert queries("bookings") == queries("custom_requests") == queries("profiles") == 0
    assert client.feed.channels() == {}


def test_bookings_join_listing_summary(client, signed_in):
    add_booking(client, signed_in)
    with mounted(BookingsHook(client, signed_in)) as hook:
        assert len(hook.data) == 1
        booking = hook.data[0]
        assert booking.listings.title == "Nairobi National Park Half Day"
        assert booking.listings.category == "tour"
        assert hook.subscription.channel == f"public:bookings:user_id={signed_in.user_id}"


def test_bookings_refresh_on_insert_notification(client, signed_in, queries):
    hook = BookingsHook(client, signed_in).mount()
    assert hook.data == []
    before = queries("bookings")

    add_booking(client, signed_in)

    assert queries("bookings") == before + 1
    assert len(hook.data) == 1
    hook.unmount()


def test_notification_during_in_flight_fetch(client, signed_in, queries):
    add_booking(client, signed_in, total=100.0)
    hook = BookingsHook(client, signed_in).mount()
    before = queries("bookings")

    # the second booking lands after the outer fetch has read its rows
    client.during_query = lambda: add_booking(client, signed_in, total=200.0)
    result = hook.fetch()

    assert queries("bookings") == before + 2
    # the notification-triggered fetch resolved first; the outer one resolved last and wins
    assert len(result.data) == 1
    assert len(hook.data) == 1
    assert hook.error is None
    assert hook.state == "ready"

    hook.refetch()
    assert len(hook.data) == 2
    hook.unmount()


def test_unmount_while_fetch_in_flight(client, signed_in):
    add_booking(client, signed_in)
    hook = BookingsHook(client, signed_in)
    client.during_query = hook.unmount

    hook.mount()

    assert hook.data == []
    assert hook.error is None
    assert not hook.loading
    assert client.feed.channels() == {}


def test_parameter_change_during_fetch_discards_response(client, signed_in):
    add_booking(client, signed_in)
    hook = CustomRequestsHook(client, signed_in).mount()
    client.insert("custom_requests", {"user_id": signed_in.user_id, "trip_details": "Zanzibar"})
    assert len(hook.data) == 1

    client.during_query = signed_in.sign_out
    hook.refetch()

    assert hook.data == []
    assert hook.subscription is None
    hook.unmount()


def test_hooks_rescope_on_sign_in(client, auth):
    client.sign_up(EMAIL, PASSWORD, "Amina Otieno")
    hook = ProfileHook(client, auth).mount()
    assert hook.data is None

    auth.sign_in(EMAIL, PASSWORD)
    assert hook.data.full_name == "Amina Otieno"
    assert hook.subscription.channel == f"public:profiles:id={auth.user_id}"

    auth.sign_out()
    assert hook.data is None
    assert client.feed.channels() == {}
    hook.unmount()


def test_profile_listens_to_updates_only(client, signed_in, queries):
    hook = ProfileHook(client, signed_in).mount()
    before = queries("profiles")

    client.update("profiles", {"full_name": "Amina W. Otieno"}, {"id": signed_in.user_id})

    assert queries("profiles") == before + 1
    assert hook.data.full_name == "Amina W. Otieno"
    assert hook.subscription.event == "UPDATE"
    hook.unmount()


def test_unmount_releases_auth_listener(client, signed_in, queries):
    hook = BookingsHook(client, signed_in).mount()
    hook.unmount()
    before = queries("bookings")
    signed_in.sign_out()
    assert queries("bookings") == before
