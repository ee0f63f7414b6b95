import pytest

from auth import AuthContext
from remote.mock import MOCK_LISTINGS, MemoryClient

EMAIL = "amina@safarimail.co.ke"
PASSWORD = "kilimanjaro"


class InterleavingClient(MemoryClient):
    """Memory client that runs `during_query` once, after a query's rows are
    read but before they are returned, i.e. while the fetch is in flight."""

    during_query = None

    def query(self, table, filters=(), order=None, single=False, columns="*"):
        result = super().query(table, filters, order=order, single=single, columns=columns)
        action, self.during_query = self.during_query, None
        if action is not None:
            action()
        return result


@pytest.fixture
def client():
    c = InterleavingClient()
    c.seed("listings", MOCK_LISTINGS)
    c.seed("listings", [{
        "id": "t1", "title": "Nairobi National Park Half Day", "description": "Game drive minutes from the city.",
        "category": "tour", "price": 100, "type": "Safari", "images": [], "availability": None,
        "created_at": "2024-01-05T08:00:00+00:00", "status": "published",
    }])
    return c


@pytest.fixture
def auth(client):
    return AuthContext(client)


@pytest.fixture
def signed_in(client, auth):
    client.sign_up(EMAIL, PASSWORD, "Amina Otieno")
    auth.sign_in(EMAIL, PASSWORD)
    return auth


@pytest.fixture
def queries(client):
    def count(table):
        return len([c for c in client.calls if c[0] == "query" and c[1] == table])
    return count
