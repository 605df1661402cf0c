from unittest.mock import MagicMock

import pytest
from sf_fixtures import field_desc, object_desc, sf_page

from sfpull.api import SalesforceAPI
from sfpull.config import SessionConfig


@pytest.fixture
def cfg():
    return SessionConfig(
        login_url="https://login.example.com",
        username="user@example.com",
        password="secret",
        api_version="60.0",
    )


@pytest.fixture
def fake_api():
    """MagicMock standing in for the transport, shaped like SalesforceAPI."""
    api = MagicMock(spec=SalesforceAPI)
    api.describe_object.return_value = object_desc(
        "Account", [field_desc("Id", "id"), field_desc("Name")]
    )
    api.query.return_value = sf_page([])
    api.query_all.return_value = sf_page([])
    api.get_updated.return_value = []
    api.get_deleted.return_value = []
    return api
