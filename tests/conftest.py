import pytest

from tests.fakes import FakeSupabase


@pytest.fixture()
def fake_supabase():
    return FakeSupabase()
