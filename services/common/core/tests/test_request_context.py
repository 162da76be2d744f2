import asyncio
import uuid

import pytest

from services.common.core import request_context


def test_generate_request_id_creates_uuid():
    """Ensure generate_request_id() creates a UUIDv4 and sets it in context."""
    req_id = request_context.generate_request_id()

    assert isinstance(req_id, str)
    try:
        assert str(uuid.UUID(req_id)) == req_id
    except ValueError:
        pytest.fail(f"Generated ID is not a valid UUID: {req_id}")

    assert request_context.get_request_id() == req_id


def test_generate_request_id_is_unique():
    id1 = request_context.generate_request_id()
    id2 = request_context.generate_request_id()

    assert id1 != id2


def test_set_and_clear_request_id():
    request_context.clear_request_id()
    assert request_context.get_request_id() is None

    assert request_context.set_request_id("  abc-123 ") == "abc-123"
    assert request_context.get_request_id() == "abc-123"

    request_context.clear_request_id()
    assert request_context.get_request_id() is None


@pytest.mark.parametrize("value", ["", "   ", "x" * 129])
def test_set_request_id_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        request_context.set_request_id(value)


@pytest.mark.asyncio
async def test_request_context_isolation():
    async def task(name, delay):
        request_context.set_request_id(name)
        await asyncio.sleep(delay)
        return request_context.get_request_id()

    results = await asyncio.gather(task("rid-1", 0.02), task("rid-2", 0.01))
    assert results == ["rid-1", "rid-2"]
