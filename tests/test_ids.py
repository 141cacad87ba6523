"""Tests for request identifier generation."""
from unittest.mock import patch
from msgbridge.ids import MessageIdGenerator


def test_ids_unique_back_to_back():
    """Test consecutive identifiers never repeat."""
    gen = MessageIdGenerator()
    ids = [gen.next_id() for _ in range(1000)]
    assert len(set(ids)) == 1000


def test_ids_unique_with_frozen_clock():
    """Test identifiers stay unique when the clock does not advance."""
    gen = MessageIdGenerator(namespaced=False)
    with patch("msgbridge.ids.time.time", return_value=1000.0):
        first = gen.next_id()
        second = gen.next_id()

    assert first == "msg-1-1000000"
    assert second == "msg-2-1000000"


def test_namespace_separates_generators():
    """Test generators sharing a transport produce distinct identifiers."""
    a = MessageIdGenerator()
    b = MessageIdGenerator()

    assert a.namespace != b.namespace
    assert a.next_id() != b.next_id()
    assert a.next_id().startswith(f"msg-{a.namespace}-2-")


def test_custom_prefix():
    """Test identifier prefix is configurable."""
    gen = MessageIdGenerator(prefix="rpc", namespaced=False)
    assert gen.namespace is None
    assert gen.next_id().startswith("rpc-1-")
