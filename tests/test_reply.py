import pytest

from respwire import error, reply


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (reply.Status("OK"), "Status('OK')"),
        (reply.Integer(3), "Integer(3)"),
        (reply.LargeInteger(2**63), "LargeInteger(9223372036854775808)"),
        (reply.Error("ERR nope"), "Error('ERR nope')"),
        (reply.Bulk(b"v"), "Bulk(b'v')"),
        (reply.Bulk(None), "Bulk(nil)"),
        (reply.MultiBulk(None), "MultiBulk(nil)"),
        (reply.MultiBulk(()), "MultiBulk()"),
        (reply.MultiBulk((b"a", None)), "MultiBulk(b'a'; nil)"),
    ],
)
def test_describe(response, expected):
    assert reply.describe(response) == expected


def test_absence_is_not_emptiness():
    assert reply.Bulk(None) != reply.Bulk(b"")
    assert reply.MultiBulk(None) != reply.MultiBulk(())
    assert reply.Integer(1) != reply.LargeInteger(1)


def test_projection_mismatch_message():
    exc = error.ProjectionMismatch("expect_int", reply.Bulk(None))
    assert str(exc) == "expect_int: unexpected Bulk(nil)"
