import pytest

from ethclient.validation import ValidationError, check_arguments, validate_arguments

SENDER = "0x7236bc5a9ff647d48b1eceaa07aa6438dcca615e"
RECEIVER = "8f0909ccb296ebd319834edb0d5785794b781d7f"


@pytest.mark.parametrize(
    "sender, receiver, value, payload, expected",
    [
        (SENDER, RECEIVER, 0, b"", True),
        (SENDER[2:], "0x" + RECEIVER, 10, None, True),
        (SENDER, "", 0, b"\x60\x60", True),
        (SENDER, "", 0, b"", False),
        ("", RECEIVER, 0, b"", False),
        (SENDER[:-1], RECEIVER, 0, b"", False),
        (SENDER[:-1] + "g", RECEIVER, 0, b"", False),
        (SENDER, RECEIVER[:-2], 0, b"", False),
        (SENDER, RECEIVER, -1, b"", False),
    ],
)
def test_check_arguments(sender, receiver, value, payload, expected) -> None:
    assert check_arguments(sender, receiver, value, payload) is expected


def test_validate_arguments_raises_on_invalid_input() -> None:
    with pytest.raises(ValidationError):
        validate_arguments(SENDER, "", 0, b"")

    validate_arguments(SENDER, RECEIVER, 0, b"")
