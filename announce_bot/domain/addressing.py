"""
Chat address helpers.

Chat addresses look like ``<group>_<user>@<domain>[/<resource>]``; the user
id is the second ``_`` segment of the local part. The domain is optional.
"""

from .ports import MalformedUserAddressError


def parse_user(address: str) -> str:
    """
    Extract the user id from a chat address.

    Args:
        address: Bare or full chat address, e.g. "123_456@chat.example.com/bot";
            a bare local part such as "123_456" is also accepted

    Returns:
        The user id ("456" for the example above)

    Raises:
        MalformedUserAddressError: If the address has no user segment
    """
    local = (address or "").partition("@")[0]
    ids = local.split("_")
    if len(ids) < 2 or not ids[1]:
        raise MalformedUserAddressError(f"Chat address has no user segment: {address!r}")

    return ids[1]
