import pytest

from sentinel_entrypoint.entrypoint.exceptions import \
    OwnershipException, OwnershipExceptionCode
from sentinel_entrypoint.entrypoint.whitelist import INITIAL_EPOCH, Whitelist

from .conftest import OWNER, STRANGER

FIRST = "0x1111111111111111111111111111111111111111"
SECOND = "0x2222222222222222222222222222222222222222"
THIRD = "0x3333333333333333333333333333333333333333"


def test_initial_addresses_are_whitelisted():
    whitelist = Whitelist(OWNER, [FIRST, SECOND])

    assert whitelist.epoch == INITIAL_EPOCH
    assert whitelist.is_whitelisted(FIRST)
    assert whitelist.is_whitelisted(SECOND)
    assert not whitelist.is_whitelisted(THIRD)


def test_lookup_ignores_address_case():
    whitelist = Whitelist(OWNER, ["0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"])

    assert whitelist.is_whitelisted(
        "0xABCDEFABCDEFABCDEFABCDEFABCDEFABCDEFABCD")


def test_update_replaces_the_whole_set():
    whitelist = Whitelist(OWNER, [FIRST, SECOND])

    whitelist.update_whitelist(OWNER, [SECOND, THIRD])

    assert whitelist.epoch == INITIAL_EPOCH + 1
    assert not whitelist.is_whitelisted(FIRST)
    assert whitelist.is_whitelisted(SECOND)
    assert whitelist.is_whitelisted(THIRD)


def test_update_with_empty_set_clears_whitelist():
    whitelist = Whitelist(OWNER, [FIRST])

    whitelist.update_whitelist(OWNER, [])

    assert not whitelist.is_whitelisted(FIRST)


def test_address_can_come_back_in_a_later_epoch():
    whitelist = Whitelist(OWNER, [FIRST])
    whitelist.update_whitelist(OWNER, [SECOND])
    whitelist.update_whitelist(OWNER, [FIRST])

    assert whitelist.epoch == INITIAL_EPOCH + 2
    assert whitelist.is_whitelisted(FIRST)
    assert not whitelist.is_whitelisted(SECOND)


def test_update_requires_owner():
    whitelist = Whitelist(OWNER, [FIRST])

    with pytest.raises(OwnershipException) as excinfo:
        whitelist.update_whitelist(STRANGER, [SECOND])

    assert excinfo.value.exception_code == OwnershipExceptionCode.NotOwner
    assert excinfo.value.message == "Ownable: caller is not the owner"
    assert whitelist.epoch == INITIAL_EPOCH
    assert whitelist.is_whitelisted(FIRST)
