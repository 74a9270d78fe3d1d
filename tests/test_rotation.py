import pytest

from csirotation.rotation import KeyFormatError, objects_require_update, split_key


def test_split_key_returns_namespace_and_name():
    assert split_key("default/pod1-default-spc1") == ("default", "pod1-default-spc1")


def test_split_key_ignores_extra_parts():
    assert split_key("ns/name/extra") == ("ns", "name")


@pytest.mark.parametrize("key", ["", "no-slash", "pod1-default-spc1"])
def test_split_key_rejects_malformed_keys(key):
    with pytest.raises(KeyFormatError, match="expected key format is namespace/name"):
        split_key(key)


def test_split_key_error_is_value_error():
    with pytest.raises(ValueError):
        split_key("bad")


def test_new_version_requires_update():
    assert objects_require_update({"secret/object1": "v1"}, {"secret/object1": "v2"}) is True


def test_same_versions_do_not_require_update():
    assert objects_require_update({"secret/object1": "v1"}, {"secret/object1": "v1"}) is False


def test_whitespace_is_ignored_when_comparing():
    assert objects_require_update({"secret/object1": "v1"}, {" secret/object1 ": " v1 "}) is False


def test_new_object_requires_update():
    old = {"secret/object1": "v1"}
    new = {"secret/object1": "v1", "secret/object2": "v1"}
    assert objects_require_update(old, new) is True


def test_removed_object_requires_update():
    old = {"secret/object1": "v1", "secret/object2": "v1"}
    new = {"secret/object1": "v1"}
    assert objects_require_update(old, new) is True


def test_empty_versions_do_not_require_update():
    assert objects_require_update({}, {}) is False


def test_first_mount_requires_update():
    assert objects_require_update({}, {"secret/object1": "v2"}) is True