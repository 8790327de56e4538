import pytest

from async_request.extensions import ExtensionPoint, FilterRegistry, parse_hook_name


def test_callbacks_run_in_priority_then_registration_order():
    reg = FilterRegistry()
    reg.add(ExtensionPoint.QUERY_URL, lambda v: v + "b", identifier="job", priority=10)
    reg.add(ExtensionPoint.QUERY_URL, lambda v: v + "a", identifier="job", priority=5)
    reg.add(ExtensionPoint.QUERY_URL, lambda v: v + "c", identifier="job", priority=10)
    assert reg.apply(ExtensionPoint.QUERY_URL, "", identifier="job") == "abc"


def test_apply_without_callbacks_returns_value():
    reg = FilterRegistry()
    value = {"a": 1}
    assert reg.apply(ExtensionPoint.POST_ARGS, value, identifier="job") is value


def test_remove_callback():
    reg = FilterRegistry()
    cb = lambda v: v * 2  # noqa: E731
    reg.add(ExtensionPoint.QUERY_ARGS, cb, identifier="job")
    assert reg.has(ExtensionPoint.QUERY_ARGS, identifier="job")
    assert reg.remove(ExtensionPoint.QUERY_ARGS, cb, identifier="job") is True
    assert reg.has(ExtensionPoint.QUERY_ARGS, identifier="job") is False
    assert reg.remove(ExtensionPoint.QUERY_ARGS, cb, identifier="job") is False


def test_scoped_points_need_identifier():
    reg = FilterRegistry()
    with pytest.raises(ValueError):
        reg.add(ExtensionPoint.POST_ARGS, lambda v: v)


def test_global_point_ignores_identifier():
    reg = FilterRegistry()
    reg.add(ExtensionPoint.SSL_VERIFY, lambda v: True, identifier="whatever")
    assert reg.apply(ExtensionPoint.SSL_VERIFY, False) is True


@pytest.mark.parametrize(
    "name,expected",
    [
        ("wp_email_notify_1_query_args", (ExtensionPoint.QUERY_ARGS, "wp_email_notify_1")),
        ("wp_email_notify_1_query_url", (ExtensionPoint.QUERY_URL, "wp_email_notify_1")),
        ("wp_email_notify_1_post_args", (ExtensionPoint.POST_ARGS, "wp_email_notify_1")),
        ("https_local_ssl_verify", (ExtensionPoint.SSL_VERIFY, None)),
    ],
)
def test_parse_hook_name(name, expected):
    assert parse_hook_name(name) == expected


@pytest.mark.parametrize("name", ["_post_args", "wp_job_1_unknown", ""])
def test_unknown_hook_names_rejected(name):
    with pytest.raises(ValueError):
        FilterRegistry().add_filter(name, lambda v: v)


def test_clear():
    reg = FilterRegistry()
    reg.add_filter("job_query_url", lambda v: "changed")
    reg.clear()
    assert reg.apply(ExtensionPoint.QUERY_URL, "same", identifier="job") == "same"
