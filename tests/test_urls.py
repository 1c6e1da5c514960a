import pytest

from paperwall.errors import UnsafeUrlError
from paperwall.payments.urls import assert_allowed_url, is_allowed_url, is_private_host


@pytest.mark.parametrize(
    "url",
    [
        "https://publisher.example.com/pay",
        "https://8.8.8.8/pay",
        "https://[2001:4860:4860::8888]/pay",
        "https://172.32.0.1/pay",
    ],
)
def test_public_https_allowed(url):
    assert is_allowed_url(url)


@pytest.mark.parametrize(
    "url",
    [
        "http://publisher.example.com/pay",
        "ftp://publisher.example.com/pay",
        "https://localhost/pay",
        "https://api.localhost/pay",
        "https://127.0.0.1/pay",
        "https://10.1.2.3/pay",
        "https://172.16.0.1/pay",
        "https://172.31.255.255/pay",
        "https://192.168.1.10/pay",
        "https://169.254.169.254/latest/meta-data",
        "https://0.0.0.0/pay",
        "https://[::1]/pay",
        "https://[fe80::1]/pay",
        "https://[fd00::1]/pay",
        "https://[::ffff:10.0.0.1]/pay",
        "not a url",
        "https:///pay",
    ],
)
def test_rejected(url):
    assert not is_allowed_url(url)


def test_insecure_host_allow_list():
    assert is_allowed_url("http://localhost:8787/pay", allow_insecure_hosts=["localhost"])
    assert is_allowed_url("http://LOCALHOST:8787/pay", allow_insecure_hosts=["localhost"])
    assert not is_allowed_url("http://127.0.0.1:8787/pay", allow_insecure_hosts=["localhost"])
    assert not is_allowed_url("file://localhost/etc/passwd", allow_insecure_hosts=["localhost"])


def test_is_private_host():
    assert is_private_host("LocalHost")
    assert is_private_host("[::1]")
    assert not is_private_host("example.com")


def test_assert_allowed_url_raises():
    with pytest.raises(UnsafeUrlError, match="Payment URL must be HTTPS"):
        assert_allowed_url("http://example.com", "Payment URL")
    assert_allowed_url("https://example.com", "Payment URL")
