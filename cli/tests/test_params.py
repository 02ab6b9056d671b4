import pytest

from feedgen_host import params
from feedgen_host.errors import UsageError

FULL = ["/srv/feedgen/", "example.com", "you@example.com", "wss://bsky.social", "did:plc:abcde"]


def test_positional_arguments_need_no_prompt() -> None:
    def _prompt(_text: str) -> str:
        raise AssertionError("nothing should be prompted")

    result = params.collect(FULL, prompt=_prompt)

    assert result.data_directory == "/srv/feedgen"
    assert result.hostname == "example.com"
    assert result.admin_email == "you@example.com"
    assert result.subscription_endpoint == "wss://bsky.social"
    assert result.publisher_did == "did:plc:abcde"


def test_missing_values_are_prompted_in_order() -> None:
    answers = iter(["example.com", " you@example.com ", "wss://bsky.social", "did:plc:abcde"])
    asked: list[str] = []
    hints: list[str] = []

    def _prompt(text: str) -> str:
        asked.append(text)
        return next(answers)

    result = params.collect([None], prompt=_prompt, before_hostname_prompt=lambda: hints.append("dns"))

    assert asked == [item.prompt for item in params.PROMPTED_PARAMETERS]
    assert hints == ["dns"]
    assert result.data_directory == "/feedgen"
    assert result.admin_email == "you@example.com"


def test_dns_hint_is_skipped_when_hostname_given() -> None:
    hints: list[str] = []
    params.collect(FULL, prompt=lambda _t: "", before_hostname_prompt=lambda: hints.append("dns"))
    assert hints == []


def test_ip_address_hostname_is_rejected() -> None:
    with pytest.raises(UsageError, match="must not be an IP address") as excinfo:
        params.collect(["/feedgen", "203.0.113.9", "you@example.com", "wss://bsky.social", "did:plc:abcde"])
    assert excinfo.value.remediation


@pytest.mark.parametrize(
    "args,message",
    [
        (["/feedgen"], "No public DNS address specified"),
        (["/feedgen", "example.com"], "No admin email specified"),
        (["/feedgen", "example.com", "you@example.com"], "No subscription endpoint specified"),
        (["/feedgen", "example.com", "you@example.com", "wss://bsky.social"], "No feed generator publisher DID specified"),
    ],
)
def test_missing_values_without_prompt(args, message) -> None:
    with pytest.raises(UsageError, match=message):
        params.collect(args)


def test_empty_prompt_answer_is_an_error_not_a_retry() -> None:
    asked: list[str] = []

    def _prompt(text: str) -> str:
        asked.append(text)
        return ""

    with pytest.raises(UsageError, match="No public DNS address specified"):
        params.collect(["/feedgen"], prompt=_prompt)
    assert len(asked) == 1


@pytest.mark.parametrize("email", ["you", "you.example.com"])
def test_admin_email_needs_at_sign(email) -> None:
    with pytest.raises(UsageError, match="admin email"):
        params.validate_admin_email(email)


@pytest.mark.parametrize("endpoint", ["bsky.social", "wss://", "//bsky.social"])
def test_subscription_endpoint_must_be_a_uri(endpoint) -> None:
    with pytest.raises(UsageError, match="subscription endpoint"):
        params.validate_subscription_endpoint(endpoint)


@pytest.mark.parametrize(
    "raw,expected",
    [(None, "/feedgen"), ("", "/feedgen"), ("/data//feedgen/", "/data/feedgen"), ("/feedgen", "/feedgen")],
)
def test_normalize_data_directory(raw, expected) -> None:
    assert params.normalize_data_directory(raw) == expected


@pytest.mark.parametrize("raw", ["feedgen", "./feedgen", "/", "//"])
def test_bad_data_directory(raw) -> None:
    with pytest.raises(UsageError):
        params.normalize_data_directory(raw)


def test_newlines_and_braces_cannot_smuggle_config() -> None:
    with pytest.raises(UsageError, match="public DNS address"):
        params.collect(["/feedgen", "example.com {\n}\nevil.test", "you@example.com", "wss://bsky.social", "did:plc:abcde"])
    with pytest.raises(UsageError, match="publisher DID"):
        params.collect(["/feedgen", "example.com", "you@example.com", "wss://bsky.social", "did:plc:abc\nFEEDGEN_PORT=1"])


@pytest.mark.parametrize(
    "hostname",
    ["https://example.com", "example.com:443", "example.com/feed", "-bad.example.com", "ex ample.com", "a..b", "x" * 64 + ".com"],
)
def test_hostname_must_be_a_bare_dns_name(hostname) -> None:
    with pytest.raises(UsageError, match="public DNS address"):
        params.validate_hostname(hostname)


def test_hostname_is_lowercased() -> None:
    assert params.validate_hostname("Feed.Example.COM") == "feed.example.com"


@pytest.mark.parametrize(
    "validator,value,label",
    [
        (params.validate_admin_email, "you@example.com\tx", "admin email"),
        (params.validate_admin_email, "you}@example.com", "admin email"),
        (params.validate_subscription_endpoint, "wss://bsky.social\x00", "subscription endpoint"),
        (params.validate_publisher_did, "did:plc:ab cd", "publisher DID"),
    ],
)
def test_unsafe_characters_name_the_field(validator, value, label) -> None:
    with pytest.raises(UsageError, match=label):
        validator(value)


def test_data_directory_with_whitespace_is_rejected() -> None:
    with pytest.raises(UsageError, match="whitespace") as excinfo:
        params.collect(["/srv/my feed", "example.com", "you@example.com", "wss://bsky.social", "did:plc:abcde"])
    assert excinfo.value.remediation
